from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from .catalog import Catalog, CatalogError, default_catalog


def load_catalog(path: str | Path | None) -> Catalog:
    if path is None:
        return default_catalog()
    catalog_path = Path(path)
    if not catalog_path.exists():
        raise FileNotFoundError(f"catalog file not found: {path}")
    with catalog_path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict) and "catalog" in data:
        data = data["catalog"]
    try:
        return Catalog.model_validate(data)
    except ValidationError as e:
        raise CatalogError(f"invalid catalog {catalog_path.name}: {e}") from e


def dump_catalog(catalog: Catalog, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8") as f:
        json.dump(catalog.model_dump(), f, indent=2, ensure_ascii=False)
        f.write("\n")
    return out
