from __future__ import annotations

import json
from pathlib import Path

from .schema import SessionSnapshot


class SnapshotPathError(ValueError):
    pass


def resolve_in_root(root: str | Path, rel: str | Path) -> Path:
    root_path = Path(root).resolve()
    rel_path = (root_path / rel).resolve()
    try:
        rel_path.relative_to(root_path)
    except ValueError:
        raise SnapshotPathError(f"path escapes {root_path}: {rel}")
    return rel_path


def write_snapshot(root: str | Path, rel: str | Path, snapshot: SessionSnapshot) -> Path:
    p = resolve_in_root(root, rel)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump(snapshot.model_dump(), f, indent=2, ensure_ascii=False)
        f.write("\n")
    return p


def read_snapshot(root: str | Path, rel: str | Path) -> SessionSnapshot:
    p = resolve_in_root(root, rel)
    with p.open("r", encoding="utf-8") as f:
        return SessionSnapshot.model_validate(json.load(f))
