from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from .allocator import DEFAULT_SLOT_COUNT
from .schema import GroupingMode

ENV_PREFIX = "DENTFLOW_"


class WorkflowSettings(BaseModel):
    grouping_mode: GroupingMode = "individual"
    slot_count: int = Field(default=DEFAULT_SLOT_COUNT, ge=1)
    bulk_condition_mode: bool = False

    model_config = {"extra": "forbid"}


def load_dotenv(env_file: str | Path = ".env.local") -> None:
    """Load KEY=VALUE lines into the environment without overriding existing values."""
    path = Path(env_file)
    if not path.exists():
        return
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, value = line.split("=", 1)
                os.environ.setdefault(key.strip(), value.strip())


def load_settings(env: Optional[Mapping[str, str]] = None, env_file: str | Path = ".env.local") -> WorkflowSettings:
    if env is None:
        load_dotenv(env_file)
        env = os.environ
    values = {}
    for field in WorkflowSettings.model_fields:
        raw = env.get(ENV_PREFIX + field.upper())
        if raw is not None and raw != "":
            values[field] = raw
    return WorkflowSettings.model_validate(values)
