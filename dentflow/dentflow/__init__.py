from __future__ import annotations

from .allocator import ScheduleAllocator
from .catalog import Catalog, CatalogError, default_catalog
from .chart import ToothConditions
from .generator import generate
from .overrides import SelectionOverrides
from .session import WorkflowSession

__version__ = "0.1.0"

__all__ = [
    "Catalog",
    "CatalogError",
    "ScheduleAllocator",
    "SelectionOverrides",
    "ToothConditions",
    "WorkflowSession",
    "default_catalog",
    "generate",
]
