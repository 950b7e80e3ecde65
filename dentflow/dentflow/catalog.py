"""
Condition/treatment master data.

A catalog maps condition codes to display metadata and to an ordered list of
alternative treatment rules. It also carries the clinical priority list that
decides in which order conditions are turned into treatment steps.
"""
from __future__ import annotations

import hashlib
import json
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .schema import Condition, TreatmentRule

logger = logging.getLogger(__name__)


class CatalogError(ValueError):
    pass


class Catalog(BaseModel):
    conditions: List[Condition]
    rules: Dict[str, List[TreatmentRule]] = Field(default_factory=dict)
    priority: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_codes(self) -> "Catalog":
        codes = [c.code for c in self.conditions]
        if len(codes) != len(set(codes)):
            raise ValueError("duplicate condition codes in catalog")
        unknown = sorted(set(self.rules) - set(codes))
        if unknown:
            raise ValueError(f"rules reference unknown condition codes: {unknown}")
        return self

    model_config = {"extra": "forbid", "frozen": True}

    # ---------- lookups ----------

    def codes(self) -> List[str]:
        return [c.code for c in self.conditions]

    def has_code(self, code: str) -> bool:
        return any(c.code == code for c in self.conditions)

    def condition(self, code: str) -> Optional[Condition]:
        for c in self.conditions:
            if c.code == code:
                return c
        return None

    def rules_for(self, code: str) -> List[TreatmentRule]:
        return list(self.rules.get(code, []))

    def priority_order(self) -> List[str]:
        """Return every catalog code exactly once, most urgent first.

        Priority entries without a catalog condition are dropped, and catalog
        conditions missing from the priority list are appended in catalog order.
        """
        known = self.codes()
        order: List[str] = []
        for code in self.priority:
            if code not in known:
                logger.warning("priority list references unknown condition code %r; ignoring it", code)
                continue
            if code not in order:
                order.append(code)
        missing = [code for code in known if code not in order]
        if missing:
            logger.warning("conditions without a clinical priority, scheduled last: %s", ", ".join(missing))
            order.extend(missing)
        return order

    def version(self) -> str:
        payload = json.dumps(self.model_dump(), sort_keys=True, ensure_ascii=False, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    # ---------- edits (each returns a new catalog) ----------

    def _replace(self, **changes) -> "Catalog":
        data = self.model_dump()
        data.update(changes)
        try:
            return Catalog.model_validate(data)
        except ValueError as e:
            raise CatalogError(str(e)) from e

    def add_condition(self, condition: Condition, priority_index: Optional[int] = None) -> "Catalog":
        if self.has_code(condition.code):
            raise CatalogError(f"condition {condition.code!r} already exists")
        priority = list(self.priority)
        if priority_index is None:
            priority.append(condition.code)
        else:
            priority.insert(priority_index, condition.code)
        return self._replace(
            conditions=[c.model_dump() for c in self.conditions] + [condition.model_dump()],
            priority=priority,
        )

    def remove_condition(self, code: str) -> "Catalog":
        if not self.has_code(code):
            raise CatalogError(f"unknown condition {code!r}")
        rules = {k: [r.model_dump() for r in v] for k, v in self.rules.items() if k != code}
        return self._replace(
            conditions=[c.model_dump() for c in self.conditions if c.code != code],
            rules=rules,
            priority=[p for p in self.priority if p != code],
        )

    def add_rule(self, code: str, rule: TreatmentRule) -> "Catalog":
        if not self.has_code(code):
            raise CatalogError(f"unknown condition {code!r}")
        rules = {k: [r.model_dump() for r in v] for k, v in self.rules.items()}
        rules.setdefault(code, []).append(rule.model_dump())
        return self._replace(rules=rules)

    def remove_rule(self, code: str, index: int) -> "Catalog":
        current = self.rules_for(code)
        if not 0 <= index < len(current):
            raise CatalogError(f"condition {code!r} has no rule at index {index}")
        del current[index]
        rules = {k: [r.model_dump() for r in v] for k, v in self.rules.items()}
        rules[code] = [r.model_dump() for r in current]
        return self._replace(rules=rules)

    def move_rule(self, code: str, from_index: int, to_index: int) -> "Catalog":
        current = self.rules_for(code)
        if not 0 <= from_index < len(current) or not 0 <= to_index < len(current):
            raise CatalogError(f"rule move {from_index}->{to_index} out of range for {code!r}")
        moved = current.pop(from_index)
        current.insert(to_index, moved)
        rules = {k: [r.model_dump() for r in v] for k, v in self.rules.items()}
        rules[code] = [r.model_dump() for r in current]
        return self._replace(rules=rules)


def _rule(name: str, *steps: str) -> TreatmentRule:
    return TreatmentRule(name=name, step_count=len(steps), steps=list(steps))


ROOT_CANAL_STEPS = ("Canal shaping and irrigation", "Canal obturation", "Temporary seal")

DEFAULT_PRIORITY = ["per", "pul", "C4", "C3", "P2", "C2", "P1", "C1", "missing"]


def default_catalog() -> Catalog:
    conditions = [
        Condition(code="C1", display_name="C1 (early caries)", symbol="C1", style_hint="yellow"),
        Condition(code="C2", display_name="C2 (moderate caries)", symbol="C2", style_hint="orange"),
        Condition(code="C3", display_name="C3 (deep caries)", symbol="C3", style_hint="red"),
        Condition(code="C4", display_name="C4 (residual root)", symbol="C4", style_hint="dark-red"),
        Condition(code="pul", display_name="pul (pulpitis)", symbol="pul", style_hint="pink"),
        Condition(code="per", display_name="per (apical periodontitis)", symbol="per", style_hint="rose"),
        Condition(code="P1", display_name="P1 (mild periodontitis)", symbol="P1", style_hint="purple"),
        Condition(code="P2", display_name="P2 (moderate periodontitis)", symbol="P2", style_hint="dark-purple"),
        Condition(code="missing", display_name="Missing tooth", symbol="×", style_hint="gray"),
    ]
    rules = {
        "C1": [_rule("Fluoride application", "Fluoride application")],
        "C2": [
            _rule("Resin filling", "Resin filling"),
            _rule("Inlay", "Impression", "Seating"),
        ],
        "C3": [
            _rule("Pulpectomy", "Pulpectomy"),
            _rule("Root canal treatment", *ROOT_CANAL_STEPS),
            _rule("Crown", "Core build-up", "Impression", "Seating"),
        ],
        "C4": [
            _rule("Root canal treatment", *ROOT_CANAL_STEPS),
            _rule("Extraction", "Extraction"),
        ],
        "pul": [_rule("Root canal treatment", "Pulpectomy", "Canal shaping and irrigation", "Canal obturation")],
        "per": [
            _rule(
                "Root canal treatment",
                "Canal shaping and irrigation",
                "Canal irrigation",
                "Canal obturation",
                "Temporary seal",
            ),
            _rule("Extraction", "Extraction"),
        ],
        "P1": [_rule("Scaling", "Scaling")],
        "P2": [_rule("SRP", "Scaling", "Root planing")],
        "missing": [
            _rule("Implant", "Implant placement", "Healing period", "Impression", "Seating"),
            _rule("Bridge", "Abutment preparation", "Impression", "Seating"),
        ],
    }
    return Catalog(conditions=conditions, rules=rules, priority=list(DEFAULT_PRIORITY))
