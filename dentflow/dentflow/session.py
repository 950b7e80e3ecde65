from __future__ import annotations

import logging
from typing import List, Mapping, Optional

from .allocator import ScheduleAllocator
from .catalog import Catalog, default_catalog
from .chart import ToothConditions
from .config import WorkflowSettings
from .generator import generate, longest_course, scaffold_slot_count
from .overrides import SelectionOverrides
from .schema import PlaceResult, ScheduleSlot, SessionSnapshot, UnscheduledGroup, WorkflowNode

logger = logging.getLogger(__name__)


class UnknownUnitError(KeyError):
    pass


class WorkflowSession:
    """One clinician's editing session: chart, rule choices and visit slots."""

    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        settings: Optional[WorkflowSettings] = None,
        tooth_conditions: ToothConditions | Mapping[str, List[str]] | None = None,
        overrides: Optional[Mapping[str, int]] = None,
    ):
        self.catalog = catalog or default_catalog()
        self.settings = settings or WorkflowSettings()
        if isinstance(tooth_conditions, ToothConditions):
            self.tooth_conditions = tooth_conditions
        else:
            self.tooth_conditions = ToothConditions(tooth_conditions)
        self.overrides = SelectionOverrides(overrides)
        self.allocator = ScheduleAllocator((), slot_count=self.settings.slot_count)

    @property
    def grouping_mode(self):
        return self.settings.grouping_mode

    # ---------- chart input ----------

    def record_condition(self, code: str, tooth: Optional[str] = None) -> Optional[str]:
        """Toggle ``code`` on ``tooth``; without a tooth (or in bulk mode) record an untied finding.

        Returns the tooth identifier carrying the code, or None if it was removed.
        """
        if tooth is None or self.settings.bulk_condition_mode:
            return self.tooth_conditions.add_untied(code)
        return tooth if self.tooth_conditions.toggle(tooth, code) else None

    # ---------- generation ----------

    def slot_count_for(self, nodes: List[WorkflowNode]) -> int:
        return max(self.settings.slot_count, scaffold_slot_count(len(nodes)), longest_course(nodes))

    def generate(self) -> List[WorkflowNode]:
        nodes = generate(self.tooth_conditions, self.catalog, self.grouping_mode, self.overrides)
        if not nodes:
            logger.info("no clinical input yet; workflow is empty")
        else:
            logger.info("generated %d cards across %d units", len(nodes), len({n.unit_key for n in nodes}))
        self.allocator = ScheduleAllocator(nodes, slot_count=self.slot_count_for(nodes))
        return nodes

    def select_rule(self, unit_key: str, rule_index: int) -> List[str]:
        """Switch ``unit_key`` to another alternative rule.

        Only the cards of that unit are replaced; every other card keeps its id
        and placement. Returns the ids of replaced cards that were scheduled.
        """
        current = self.allocator.nodes()
        unit = next((n for n in current if n.unit_key == unit_key), None)
        if unit is None:
            raise UnknownUnitError(unit_key)
        rules = self.catalog.rules_for(unit.condition)
        if not 0 <= rule_index < len(rules):
            raise ValueError(f"unit {unit_key} has {len(rules)} alternative rules, got index {rule_index}")
        if not self.overrides.set(unit_key, rule_index) or rule_index == unit.selected_rule_index:
            return []

        fresh = generate(self.tooth_conditions, self.catalog, self.grouping_mode, self.overrides)
        replacement = [n for n in fresh if n.unit_key == unit_key]
        if not replacement:
            logger.warning("unit %s no longer present on the chart; its cards were removed", unit_key)

        merged: List[WorkflowNode] = []
        inserted = False
        for node in current:
            if node.unit_key != unit_key:
                merged.append(node)
            elif not inserted:
                merged.extend(replacement)
                inserted = True
        dropped = self.allocator.sync(merged)
        self.allocator.ensure_slots(longest_course(merged))
        logger.info("unit %s switched to rule %d; %d placements dropped", unit_key, rule_index, len(dropped))
        return dropped

    def clear_workflow(self) -> None:
        self.overrides.clear()
        self.allocator = ScheduleAllocator((), slot_count=self.settings.slot_count)

    # ---------- scheduling ----------

    def place(self, node_id: str, slot: int) -> PlaceResult:
        return self.allocator.place(node_id, slot)

    def unplace(self, node_id: str) -> None:
        self.allocator.unplace(node_id)

    def nodes(self) -> List[WorkflowNode]:
        return self.allocator.nodes()

    def slots(self) -> List[ScheduleSlot]:
        return self.allocator.slots()

    def unscheduled_groups(self) -> List[UnscheduledGroup]:
        return self.allocator.unscheduled_groups()

    # ---------- snapshots ----------

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            tooth_conditions=self.tooth_conditions.to_dict(),
            workflow_nodes=self.allocator.nodes(),
            schedule_slots=self.allocator.slots(),
            selected_overrides=self.overrides.as_dict(),
            catalog_version=self.catalog.version(),
            grouping_mode=self.grouping_mode,
        )

    @classmethod
    def restore(
        cls,
        snapshot: SessionSnapshot,
        catalog: Optional[Catalog] = None,
        settings: Optional[WorkflowSettings] = None,
    ) -> "WorkflowSession":
        settings = (settings or WorkflowSettings()).model_copy(update={"grouping_mode": snapshot.grouping_mode})
        session = cls(
            catalog=catalog,
            settings=settings,
            tooth_conditions=snapshot.tooth_conditions,
            overrides=snapshot.selected_overrides,
        )
        if session.catalog.version() != snapshot.catalog_version:
            logger.warning(
                "snapshot was built with catalog %s, current catalog is %s",
                snapshot.catalog_version,
                session.catalog.version(),
            )
        session.allocator = ScheduleAllocator.from_slots(snapshot.workflow_nodes, snapshot.schedule_slots)
        return session
