from __future__ import annotations

import logging
import math
import uuid
from typing import Iterable, List, Mapping, Optional, Tuple

from .catalog import Catalog
from .chart import ToothConditions, chart_order
from .schema import GroupingMode, TreatmentRule, WorkflowNode

logger = logging.getLogger(__name__)

MIN_SCAFFOLD_SLOTS = 8


def _node_id(base_id: str, card_number: int) -> str:
    return f"{base_id}#{card_number}-{uuid.uuid4().hex[:12]}"


def _as_chart(tooth_conditions: ToothConditions | Mapping[str, List[str]]) -> ToothConditions:
    if isinstance(tooth_conditions, ToothConditions):
        return tooth_conditions
    return ToothConditions(tooth_conditions)


def unit_key_for(condition: str, teeth: Iterable[str]) -> str:
    return f"{condition}-{','.join(teeth)}"


def _units(condition: str, teeth: List[str], grouping_mode: GroupingMode) -> List[Tuple[str, List[str]]]:
    if grouping_mode == "individual":
        return [(unit_key_for(condition, [tooth]), [tooth]) for tooth in teeth]
    if grouping_mode == "grouped":
        grouped = chart_order(teeth)
        return [(unit_key_for(condition, grouped), grouped)]
    raise ValueError(f"unknown grouping mode: {grouping_mode}")


def resolve_rule(rules: List[TreatmentRule], override: Optional[int]) -> Tuple[int, Optional[TreatmentRule]]:
    if not rules:
        return 0, None
    index = override or 0
    if not 0 <= index < len(rules):
        index = 0
    return index, rules[index]


def expand_rule(condition: str, unit_key: str, teeth: List[str], rules: List[TreatmentRule], index: int) -> List[WorkflowNode]:
    rule = rules[index]
    base_id = f"{condition}-{rule.name}-{','.join(teeth)}"
    return [
        WorkflowNode(
            id=_node_id(base_id, i + 1),
            base_id=base_id,
            condition=condition,
            treatment_name=rule.name,
            step_name=rule.step_name(i),
            teeth=list(teeth),
            card_number=i + 1,
            total_cards=rule.step_count,
            unit_key=unit_key,
            available_rules=list(rules),
            selected_rule_index=index,
        )
        for i in range(rule.step_count)
    ]


def generate(
    tooth_conditions: ToothConditions | Mapping[str, List[str]],
    catalog: Catalog,
    grouping_mode: GroupingMode = "individual",
    overrides: Optional[Mapping[str, int]] = None,
) -> List[WorkflowNode]:
    chart = _as_chart(tooth_conditions)
    overrides = overrides or {}
    nodes: List[WorkflowNode] = []

    if len(chart) == 0:
        return nodes

    uncataloged = [code for code in chart.all_codes() if not catalog.has_code(code)]
    if uncataloged:
        logger.warning("condition codes not in catalog were skipped: %s", ", ".join(uncataloged))

    for condition in catalog.priority_order():
        teeth = chart_order(chart.teeth_with(condition))
        if not teeth:
            continue
        rules = catalog.rules_for(condition)
        for unit_key, unit_teeth in _units(condition, teeth, grouping_mode):
            index, rule = resolve_rule(rules, overrides.get(unit_key))
            if rule is None:
                logger.warning("no treatment rules for condition %r; unit %s skipped", condition, unit_key)
                continue
            nodes.extend(expand_rule(condition, unit_key, unit_teeth, rules, index))
    return nodes


def scaffold_slot_count(node_count: int) -> int:
    return max(MIN_SCAFFOLD_SLOTS, math.ceil(node_count / 2))


def longest_course(nodes: Iterable[WorkflowNode]) -> int:
    return max((n.total_cards for n in nodes), default=0)


def structural_key(node: WorkflowNode) -> Tuple[str, str, str, Tuple[str, ...], int]:
    return (node.base_id, node.condition, node.treatment_name, tuple(node.teeth), node.card_number)
