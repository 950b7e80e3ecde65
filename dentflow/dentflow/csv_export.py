from __future__ import annotations

import csv
from typing import Any, Dict, List

from .schema import SessionSnapshot, WorkflowNode


CSV_HEADERS = [
    "slot",
    "card_id",
    "condition",
    "treatment",
    "step",
    "teeth",
    "card_number",
    "total_cards",
    "unit_key",
]


def _row(node: WorkflowNode, slot: int | None) -> Dict[str, Any]:
    return {
        "slot": "" if slot is None else slot,
        "card_id": node.id,
        "condition": node.condition,
        "treatment": node.treatment_name,
        "step": node.step_name,
        "teeth": "|".join(node.teeth),
        "card_number": node.card_number,
        "total_cards": node.total_cards,
        "unit_key": node.unit_key,
    }


def plan_rows(snapshot: SessionSnapshot) -> List[Dict[str, Any]]:
    """Scheduled cards in slot order, then unscheduled cards in generation order."""
    rows: List[Dict[str, Any]] = []
    placed = set()
    for slot in sorted(snapshot.schedule_slots, key=lambda s: s.slot_index):
        for node in slot.nodes:
            rows.append(_row(node, slot.slot_index))
            placed.add(node.id)
    for node in snapshot.workflow_nodes:
        if node.id not in placed:
            rows.append(_row(node, None))
    return rows


def to_csv(snapshot: SessionSnapshot, out_path: str) -> None:
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=CSV_HEADERS)
        w.writeheader()
        for row in plan_rows(snapshot):
            w.writerow(row)
