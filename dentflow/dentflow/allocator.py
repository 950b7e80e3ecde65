"""
Schedule slot allocator.

Holds the cards of one generated workflow and their placement into numbered
visit slots (1..slot_count). Each card's slot is stored once, in
``_placement``; the per-slot id lists only keep the order cards were dropped
into a slot. Cards absent from ``_placement`` are unscheduled.

Moves of sequential cards are guarded so that, within one course, a card
with a smaller card number always sits in a strictly earlier slot than any
later card of the same course. Rejected moves return a ``Conflict`` and never
touch state.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .schema import Conflict, PlaceResult, ScheduleSlot, UnscheduledGroup, WorkflowNode

logger = logging.getLogger(__name__)

DEFAULT_SLOT_COUNT = 15


def _rejected(kind: str, reason: str, required_slot: Optional[int] = None) -> PlaceResult:
    return PlaceResult(ok=False, conflict=Conflict(kind=kind, reason=reason, required_slot=required_slot))


class ScheduleAllocator:
    def __init__(self, nodes: Iterable[WorkflowNode] = (), slot_count: int = DEFAULT_SLOT_COUNT):
        if slot_count < 1:
            raise ValueError(f"slot_count must be >= 1, got {slot_count}")
        self._slot_count = slot_count
        self._nodes: Dict[str, WorkflowNode] = {}
        self._placement: Dict[str, int] = {}
        self._slots: Dict[int, List[str]] = {i: [] for i in range(1, slot_count + 1)}
        for node in nodes:
            if node.id in self._nodes:
                raise ValueError(f"duplicate node id: {node.id}")
            self._nodes[node.id] = node

    @property
    def slot_count(self) -> int:
        return self._slot_count

    # ---------- queries ----------

    def node(self, node_id: str) -> Optional[WorkflowNode]:
        return self._nodes.get(node_id)

    def nodes(self) -> List[WorkflowNode]:
        return list(self._nodes.values())

    def slot_of(self, node_id: str) -> Optional[int]:
        return self._placement.get(node_id)

    def is_scheduled(self, node_id: str) -> bool:
        return node_id in self._placement

    def slots(self) -> List[ScheduleSlot]:
        return [
            ScheduleSlot(slot_index=index, nodes=[self._nodes[node_id] for node_id in ids])
            for index, ids in self._slots.items()
        ]

    def unscheduled(self) -> List[WorkflowNode]:
        return [n for n in self._nodes.values() if n.id not in self._placement]

    def unscheduled_groups(self) -> List[UnscheduledGroup]:
        groups: Dict[str, List[WorkflowNode]] = {}
        for node in self.unscheduled():
            groups.setdefault(node.base_id, []).append(node)
        return [
            UnscheduledGroup(base_id=base_id, nodes=sorted(members, key=lambda n: n.card_number))
            for base_id, members in groups.items()
        ]

    def _placed_siblings(self, node: WorkflowNode) -> List[tuple]:
        return [
            (other, self._placement[other.id])
            for other in self._nodes.values()
            if other.base_id == node.base_id and other.id != node.id and other.id in self._placement
        ]

    # ---------- moves ----------

    def check(self, node_id: str, target_slot: int) -> PlaceResult:
        """Validate a move without performing it."""
        node = self._nodes.get(node_id)
        if node is None:
            return _rejected("unknown_node", f"no card with id {node_id!r}")
        if not 1 <= target_slot <= self._slot_count:
            return _rejected("invalid_slot", f"slot {target_slot} outside 1..{self._slot_count}")
        if not node.is_sequential:
            return PlaceResult(ok=True)

        siblings = self._placed_siblings(node)
        for other, slot in siblings:
            if other.card_number > node.card_number and slot <= target_slot:
                return _rejected(
                    "later_step_placed_earlier",
                    f"step {other.card_number}/{other.total_cards} of {node.treatment_name} is already in slot {slot}",
                )
        required = max([target_slot] + [slot + 1 for other, slot in siblings if other.card_number < node.card_number])
        if required > target_slot:
            return _rejected(
                "too_early",
                f"step {node.card_number}/{node.total_cards} of {node.treatment_name} needs slot {required} or later",
                required_slot=required,
            )
        return PlaceResult(ok=True)

    def place(self, node_id: str, target_slot: int) -> PlaceResult:
        result = self.check(node_id, target_slot)
        if not result.ok:
            logger.debug("rejected move of %s to slot %s: %s", node_id, target_slot, result.conflict.reason)
            return result
        self._detach(node_id)
        self._slots[target_slot].append(node_id)
        self._placement[node_id] = target_slot
        return result

    def unplace(self, node_id: str) -> None:
        self._detach(node_id)

    def _detach(self, node_id: str) -> None:
        slot = self._placement.pop(node_id, None)
        if slot is not None:
            self._slots[slot].remove(node_id)

    # ---------- regeneration ----------

    def ensure_slots(self, slot_count: int) -> None:
        for index in range(self._slot_count + 1, slot_count + 1):
            self._slots[index] = []
        self._slot_count = max(self._slot_count, slot_count)

    def sync(self, nodes: Iterable[WorkflowNode]) -> List[str]:
        """Replace the card set, keeping placements of ids that survive.

        Returns the ids whose placement was dropped.
        """
        fresh: Dict[str, WorkflowNode] = {}
        for node in nodes:
            if node.id in fresh:
                raise ValueError(f"duplicate node id: {node.id}")
            fresh[node.id] = node
        dropped = [node_id for node_id in self._placement if node_id not in fresh]
        for node_id in dropped:
            self._detach(node_id)
        self._nodes = fresh
        return dropped

    @classmethod
    def from_slots(cls, nodes: Iterable[WorkflowNode], slots: Iterable[ScheduleSlot]) -> "ScheduleAllocator":
        """Rebuild allocator state from persisted nodes and slot contents."""
        slots = list(slots)
        slot_count = max([DEFAULT_SLOT_COUNT if not slots else 1] + [s.slot_index for s in slots])
        allocator = cls(nodes, slot_count=slot_count)
        for slot in sorted(slots, key=lambda s: s.slot_index):
            for node in slot.nodes:
                if node.id not in allocator._nodes:
                    raise ValueError(f"slot {slot.slot_index} holds unknown card {node.id}")
                if node.id in allocator._placement:
                    raise ValueError(f"card {node.id} is placed in more than one slot")
                allocator._slots[slot.slot_index].append(node.id)
                allocator._placement[node.id] = slot.slot_index
        for node_id, slot in allocator._placement.items():
            node = allocator._nodes[node_id]
            for other, other_slot in allocator._placed_siblings(node):
                if other.card_number > node.card_number and other_slot <= slot:
                    raise ValueError(f"course {node.base_id} has step {other.card_number} not after step {node.card_number}")
        return allocator
