from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


GroupingMode = Literal["individual", "grouped"]
ConflictKind = Literal["too_early", "later_step_placed_earlier", "unknown_node", "invalid_slot"]


class Condition(BaseModel):
    code: str = Field(min_length=1)
    display_name: str
    symbol: str
    style_hint: str = ""

    model_config = {"extra": "forbid", "frozen": True}


class TreatmentRule(BaseModel):
    name: str = Field(min_length=1)
    step_count: int = Field(ge=1)
    steps: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_steps(self) -> "TreatmentRule":
        if len(self.steps) > self.step_count:
            raise ValueError(f"rule {self.name!r} names {len(self.steps)} steps but needs only {self.step_count} visits")
        return self

    def step_name(self, index: int) -> str:
        if index < len(self.steps) and self.steps[index]:
            return self.steps[index]
        return f"{self.name}({index + 1})"

    model_config = {"extra": "forbid", "frozen": True}


class WorkflowNode(BaseModel):
    id: str
    base_id: str
    condition: str
    treatment_name: str
    step_name: str
    teeth: List[str]
    card_number: int = Field(ge=1)
    total_cards: int = Field(ge=1)
    is_sequential: bool = False
    unit_key: str
    available_rules: List[TreatmentRule] = Field(default_factory=list)
    selected_rule_index: int = Field(default=0, ge=0)
    has_multiple_rules: bool = False

    @model_validator(mode="after")
    def derive_flags(self) -> "WorkflowNode":
        if self.card_number > self.total_cards:
            raise ValueError(f"card {self.card_number} exceeds course length {self.total_cards}")
        self.is_sequential = self.total_cards > 1
        self.has_multiple_rules = len(self.available_rules) > 1
        return self

    model_config = {"extra": "forbid"}


class ScheduleSlot(BaseModel):
    slot_index: int = Field(ge=1)
    nodes: List[WorkflowNode] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class Conflict(BaseModel):
    kind: ConflictKind
    reason: str
    required_slot: Optional[int] = None

    model_config = {"extra": "forbid"}


class PlaceResult(BaseModel):
    ok: bool
    conflict: Optional[Conflict] = None

    model_config = {"extra": "forbid"}


class UnscheduledGroup(BaseModel):
    base_id: str
    nodes: List[WorkflowNode]

    @property
    def is_stack(self) -> bool:
        return len(self.nodes) > 1 or any(n.is_sequential for n in self.nodes)

    model_config = {"extra": "forbid"}


class SessionSnapshot(BaseModel):
    tooth_conditions: Dict[str, List[str]] = Field(default_factory=dict)
    workflow_nodes: List[WorkflowNode] = Field(default_factory=list)
    schedule_slots: List[ScheduleSlot] = Field(default_factory=list)
    selected_overrides: Dict[str, int] = Field(default_factory=dict)
    catalog_version: str
    grouping_mode: GroupingMode = "individual"

    model_config = {"extra": "forbid"}
