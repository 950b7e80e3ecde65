import pytest

from dentflow.catalog import default_catalog
from dentflow.config import WorkflowSettings
from dentflow.generator import structural_key
from dentflow.overrides import SelectionOverrides
from dentflow.schema import TreatmentRule
from dentflow.session import UnknownUnitError, WorkflowSession


def _session(chart, **settings):
    ws = WorkflowSession(settings=WorkflowSettings(**settings), tooth_conditions=chart)
    ws.generate()
    return ws


def _cards(ws, unit_key):
    return [n for n in ws.nodes() if n.unit_key == unit_key]


def test_rule_change_only_touches_its_unit():
    ws = _session({"46": ["C2"], "47": ["C2"], "21": ["per"]})
    others_before = [(n.id, structural_key(n)) for n in ws.nodes() if n.unit_key != "C2-46"]

    ws.select_rule("C2-46", 1)

    others_after = [(n.id, structural_key(n)) for n in ws.nodes() if n.unit_key != "C2-46"]
    assert others_after == others_before
    assert [n.step_name for n in _cards(ws, "C2-46")] == ["Impression", "Seating"]
    assert ws.overrides.get("C2-46") == 1


def test_rule_change_drops_placements_of_replaced_cards_only():
    ws = _session({"46": ["C2"], "47": ["C2"]})
    old = _cards(ws, "C2-46")[0]
    kept = _cards(ws, "C2-47")[0]
    ws.place(old.id, 1)
    ws.place(kept.id, 1)

    dropped = ws.select_rule("C2-46", 1)

    assert dropped == [old.id]
    assert ws.allocator.node(old.id) is None
    assert ws.allocator.slot_of(kept.id) == 1
    assert all(ws.allocator.slot_of(n.id) is None for n in _cards(ws, "C2-46"))


def test_rule_change_keeps_card_order():
    ws = _session({"21": ["per"], "46": ["C2"], "11": ["C1"]})
    ws.select_rule("C2-46", 1)
    assert [n.condition for n in ws.nodes()] == ["per"] * 4 + ["C2", "C2", "C1"]


def test_reselecting_same_rule_is_a_no_op():
    ws = _session({"46": ["C2"]})
    ids = [n.id for n in ws.nodes()]
    assert ws.select_rule("C2-46", 0) == []
    assert [n.id for n in ws.nodes()] == ids


def test_unknown_unit_raises():
    ws = _session({"46": ["C2"]})
    with pytest.raises(UnknownUnitError):
        ws.select_rule("C2-11", 1)


def test_full_generation_resets_schedule():
    ws = _session({"16": ["P2"]})
    first = ws.nodes()[0]
    ws.place(first.id, 1)
    ws.generate()
    assert all(not s.nodes for s in ws.slots())
    assert ws.allocator.node(first.id) is None


def test_slot_count_policy():
    assert _session({}).allocator.slot_count == 15
    assert _session({"16": ["P2"]}, slot_count=3).allocator.slot_count == 8
    ws = _session({"21": ["per"]}, slot_count=1)
    assert ws.allocator.slot_count == 8


def test_bulk_mode_records_untied_findings():
    ws = WorkflowSession(settings=WorkflowSettings(bulk_condition_mode=True))
    tooth = ws.record_condition("P1", tooth="11")
    assert tooth.startswith("bulk-P1-")
    nodes = ws.generate()
    assert nodes[0].teeth == [tooth]


def test_record_condition_toggles():
    ws = WorkflowSession()
    assert ws.record_condition("C1", "11") == "11"
    assert ws.record_condition("C1", "11") is None
    assert len(ws.tooth_conditions) == 0


def test_snapshot_restore_preserves_schedule():
    ws = _session({"16": ["P2"], "46": ["C2"]})
    ws.select_rule("C2-46", 1)
    card1, card2 = _cards(ws, "P2-16")
    ws.place(card1.id, 2)
    ws.place(card2.id, 3)

    snap = ws.snapshot()
    restored = WorkflowSession.restore(snap)

    assert restored.snapshot() == snap
    assert restored.allocator.slot_of(card2.id) == 3
    assert restored.place(card2.id, 1).conflict.kind == "too_early"
    assert restored.overrides.get("C2-46") == 1


def test_override_store_reports_changes():
    store = SelectionOverrides()
    assert store.get("C2-46") is None
    assert store.set("C2-46", 0) is False
    assert store.set("C2-46", 1) is True
    assert store.set("C2-46", 1) is False
    assert dict(store) == {"C2-46": 1}
    with pytest.raises(ValueError):
        store.set("C2-46", -1)
    store.discard("C2-46")
    assert len(store) == 0


def test_clear_workflow_discards_cards_and_choices():
    ws = _session({"46": ["C2"]})
    ws.select_rule("C2-46", 1)
    card = ws.nodes()[0]
    ws.place(card.id, 1)
    assert ws.allocator.is_scheduled(card.id)

    ws.clear_workflow()
    assert ws.nodes() == []
    assert len(ws.overrides) == 0
    assert ws.tooth_conditions.codes_on("46") == ["C2"]


def test_out_of_range_rule_choice_is_rejected():
    ws = _session({"16": ["P2"]})
    card1, card2 = _cards(ws, "P2-16")
    ws.place(card1.id, 1)
    ws.place(card2.id, 2)

    with pytest.raises(ValueError):
        ws.select_rule("P2-16", 9)

    assert [n.id for n in _cards(ws, "P2-16")] == [card1.id, card2.id]
    assert ws.allocator.slot_of(card2.id) == 2
    assert "P2-16" not in ws.overrides


def test_rule_change_grows_slots_for_longer_course():
    catalog = default_catalog().add_rule("C2", TreatmentRule(name="Staged restoration", step_count=12))
    ws = WorkflowSession(catalog=catalog, settings=WorkflowSettings(slot_count=1), tooth_conditions={"46": ["C2"]})
    ws.generate()
    assert ws.allocator.slot_count == 8

    ws.select_rule("C2-46", 2)

    cards = _cards(ws, "C2-46")
    assert len(cards) == 12
    assert ws.allocator.slot_count == 12
    assert len(ws.slots()) == 12
    assert ws.place(cards[-1].id, 12).ok
