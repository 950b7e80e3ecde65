import pytest

from dentflow.chart import InvalidToothError, ToothConditions, chart_order, is_untied


def test_toggle_adds_and_removes():
    chart = ToothConditions()
    assert chart.toggle("11", "C1") is True
    assert chart.toggle("11", "per") is True
    assert chart.codes_on("11") == ["C1", "per"]
    assert chart.toggle("11", "C1") is False
    assert chart.codes_on("11") == ["per"]
    chart.toggle("11", "per")
    assert "11" not in chart


def test_untied_findings_get_unique_ids():
    chart = ToothConditions({"bulk-P1-1": ["P1"]})
    tooth = chart.add_untied("P1")
    assert tooth != "bulk-P1-1"
    assert is_untied(tooth)
    assert chart.teeth_with("P1") == ["bulk-P1-1", tooth]


def test_invalid_tooth_rejected():
    with pytest.raises(InvalidToothError):
        ToothConditions({"19": ["C1"]})
    with pytest.raises(InvalidToothError):
        ToothConditions().toggle("bulk-", "C1")


def test_duplicates_collapsed_and_order_kept():
    chart = ToothConditions({"21": ["C2", "C2", "C1"], "11": ["C1"], "12": []})
    assert chart.to_dict() == {"21": ["C2", "C1"], "11": ["C1"]}
    assert chart.teeth_with("C1") == ["21", "11"]
    assert chart.all_codes() == ["C2", "C1"]


def test_clear_tooth_and_clear():
    chart = ToothConditions({"11": ["C1"], "21": ["per"]})
    chart.clear_tooth("11")
    chart.clear_tooth("18")
    assert list(chart) == ["21"]
    chart.clear()
    assert len(chart) == 0
    assert chart == ToothConditions.from_dict({})


def test_chart_order_puts_teeth_by_number_then_untied():
    assert chart_order(["bulk-P1-2", "21", "bulk-P1-1", "11", "36"]) == ["11", "21", "36", "bulk-P1-2", "bulk-P1-1"]


def test_malformed_chart_rejected():
    with pytest.raises(InvalidToothError):
        ToothConditions([{"11": ["C1"]}])
    with pytest.raises(InvalidToothError):
        ToothConditions({"11": "C1"})
