"""Unit tests for derived status projections."""
import pytest

from pcbguru.core.entities import BoundingBox, Component
from pcbguru.core.status import (
    FILTER_ISSUES, FILTER_OK, component_status, explore, format_defect_type, has_issue,
    has_voltage_mismatch, partition_components, search_components, status_with_voltage, summary_stats,
)


def make_component(designator="R1", presence="ok", condition="ok", max_voltage=None, mpn="RC0603"):
    return Component(designator=designator, mpn=mpn, bbox=BoundingBox(0.1, 0.1, 0.1, 0.1),
                     presence=presence, condition=condition, confidence=0.9, max_voltage=max_voltage)


class TestComponentStatus:
    @pytest.mark.parametrize("presence,condition,expected", [
        ("ok", "ok", "OK"),
        ("missing", "ok", "Missing"),
        ("ok", "burnt", "Burnt"),
        ("ok", "corroded", "Corroded"),
        ("missing", "burnt", "Burnt"),
        ("missing", "corroded", "Corroded"),
    ])
    def test_status_precedence(self, presence, condition, expected):
        assert component_status(make_component(presence=presence, condition=condition)) == expected


class TestVoltageMismatch:
    def test_mismatch_when_board_exceeds_max(self):
        assert has_voltage_mismatch(make_component(max_voltage=3.6), 5.0)

    def test_no_mismatch_when_equal(self):
        assert not has_voltage_mismatch(make_component(max_voltage=5.0), 5.0)

    def test_no_mismatch_without_voltage(self):
        assert not has_voltage_mismatch(make_component(max_voltage=3.6), None)
        assert not has_voltage_mismatch(make_component(max_voltage=None), 12.0)

    def test_zero_board_voltage_is_a_value(self):
        assert not has_voltage_mismatch(make_component(max_voltage=3.3), 0.0)
        assert has_voltage_mismatch(make_component(max_voltage=-1.0), 0.0)

    def test_mismatch_counts_as_issue(self):
        component = make_component(max_voltage=3.6)
        assert not has_issue(component)
        assert has_issue(component, 5.0)

    def test_status_text_includes_mismatch(self):
        component = make_component(max_voltage=3.6)
        assert status_with_voltage(component, 5.0) == "Voltage Mismatch (5V > 3.6V)"
        assert status_with_voltage(component, 3.0) == "OK"

    def test_damage_status_wins_over_mismatch(self):
        component = make_component(condition="burnt", max_voltage=3.6)
        assert status_with_voltage(component, 5.0) == "Burnt"


class TestPartitionAndSearch:
    def test_partition_is_exhaustive_and_disjoint(self, sample_analysis):
        issues, ok = partition_components(sample_analysis.components)
        assert [c.designator for c in issues] == ["C5"]
        assert [c.designator for c in ok] == ["U1"]

    def test_partition_with_voltage(self, sample_analysis):
        issues, ok = partition_components(sample_analysis.components, 12.0)
        assert {c.designator for c in issues} == {"C5", "U1"}
        assert ok == []

    def test_search_is_case_insensitive_on_designator_and_mpn(self, sample_analysis):
        assert [c.designator for c in search_components(sample_analysis.components, "u1")] == ["U1"]
        assert [c.designator for c in search_components(sample_analysis.components, "grm188")] == ["C5"]
        assert len(search_components(sample_analysis.components, "  ")) == 2

    def test_explore_filters(self, sample_analysis):
        view = explore(sample_analysis, None, "", FILTER_ISSUES)
        assert [c.designator for c in view.issues] == ["C5"]
        assert view.ok == []

        view = explore(sample_analysis, None, "", FILTER_OK)
        assert view.issues == []
        assert [c.designator for c in view.ok] == ["U1"]
        assert len(view.defects) == 1

    def test_explore_rejects_unknown_filter(self, sample_analysis):
        with pytest.raises(ValueError):
            explore(sample_analysis, None, "", "broken")


class TestFormatting:
    def test_format_defect_type(self):
        assert format_defect_type("solder_bridge") == "Solder Bridge"
        assert format_defect_type("overheating") == "Overheating"

    def test_summary_stats(self, sample_analysis):
        stats = summary_stats(sample_analysis)
        assert stats.total_components == 2
        assert stats.issue_count == 1
        assert stats.defect_count == 1
        assert stats.repair_cost == 12.5
