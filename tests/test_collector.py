"""Tests for result aggregation."""

import json

import pytest

from visualjudge.evaluator.collector import ResultCollector
from visualjudge.models.evaluation import SuiteAssessment


@pytest.fixture
def collector(make_result):
    collector = ResultCollector()
    collector.add_results([
        make_result("banner", "Default", passed=True, confidence=0.9),
        make_result("status-bar", "Idle", passed=False, confidence=0.5),
        make_result("banner", "Long Title", passed=True, confidence=0.7),
    ])
    return collector


class TestResultCollector:
    def test_summary_totals(self, collector):
        summary = collector.get_summary()
        assert summary.total_tests == 3
        assert summary.passed == 2
        assert summary.failed == 1
        assert summary.pass_rate == pytest.approx(2 / 3)
        assert summary.average_confidence == pytest.approx(0.7)
        assert summary.duration >= 0

    def test_empty_summary(self):
        summary = ResultCollector().get_summary()
        assert summary.total_tests == 0
        assert summary.pass_rate == 0.0
        assert summary.average_confidence == 0.0

    def test_component_grouping_keeps_insertion_order(self, collector):
        banner = collector.get_component_results("banner")
        assert banner.scenarios == 2
        assert banner.passed == 2
        assert [r.scenario_name for r in banner.results] == ["Default", "Long Title"]
        assert list(collector.get_all_results()) == ["banner", "status-bar"]

    def test_unknown_component(self, collector):
        assert collector.get_component_results("missing") is None

    def test_summary_reflects_later_additions(self, collector, make_result):
        collector.add_result(make_result("status-bar", "Busy", passed=True))
        assert collector.get_summary().total_tests == 4
        assert collector.get_component_results("status-bar").scenarios == 2

    def test_results_flattened_by_component(self, collector):
        assert [r.scenario_name for r in collector.results()] == ["Default", "Long Title", "Idle"]

    def test_export_to_json(self, collector):
        data = json.loads(collector.export_to_json())
        assert data["summary"]["total_tests"] == 3
        assert [c["component_name"] for c in data["components"]] == ["banner", "status-bar"]
        assert "assessment" not in data

    def test_export_includes_assessment(self, collector):
        assessment = SuiteAssessment(overall_status="good", recommendations=["Fix status bar"])
        data = json.loads(collector.export_to_json(assessment))
        assert data["assessment"]["overall_status"] == "good"
