"""Tests for roadmap reconciliation."""

import json

from roadmapflow.core.roadmap_reconciler import (
    DEFAULT_SUMMARY,
    extract_milestones,
    fuzzy_match,
    match_dependencies,
    match_priority,
    reconcile,
)
from roadmapflow.models.roadmap import FeatureStatus, PriorityLevel, RiskLevel

from .helpers import EXTRACTION, PLANNING


class TestMatching:
    """Test cases for fuzzy priority and dependency matching."""

    def test_fuzzy_match_is_symmetric_containment(self):
        assert fuzzy_match("Auth", "User Auth Flow")
        assert fuzzy_match("user auth flow", "AUTH")
        assert not fuzzy_match("Billing", "User Auth")
        assert not fuzzy_match("", "Auth")

    def test_priority_buckets_strongest_first(self):
        extraction = {"must_have": ["Auth"], "should_have": ["User Auth Flow"]}
        assert match_priority("User Auth Flow", extraction) == PriorityLevel.MUST_HAVE

    def test_priority_under_nested_priorities(self):
        extraction = {"priorities": {"could_have": [{"name": "Dark Mode"}]}}
        assert match_priority("Dark mode", extraction) == PriorityLevel.COULD_HAVE

    def test_priority_falls_back_to_keyword_then_wont_have(self):
        assert match_priority("Export", {}, explicit="Should Have") == PriorityLevel.SHOULD_HAVE
        assert match_priority("Export", {}) == PriorityLevel.WONT_HAVE

    def test_dependencies_from_list_and_mapping(self):
        listed = {"feature_dependencies": [{"feature": "Task Board", "depends_on": ["User Auth"]}]}
        mapped = {"feature_dependencies": {"Task Board": ["User Auth", "Storage"]}}

        assert match_dependencies("Task Board", listed) == ["User Auth"]
        assert match_dependencies("Task Board", mapped) == ["User Auth", "Storage"]
        assert match_dependencies("Reports", listed, fallback=["Task Board"]) == ["Task Board"]
        assert match_dependencies("Reports", listed) == []


class TestMilestones:
    """Test cases for milestone extraction."""

    def test_gates_win(self):
        milestones = extract_milestones({"quarterly_breakdown": {
            "Q2": {"milestone_gate": "Beta Go/No-Go", "narrative": "Big release."},
        }})
        assert [(m.name, m.quarter) for m in milestones] == [("Beta Go/No-Go", 2)]

    def test_narrative_sentences_with_keywords(self):
        narrative = "Hire the team. Public launch of the mobile app with a very long trailing description. Retro"
        milestones = extract_milestones({"quarterly_breakdown": {"Q4": narrative}})

        assert len(milestones) == 1
        assert milestones[0].quarter == 4
        assert milestones[0].name == "Public launch of the mobile app with a very long t"
        assert len(milestones[0].name) == 50

    def test_defaults_when_nothing_found(self):
        milestones = extract_milestones({})
        assert [(m.name, m.quarter) for m in milestones] == [("Alpha Launch", 2), ("Market GA", 4)]


class TestReconcile:
    """Test cases for building the roadmap entity graph."""

    def test_quarter_union_and_first_seen_order(self):
        """Test that a feature listed in Q1 and Q2 spans both quarters."""
        roadmap = reconcile(EXTRACTION, PLANNING)

        assert [feature.name for feature in roadmap.features] == ["User Auth", "Task Board", "Reports"]
        assert roadmap.find_feature("User Auth").quarters == [1, 2]
        assert roadmap.find_feature("Task Board").quarters == [2]
        assert roadmap.find_feature("Reports").quarters == [3]

    def test_feature_fields_are_reconciled(self):
        roadmap = reconcile(EXTRACTION, PLANNING)
        auth = roadmap.find_feature("User Auth")
        reports = roadmap.find_feature("Reports")

        assert auth.id == "feature_1"
        assert auth.description == "Sign in"
        assert auth.effort == 3
        assert auth.priority == PriorityLevel.MUST_HAVE
        assert auth.workstream == "Core Platform"
        assert auth.confidence == 75
        assert reports.priority == PriorityLevel.COULD_HAVE
        assert reports.workstream == "Insights"
        assert reports.risk == RiskLevel.HIGH
        assert reports.confidence == 100
        assert reports.is_critical_path

    def test_roadmap_level_fields(self):
        roadmap = reconcile(EXTRACTION, PLANNING)

        assert [ws.name for ws in roadmap.workstreams] == ["Core Platform", "Insights"]
        assert [(m.name, m.quarter) for m in roadmap.milestones] == [("Auth Go/No-Go", 1), ("Insights Beta", 3)]
        assert roadmap.summary == "Ship the core loop first"
        assert roadmap.insights[0].severity == RiskLevel.MEDIUM

    def test_accepts_raw_model_text(self):
        roadmap = reconcile("```json\n" + json.dumps(EXTRACTION) + "\n```", {"text": json.dumps(PLANNING)})
        assert len(roadmap.features) == 3

    def test_metadata_quarters_and_subtasks(self):
        planning = {
            "q1_features": ["Sync"],
            "feature_metadata": [{
                "name": "sync",
                "assigned_quarters": [3, "4", 9],
                "status": "In Progress",
                "subtasks": [{"name": "Schema", "status": "done"}, {"status": "planned"}],
            }],
        }
        feature = reconcile({"features": []}, planning).features[0]

        assert feature.quarters == [1, 3, 4]
        assert feature.status == FeatureStatus.IN_PROGRESS
        assert [(s.name, s.status) for s in feature.subtasks] == [
            ("Schema", FeatureStatus.COMPLETED),
            ("Process Item", FeatureStatus.PLANNED),
        ]

    def test_unplanned_features_default_to_q1_and_core(self):
        roadmap = reconcile({"features": [{"name": "Search"}]}, {"workstreams": []})
        feature = roadmap.features[0]

        assert feature.quarters == [1]
        assert feature.workstream == "Core"
        assert feature.id == "f-1"
        assert roadmap.summary == DEFAULT_SUMMARY

    def test_duplicate_ids_are_replaced(self):
        extraction = {"features": [{"id": "x", "name": "A"}, {"id": "x", "name": "B"}]}
        roadmap = reconcile(extraction, {"workstreams": []})
        assert [feature.id for feature in roadmap.features] == ["x", "f-2"]

    def test_unparseable_or_empty_inputs_give_none(self):
        assert reconcile("not json", PLANNING) is None
        assert reconcile(EXTRACTION, None) is None
        assert reconcile({"vision": "v"}, {"strategy": "s"}) is None

    def test_out_of_range_numbers_are_dropped(self):
        """Test that numbers too large for an int leave the field unset."""
        extraction = '{"features": [{"name": "A", "estimated_effort": 1e400}]}'
        planning = {
            "q2_features": ["A"],
            "feature_metadata": [{"name": "A", "assigned_quarters": [1e400], "confidence_score": -1e400}],
        }

        feature = reconcile(extraction, planning).features[0]

        assert feature.effort is None
        assert feature.quarters == [2]
        assert feature.confidence == 75
