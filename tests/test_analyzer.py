"""Structural analyzer tests: marker rules, scoring, hints.

Covers the scoring bands, the monotonic confidence guarantee, multi-language
day names, duplicate/out-of-range weeks and duration parsing.
"""

import re

import pytest

from src.ingest import rules as r
from src.ingest.analyzer import (
    StructuralAnalyzer,
    classify_document_type,
    organization_level,
    structure_confidence,
)
from src.memory.pattern_library import PatternLibrary
from src.memory.records import PatternFingerprint


# ── Fixtures ────────────────────────────────────────────────────────

@pytest.fixture
def analyzer():
    return StructuralAnalyzer()


# ── Scoring ─────────────────────────────────────────────────────────

class TestScoring:

    def test_level_bands(self):
        assert organization_level(True, True, True, True) == "highly_structured"
        assert organization_level(True, True, True, False) == "moderately_structured"
        assert organization_level(True, False, False, False) == "basic_structure"
        assert organization_level(False, False, False, False) == "unstructured"

    def test_confidence_weights(self):
        assert structure_confidence(True, False, False, False) == 0.3
        assert structure_confidence(True, True, False, False) == 0.55
        assert structure_confidence(True, True, True, True) == 1.0
        assert structure_confidence(False, False, False, False) == 0.0

    def test_week_markers_only(self, analyzer):
        result = analyzer.analyze("Week 1\nWeek 2\nWeek 3\nWeek 4")
        assert result.organization_level == "basic_structure"
        assert result.week_structure["total_weeks"] == 4
        assert result.week_structure["has_sequential_weeks"] is True
        assert result.confidence == 0.3

    def test_adding_marker_kinds_never_lowers_confidence(self, analyzer):
        texts = [
            "Week 1",
            "Week 1\nMonday",
            "Week 1\nMonday\nSession 1",
            "Week 1\nMonday\nSession 1 lasts 45 minutes",
        ]
        scores = [analyzer.analyze(t).confidence for t in texts]
        assert scores == sorted(scores)
        assert scores[-1] == 1.0
        assert analyzer.analyze(texts[-1]).organization_level == "highly_structured"

    def test_empty_text_unstructured(self, analyzer):
        result = analyzer.analyze("")
        assert result.organization_level == "unstructured"
        assert result.confidence == 0.0
        assert result.document_type == "general_training"

    def test_soccer_plan_highly_structured(self, analyzer, soccer_text):
        result = analyzer.analyze(soccer_text, "text")
        assert result.organization_level == "highly_structured"
        assert result.week_structure["identified_weeks"] == [1, 2, 3, 4]
        assert result.session_structure["max_numbered_session"] == 5
        assert result.document_type == "training_plan"


# ── Weeks ───────────────────────────────────────────────────────────

class TestWeeks:

    def test_non_sequential(self, analyzer):
        weeks = analyzer.analyze("Week 3 intervals\nWeek 7 taper").week_structure
        assert weeks["identified_weeks"] == [3, 7]
        assert weeks["total_weeks"] == 7
        assert weeks["has_sequential_weeks"] is False

    def test_duplicates_reported(self, analyzer):
        weeks = analyzer.analyze("Week 1\nMonday\nWeek 2\nWeek 1 again").week_structure
        assert weeks["duplicate_weeks"] == [1]
        assert weeks["week_count"] == 2

    def test_week_above_range_ignored(self, analyzer):
        assert analyzer.analyze("Week 53").week_structure["has_weeks"] is False
        assert analyzer.analyze("Week 0").week_structure["has_weeks"] is False

    def test_other_languages_and_words(self, analyzer):
        weeks = analyzer.analyze("Semana 1\n2. Woche\nsemaine 3\nWeek four").week_structure
        assert weeks["identified_weeks"] == [1, 2, 3, 4]


# ── Days, sessions, durations, schedule ─────────────────────────────

class TestMarkers:

    def test_multi_language_days(self, analyzer):
        days = analyzer.analyze("Lunes, Mardi, Mittwoch, giovedì").day_structure
        assert days["days_found"] == ["Monday", "Tuesday", "Wednesday", "Thursday"]

    def test_abbreviations_are_case_sensitive(self, analyzer):
        days = analyzer.analyze("Mon: sprints\nFRI: rest\nwed is lowercase").day_structure
        assert days["days_found"] == ["Monday", "Friday"]

    def test_abbreviations_before_punctuation_and_at_end(self, analyzer):
        days = analyzer.analyze("Mon-Wed: intervals\nLong run (Thu)\nRest Sun").day_structure
        assert days["weekdays"] == ["Monday", "Wednesday", "Thursday", "Sunday"]

    def test_numbered_days(self, analyzer):
        days = analyzer.analyze("Day 1 easy\nDay 2 hard").day_structure
        assert days["days_found"] == ["day 1", "day 2"]
        assert days["weekdays"] == []

    def test_session_markers(self, analyzer):
        sessions = analyzer.analyze("Session 3: Warm-up then conditioning, cool down").session_structure
        assert sessions["max_numbered_session"] == 3
        assert sessions["session_types"] == ["conditioning", "cool-down", "warm-up"]

    def test_durations(self, analyzer):
        durations = analyzer.analyze("45-60 minutes warm, 1.5 hours, thirty minutes").duration_analysis
        assert durations["durations"] == [45, 60, 90, 30]
        assert durations["average_duration"] == 56
        assert durations["range"] == {"min": 30, "max": 90}

    def test_no_durations(self, analyzer):
        durations = analyzer.analyze("Week 1 Monday").duration_analysis
        assert durations["has_durations"] is False
        assert durations["range"] is None

    def test_schedule(self, analyzer):
        schedule = analyzer.analyze("Train 3 times per week, every Tuesday, twice a week").schedule_structure
        assert schedule["frequencies"] == [3, 2]
        assert schedule["patterns"] == ["every Tuesday"]
        assert schedule["recommended_frequency"] == 3

    def test_session_type_identification(self):
        assert r.identify_session_type("Saturday - Match day, 90 minutes") == "match"
        assert r.identify_session_type("easy jog") == "team training"


# ── Rules and hints ─────────────────────────────────────────────────

class TestRulesAndHints:

    def test_custom_rule_list(self):
        block = r.MarkerRule("block", r.WEEK, re.compile(r"\bBlock (\d+)\b"), lambda m: int(m.group(1)))
        analyzer = StructuralAnalyzer(rules=[block])
        result = analyzer.analyze("Block 2\nWeek 9\nMonday")
        assert result.week_structure["identified_weeks"] == [2]
        assert result.day_structure["has_days"] is False

    def test_overlapping_matches_keep_earlier_rule(self):
        markers = r.find_markers("Training Week 3", r.WEEK)
        assert len(markers) == 1
        assert markers[0].rule == "training_week"

    def test_document_type(self):
        assert classify_document_type("Season curriculum", False) == "curriculum"
        assert classify_document_type("our plan", False) == "general_training"
        assert classify_document_type("our plan", True) == "training_plan"

    def test_hints_do_not_change_markers(self, store):
        library = PatternLibrary(store)
        for weeks in (10, 12):
            library.record(PatternFingerprint("text", "highly_structured", weeks, 30, confidence=1.0))
        plain = StructuralAnalyzer().analyze("Week 1\nWeek 2\nWeek 3\nWeek 4", "text")
        hinted = StructuralAnalyzer(pattern_library=library).analyze("Week 1\nWeek 2\nWeek 3\nWeek 4", "text")
        assert hinted.week_structure == plain.week_structure
        assert hinted.confidence == plain.confidence
        assert hinted.hints["expected_weeks"] == 11
        assert plain.hints == {}
