"""Normalizer tests: spacing repair, header breaks, idempotence."""

import pytest

from src.ingest.normalizer import normalize_line_endings, normalize_text, repair_spacing


class TestRepairSpacing:

    def test_glued_words_split(self):
        assert repair_spacing("WeekTwo") == "Week Two"

    def test_digit_before_capital(self):
        assert repair_spacing("3Sessions") == "3 Sessions"

    def test_week_number_canonical(self):
        assert repair_spacing("week3 and WEEK 4") == "Week 3 and Week 4"

    def test_leading_zero_dropped(self):
        assert repair_spacing("week 03") == "Week 3"


class TestNormalizeText:

    def test_empty(self):
        assert normalize_text("") == ""

    def test_line_endings(self):
        assert normalize_line_endings("a\r\nb\rc") == "a\nb\nc"

    def test_control_chars_and_spaces(self):
        assert normalize_text("Week 1\x00   Monday\t\tdrills  ") == "Week 1 Monday drills"

    def test_section_header_gets_paragraph_break(self):
        text = normalize_text("Intro text Technical Competency Focus passing")
        assert text == "Intro text\n\nTechnical Competency Focus passing"

    def test_activity_header_gets_line_break(self):
        text = normalize_text("Start Warm-Up jog Cool-down stretch")
        assert text == "Start\nWarm-Up jog\nCool-down stretch"

    def test_blank_runs_capped(self):
        assert normalize_text("Week 1\n\n\n\n\nWeek 2") == "Week 1\n\nWeek 2"

    def test_lines_stripped(self):
        assert normalize_text("  Week 1  \n   Monday ") == "Week 1\nMonday"


class TestIdempotence:

    @pytest.mark.parametrize("raw", [
        "WeekOne\r\nTechnical FocusDaily Structure\tWarm-Up",
        "week2:3Sessions   per week\n\n\n\nCool-down",
        "Daily Session Structure\nWarm-Up\nTechnical Drills\nConditioning Games\nCool-down",
        "",
    ])
    def test_normalize_twice_is_stable(self, raw):
        once = normalize_text(raw)
        assert normalize_text(once) == once

    def test_soccer_plan_is_stable(self, soccer_text):
        once = normalize_text(soccer_text)
        assert normalize_text(once) == once
        assert "Week 3" in once
