"""Structural analyzer: find weeks, days, sessions and durations in plan text.

Runs every marker rule (src/ingest/rules.py) over the normalized text and
folds the matches into per-kind structure summaries. Four presence checks
drive the result:

    weeks      2 points   confidence weight 0.30
    days       2 points   confidence weight 0.25
    sessions   2 points   confidence weight 0.25
    durations  2 points   confidence weight 0.20

Points >= 8 is highly_structured, >= 5 moderately_structured, >= 2
basic_structure, anything less unstructured. Confidence is the weighted sum,
capped at 1.0. Both are pure functions of the four presence flags, so adding
a new kind of marker to a document can only raise the score.

Pattern-library hints are copied into the result's `hints`; they never
remove or alter detected markers.
"""

import logging

from src.ingest import rules as r
from src.memory.pattern_library import PatternLibrary
from src.memory.records import StructuralAnalysis

log = logging.getLogger(__name__)

POINTS_PER_KIND = 2
LEVEL_BANDS = [
    (8, "highly_structured"),
    (5, "moderately_structured"),
    (2, "basic_structure"),
]
CONFIDENCE_WEIGHTS = {
    "weeks": 0.30,
    "days": 0.25,
    "sessions": 0.25,
    "durations": 0.20,
}
SAMPLE_LIMIT = 10

DOCUMENT_TYPE_KEYWORDS = [
    ("curriculum", ["curriculum", "syllabus", "competency", "learning objectives"]),
    ("weekly_schedule", ["weekly schedule", "timetable", "schedule"]),
    ("session_program", ["session plan", "session program", "practice plan"]),
    ("training_plan", ["training plan", "training program", "programme", "program", "plan"]),
]


def organization_level(has_weeks: bool, has_days: bool, has_sessions: bool, has_durations: bool) -> str:
    points = POINTS_PER_KIND * sum([has_weeks, has_days, has_sessions, has_durations])
    for threshold, level in LEVEL_BANDS:
        if points >= threshold:
            return level
    return "unstructured"


def structure_confidence(has_weeks: bool, has_days: bool, has_sessions: bool, has_durations: bool) -> float:
    score = (
        CONFIDENCE_WEIGHTS["weeks"] * has_weeks
        + CONFIDENCE_WEIGHTS["days"] * has_days
        + CONFIDENCE_WEIGHTS["sessions"] * has_sessions
        + CONFIDENCE_WEIGHTS["durations"] * has_durations
    )
    return round(min(1.0, score), 3)


def classify_document_type(text: str, has_weeks: bool) -> str:
    lowered = text.lower()
    for doc_type, keywords in DOCUMENT_TYPE_KEYWORDS:
        if doc_type == "training_plan" and not has_weeks:
            continue
        if any(k in lowered for k in keywords):
            return doc_type
    return "general_training"


def _samples(markers: list[r.Marker]) -> list[str]:
    seen = []
    for m in markers:
        text = m.text.strip()
        if text not in seen:
            seen.append(text)
        if len(seen) >= SAMPLE_LIMIT:
            break
    return seen


def analyze_weeks(markers: list[r.Marker]) -> dict:
    numbers = [m.value for m in markers]
    identified = sorted(set(numbers))
    duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
    return {
        "has_weeks": bool(identified),
        "total_weeks": max(identified) if identified else 0,
        "week_count": len(identified),
        "identified_weeks": identified,
        "has_sequential_weeks": identified == list(range(1, len(identified) + 1)) if identified else False,
        "duplicate_weeks": duplicates,
        "samples": _samples(markers),
    }


def analyze_days(markers: list[r.Marker]) -> dict:
    days = r.unique_values(markers)
    named = [d for d in days if d in r.WEEKDAYS]
    return {
        "has_days": bool(days),
        "day_count": len(days),
        "days_found": days,
        "weekdays": sorted(named, key=r.WEEKDAYS.index),
        "samples": _samples(markers),
    }


def analyze_sessions(markers: list[r.Marker]) -> dict:
    values = r.unique_values(markers)
    numbered = [v for v in values if v.split(" ")[-1].isdigit()]
    session_numbers = [int(v.split(" ")[-1]) for v in numbered]
    return {
        "has_sessions": bool(values),
        "session_count": len(values),
        "max_numbered_session": max(session_numbers) if session_numbers else 0,
        "session_markers": values,
        "session_types": sorted({v for v in values if v not in numbered and v != "training session"}),
        "samples": _samples(markers),
    }


def analyze_durations(markers: list[r.Marker]) -> dict:
    minutes: list[int] = []
    for m in markers:
        if isinstance(m.value, tuple):
            minutes.extend(m.value)
        else:
            minutes.append(m.value)
    return {
        "has_durations": bool(minutes),
        "duration_count": len(r.unique_values(markers)),
        "durations": minutes,
        "average_duration": round(sum(minutes) / len(minutes)) if minutes else 0,
        "range": {"min": min(minutes), "max": max(minutes)} if minutes else None,
        "samples": _samples(markers),
    }


def analyze_schedule(markers: list[r.Marker]) -> dict:
    frequencies = [m.value for m in markers if isinstance(m.value, int)]
    patterns = [v for v in r.unique_values(markers) if isinstance(v, str)]
    return {
        "has_schedule": bool(markers),
        "frequencies": frequencies,
        "patterns": patterns,
        "recommended_frequency": int(sum(frequencies) / len(frequencies) + 0.5) if frequencies else None,
        "samples": _samples(markers),
    }


class StructuralAnalyzer:
    """Marker detection + organization scoring over normalized text."""

    def __init__(self, rules: list[r.MarkerRule] | None = None,
                 pattern_library: PatternLibrary | None = None):
        self.rules = rules if rules is not None else r.DEFAULT_RULES
        self.pattern_library = pattern_library

    def markers(self, text: str) -> dict[str, list[r.Marker]]:
        return {kind: r.find_markers(text, kind, self.rules) for kind in r.MARKER_KINDS}

    def analyze(self, text: str, fmt: str | None = None) -> StructuralAnalysis:
        found = self.markers(text or "")
        weeks = analyze_weeks(found[r.WEEK])
        days = analyze_days(found[r.DAY])
        sessions = analyze_sessions(found[r.SESSION])
        durations = analyze_durations(found[r.DURATION])
        schedule = analyze_schedule(found[r.SCHEDULE])

        flags = (weeks["has_weeks"], days["has_days"], sessions["has_sessions"], durations["has_durations"])
        level = organization_level(*flags)
        confidence = structure_confidence(*flags)

        hints = {}
        if self.pattern_library is not None:
            hints = self.pattern_library.hints(fmt)

        if weeks["duplicate_weeks"]:
            log.debug("Duplicate week numbers %s will be merged", weeks["duplicate_weeks"])

        return StructuralAnalysis(
            week_structure=weeks,
            day_structure=days,
            session_structure=sessions,
            duration_analysis=durations,
            schedule_structure=schedule,
            organization_level=level,
            confidence=confidence,
            document_type=classify_document_type(text or "", weeks["has_weeks"]),
            hints=hints,
        )
