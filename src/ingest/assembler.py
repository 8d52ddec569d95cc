"""Plan assembler: derive a canonical TrainingPlan from normalized text.

Field derivation is deterministic keyword and pattern matching over the
text plus the StructuralAnalysis. Best effort only: a title or category can
be wrong, but assembly never fails.

Public API:
    PlanAssembler().assemble(text, analysis, document, version, fmt, start_date) -> TrainingPlan
    extract_title / extract_category / extract_difficulty / extract_tags ...
"""

import re
from datetime import date, timedelta
from pathlib import PurePath

from src.ingest import rules as r
from src.memory.records import (
    DocumentRecord,
    SessionRecord,
    StructuralAnalysis,
    TrainingPlan,
    WeekRecord,
)

TITLE_SCAN_LINES = 15
DEFAULT_WEEKS = 8
MIN_DERIVED_SESSIONS = 12
SESSIONS_PER_WEEK_ESTIMATE = 3
MAX_TAGS = 5
MAX_DESCRIPTION = 200
RAW_EXCERPT_LIMIT = 10_000
SESSION_EXCERPT_LIMIT = 500
DEFAULT_SESSION_MINUTES = 90

TITLE_PATTERNS = [
    re.compile(r"^title\s*[:\-]\s*(.+)$", re.IGNORECASE),
    re.compile(r"^program(?:me)?\s*[:\-]\s*(.+)$", re.IGNORECASE),
    re.compile(r"^plan\s*[:\-]\s*(.+)$", re.IGNORECASE),
    re.compile(r"^(.{3,80}?\b(?:training|program|programme|plan|workout|routine)\b.{0,40})$", re.IGNORECASE),
    re.compile(r"^([A-Z][A-Za-z0-9 ,&'()/+-]{9,79})$"),
]
_NOT_A_TITLE = re.compile(r"^(?:sheet\s+\d+:|week\b|day\b|session\b|\d)", re.IGNORECASE)

# Declaration order breaks ties.
CATEGORY_KEYWORDS = {
    "soccer": ["soccer", "football", "futbol", "fútbol", "goalkeeper", "dribbling", "penalty", "offside", "striker"],
    "basketball": ["basketball", "hoop", "layup", "rebound", "free throw", "three-pointer", "point guard"],
    "tennis": ["tennis", "racket", "racquet", "forehand", "backhand", "baseline", "serve"],
    "volleyball": ["volleyball", "spike", "setter", "libero"],
    "swimming": ["swimming", "swim", "freestyle", "backstroke", "breaststroke", "butterfly", "pool"],
    "running": ["running", "jogging", "marathon", "5k", "10k", "tempo run", "long run"],
    "fitness": ["fitness", "strength", "cardio", "gym", "hiit", "weights", "bodyweight", "circuit"],
}
DEFAULT_CATEGORY = "fitness"

DIFFICULTY_KEYWORDS = {
    "beginner": ["beginner", "novice", "introductory", "foundation", "entry level", "basic"],
    "intermediate": ["intermediate", "moderate", "developing"],
    "advanced": ["advanced", "elite", "expert", "professional", "competitive", "high performance"],
}
DEFAULT_DIFFICULTY = "intermediate"

TAG_VOCABULARY = [
    "youth", "adult", "senior", "strength", "endurance", "speed", "agility", "flexibility",
    "cardio", "technique", "tactics", "conditioning", "recovery", "team", "individual",
    "drills", "skills", "power", "balance", "coordination", "passing", "shooting",
    "dribbling", "defense", "offense", "goalkeeping", "serving", "sprint", "interval",
    "warm-up", "cool-down", "match", "nutrition", "mobility", "plyometrics",
]

FOCUS_KEYWORDS = {
    "technique": ["technique", "technical", "skill", "drill", "ball control", "first touch"],
    "tactics": ["tactic", "positioning", "formation", "pressing", "transition"],
    "fitness": ["fitness", "endurance", "conditioning", "stamina", "aerobic"],
    "speed": ["speed", "sprint", "agility", "acceleration", "quickness"],
    "strength": ["strength", "power", "weights", "resistance", "core"],
    "recovery": ["recovery", "stretching", "mobility", "cool-down", "rest"],
    "teamwork": ["team", "communication", "small-sided", "possession"],
    "mental": ["mental", "focus", "confidence", "decision", "visualization"],
}
MAX_FOCUS = 3

_WEEKS_PHRASE = re.compile(r"\b(\d{1,2})[ \t]*[- ]?weeks?\b", re.IGNORECASE)
_SESSIONS_TOTAL = re.compile(r"\b(\d{1,3})[ \t]*(?:training[ \t]+)?sessions?\b(?!\s*(?:per|a|/)\s*week)", re.IGNORECASE)
_CLOCK_24 = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
_CLOCK_12 = re.compile(r"\b(1[0-2]|0?[1-9])(?::([0-5]\d))?\s*([ap])\.?m\.?\b", re.IGNORECASE)
_SENTENCE_LINE = re.compile(r"[.!?]$")


def _count_keyword(text: str, keyword: str) -> int:
    return len(re.findall(rf"(?<![\w-]){re.escape(keyword)}(?![\w-])", text))


def _vote(text: str, table: dict[str, list[str]]) -> str | None:
    lowered = text.lower()
    best, best_score = None, 0
    for label, keywords in table.items():
        score = sum(_count_keyword(lowered, k) for k in keywords)
        if score > best_score:
            best, best_score = label, score
    return best


def title_from_filename(filename: str) -> str:
    stem = PurePath(filename or "").stem
    words = re.sub(r"[_\-]+", " ", stem).split()
    return " ".join(w.capitalize() if not w.isupper() else w for w in words) or "Untitled Training Plan"


def extract_title(text: str, filename: str) -> str:
    lines = [line.strip() for line in text.split("\n") if line.strip()][:TITLE_SCAN_LINES]
    for line in lines:
        candidate = line.split(" | ")[0].strip()
        if _NOT_A_TITLE.match(candidate):
            continue
        for pattern in TITLE_PATTERNS:
            match = pattern.match(candidate)
            if match:
                title = match.group(1).strip().rstrip(":").strip()
                if 3 <= len(title) <= 100:
                    return title
    return title_from_filename(filename)


def extract_category(text: str) -> str:
    return _vote(text, CATEGORY_KEYWORDS) or DEFAULT_CATEGORY


def extract_difficulty(text: str) -> str:
    return _vote(text, DIFFICULTY_KEYWORDS) or DEFAULT_DIFFICULTY


def extract_weeks(text: str, analysis: StructuralAnalysis) -> int:
    candidates = [analysis.week_structure.get("total_weeks", 0)]
    candidates += [int(n) for n in _WEEKS_PHRASE.findall(text) if 1 <= int(n) <= r.MAX_WEEK]
    weeks = max(candidates)
    return weeks if weeks > 0 else DEFAULT_WEEKS


def extract_sessions_count(text: str, analysis: StructuralAnalysis, weeks: int) -> int:
    """Largest session number mentioned, else weeks x 3 with a floor of 12."""
    candidates = [int(n) for n in _SESSIONS_TOTAL.findall(text)]
    candidates.append(analysis.session_structure.get("max_numbered_session", 0))
    for day in analysis.day_structure.get("days_found", []):
        if day.startswith("day "):
            candidates.append(int(day.split(" ")[1]))
    found = max(candidates)
    if found > 0:
        return found
    return max(MIN_DERIVED_SESSIONS, weeks * SESSIONS_PER_WEEK_ESTIMATE)


def extract_tags(text: str, category: str) -> list[str]:
    lowered = text.lower()
    tags = [category]
    for tag in TAG_VOCABULARY:
        if len(tags) >= MAX_TAGS:
            break
        if tag != category and _count_keyword(lowered, tag):
            tags.append(tag)
    return tags


def extract_description(text: str, category: str, difficulty: str) -> str:
    sentences = [
        line.strip() for line in text.split("\n")
        if len(line.strip()) > 40 and _SENTENCE_LINE.search(line.strip())
    ]
    if sentences:
        description = " ".join(sentences[:2])
    else:
        description = f"{difficulty.capitalize()} {category} training plan."
    if len(description) > MAX_DESCRIPTION:
        description = description[: MAX_DESCRIPTION - 3].rstrip() + "..."
    return description


def extract_schedule(analysis: StructuralAnalysis) -> dict:
    days = analysis.day_structure.get("weekdays", [])
    schedule = analysis.schedule_structure
    if days:
        pattern = ", ".join(days)
    elif schedule.get("patterns"):
        pattern = schedule["patterns"][0]
    else:
        pattern = "flexible"
    return {
        "type": "weekly" if days else "flexible",
        "days": days,
        "pattern": pattern,
        "frequency": schedule.get("recommended_frequency"),
    }


def extract_session_time(excerpt: str) -> str | None:
    match = _CLOCK_24.search(excerpt)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}"
    match = _CLOCK_12.search(excerpt)
    if match:
        hour = int(match.group(1)) % 12
        if match.group(3).lower() == "p":
            hour += 12
        return f"{hour:02d}:{match.group(2) or '00'}"
    return None


def extract_focus(excerpt: str, session_type: str) -> list[str]:
    lowered = excerpt.lower()
    scored = []
    for area, keywords in FOCUS_KEYWORDS.items():
        hits = sum(lowered.count(k) for k in keywords)
        if hits:
            scored.append((hits, area))
    scored.sort(key=lambda pair: -pair[0])
    focus = [area for _, area in scored[:MAX_FOCUS]]
    return focus or [session_type]


def session_date(start: date | None, week_number: int, day: str | None, day_index: int | None) -> str | None:
    if start is None:
        return None
    if day_index is not None:
        return (start + timedelta(days=day_index - 1)).isoformat()
    week_start = start + timedelta(weeks=week_number - 1)
    if day in r.WEEKDAYS:
        monday = week_start - timedelta(days=week_start.weekday())
        return (monday + timedelta(days=r.WEEKDAYS.index(day))).isoformat()
    return week_start.isoformat()


class PlanAssembler:
    """Turns (text, analysis, document) into a TrainingPlan."""

    def __init__(self, rules: list[r.MarkerRule] | None = None):
        self.rules = rules if rules is not None else r.DEFAULT_RULES

    def assemble(
        self,
        text: str,
        analysis: StructuralAnalysis,
        document: DocumentRecord,
        version: int = 1,
        fmt: str = "",
        start_date: date | None = None,
    ) -> TrainingPlan:
        category = extract_category(text)
        difficulty = extract_difficulty(text)
        weeks_count = extract_weeks(text, analysis)
        return TrainingPlan(
            id=f"plan_{document.id}_v{version}",
            title=extract_title(text, document.original_name),
            category=category,
            difficulty=difficulty,
            duration=f"{weeks_count} weeks",
            sessions_count=extract_sessions_count(text, analysis, weeks_count),
            tags=extract_tags(text, category),
            source_document=document.id,
            weeks=self.build_weeks(text, analysis, weeks_count, start_date),
            version=version,
            description=extract_description(text, category, difficulty),
            schedule=extract_schedule(analysis),
            organization_level=analysis.organization_level,
            confidence=analysis.confidence,
            source_format=fmt,
            raw_excerpt=text[:RAW_EXCERPT_LIMIT],
        )

    # ── Week and session construction ───────────────────────────────

    def build_weeks(self, text: str, analysis: StructuralAnalysis, weeks_count: int,
                    start_date: date | None = None) -> list[WeekRecord]:
        markers = r.find_markers(text, r.WEEK, self.rules)
        average = analysis.duration_analysis.get("average_duration") or DEFAULT_SESSION_MINUTES

        if not markers:
            weeks = []
            for n in range(1, min(weeks_count, r.MAX_WEEK) + 1):
                sessions = self._sessions(text, n, average, start_date)
                weeks.append(WeekRecord(week_number=n, title=f"Week {n}", daily_sessions=sessions))
            return self._renumber(weeks)

        merged: dict[int, WeekRecord] = {}
        for i, marker in enumerate(markers):
            end = markers[i + 1].start if i + 1 < len(markers) else len(text)
            section = text[marker.start:end]
            number = marker.value
            sessions = self._sessions(section, number, average, start_date)
            if number in merged:
                merged[number].daily_sessions.extend(sessions)
            else:
                merged[number] = WeekRecord(
                    week_number=number,
                    title=self._week_title(section, number),
                    daily_sessions=sessions,
                )
        return self._renumber([merged[n] for n in sorted(merged)])

    def _week_title(self, section: str, number: int) -> str:
        first_line = section.split("\n", 1)[0].strip(" :|-")
        if not first_line or len(first_line) > 80:
            return f"Week {number}"
        return first_line

    def _sessions(self, section: str, week_number: int, average: int,
                  start_date: date | None) -> list[SessionRecord]:
        day_markers = r.find_markers(section, r.DAY, self.rules)
        blocks: list[tuple[str | None, int | None, str]] = []
        seen = set()
        for i, marker in enumerate(day_markers):
            if marker.value in seen:
                continue
            seen.add(marker.value)
            end = len(section)
            for later in day_markers[i + 1:]:
                if later.value not in seen:
                    end = later.start
                    break
            value = marker.value
            if value.startswith("day "):
                blocks.append((None, int(value.split(" ")[1]), section[marker.start:end]))
            else:
                blocks.append((value, None, section[marker.start:end]))
        if not blocks:
            blocks.append((None, None, section))

        sessions = []
        for day, day_index, excerpt in blocks:
            session_type = r.identify_session_type(excerpt)
            duration = self._nearby_duration(excerpt, average)
            label = day or (f"Day {day_index}" if day_index else f"Week {week_number}")
            sessions.append(SessionRecord(
                id="",
                duration=duration,
                day=day,
                date=session_date(start_date, week_number, day, day_index),
                time=extract_session_time(excerpt),
                type=session_type,
                title=f"{label} - {session_type.title()}",
                focus=extract_focus(excerpt, session_type),
                raw_excerpt=excerpt.strip()[:SESSION_EXCERPT_LIMIT],
            ))
        return sessions

    def _nearby_duration(self, excerpt: str, average: int) -> int:
        markers = r.find_markers(excerpt, r.DURATION, self.rules)
        if not markers:
            return average
        value = markers[0].value
        if isinstance(value, tuple):
            return round(sum(value) / 2)
        return value

    @staticmethod
    def _renumber(weeks: list[WeekRecord]) -> list[WeekRecord]:
        for week in weeks:
            for n, session in enumerate(week.daily_sessions, start=1):
                session.id = f"w{week.week_number}-s{n}"
        return weeks
