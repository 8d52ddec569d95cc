"""Marker rules for the structural analyzer.

Each rule is a (pattern, extractor) pair tagged with the kind of marker it
detects: week, day, session, duration or schedule. Extractors turn a regex
match into a normalized value, or return None to reject the match (e.g. a
week number outside 1-52). Rules are evaluated in list order; within a kind,
a match that overlaps one already accepted from an earlier rule is dropped.
That makes the order meaningful: put specific rules (ranges, "training
week") before general ones.
"""

import re
from dataclasses import dataclass
from typing import Callable

WEEK = "week"
DAY = "day"
SESSION = "session"
DURATION = "duration"
SCHEDULE = "schedule"

MARKER_KINDS = (WEEK, DAY, SESSION, DURATION, SCHEDULE)

MAX_WEEK = 52


@dataclass(frozen=True)
class Marker:
    kind: str
    rule: str
    value: object
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class MarkerRule:
    name: str
    kind: str
    pattern: re.Pattern
    extractor: Callable[[re.Match], object]

    def find(self, text: str) -> list[Marker]:
        markers = []
        for match in self.pattern.finditer(text):
            value = self.extractor(match)
            if value is None:
                continue
            markers.append(Marker(self.kind, self.name, value, match.group(0), match.start(), match.end()))
        return markers


def _rule(name: str, kind: str, pattern: str, extractor, flags=re.IGNORECASE) -> MarkerRule:
    return MarkerRule(name, kind, re.compile(pattern, flags), extractor)


# ── Vocabularies ────────────────────────────────────────────────────

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

DAY_NAMES = {
    # english
    **{d.lower(): d for d in WEEKDAYS},
    # spanish
    "lunes": "Monday", "martes": "Tuesday", "miércoles": "Wednesday", "miercoles": "Wednesday",
    "jueves": "Thursday", "viernes": "Friday", "sábado": "Saturday", "sabado": "Saturday",
    "domingo": "Sunday",
    # french
    "lundi": "Monday", "mardi": "Tuesday", "mercredi": "Wednesday", "jeudi": "Thursday",
    "vendredi": "Friday", "samedi": "Saturday", "dimanche": "Sunday",
    # german
    "montag": "Monday", "dienstag": "Tuesday", "mittwoch": "Wednesday", "donnerstag": "Thursday",
    "freitag": "Friday", "samstag": "Saturday", "sonntag": "Sunday",
    # italian
    "lunedì": "Monday", "lunedi": "Monday", "martedì": "Tuesday", "martedi": "Tuesday",
    "mercoledì": "Wednesday", "mercoledi": "Wednesday", "giovedì": "Thursday", "giovedi": "Thursday",
    "venerdì": "Friday", "venerdi": "Friday", "sabato": "Saturday", "domenica": "Sunday",
    # portuguese
    "segunda-feira": "Monday", "terça-feira": "Tuesday", "terca-feira": "Tuesday",
    "quarta-feira": "Wednesday", "quinta-feira": "Thursday", "sexta-feira": "Friday",
}

DAY_ABBREVIATIONS = {
    "mon": "Monday", "tue": "Tuesday", "tues": "Tuesday", "wed": "Wednesday",
    "thu": "Thursday", "thur": "Thursday", "thurs": "Thursday", "fri": "Friday",
    "sat": "Saturday", "sun": "Sunday",
}

NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
}

DURATION_WORDS = {
    "fifteen": 15, "twenty": 20, "thirty": 30, "forty": 40, "forty-five": 45, "forty five": 45,
    "fifty": 50, "sixty": 60, "seventy": 70, "seventy-five": 75, "seventy five": 75,
    "eighty": 80, "ninety": 90, "hundred": 100, "one hundred": 100,
    "one hundred twenty": 120, "one hundred and twenty": 120,
}

FREQUENCY_WORDS = {"once": 1, "twice": 2, "three times": 3, "four times": 4, "five times": 5, "six times": 6}

SESSION_TYPE_KEYWORDS = {
    "warm-up": ["warm-up", "warm up", "warmup", "activation"],
    "technical": ["technical", "technique", "drill", "skill"],
    "tactical": ["tactical", "tactics", "positioning", "formation"],
    "conditioning": ["conditioning", "fitness", "endurance", "sprint", "interval"],
    "cool-down": ["cool-down", "cool down", "cooldown", "stretching", "recovery"],
    "match": ["match", "game", "scrimmage", "tournament"],
}


def identify_session_type(text: str) -> str:
    """Classify a session block by its keywords; 'team training' when nothing matches."""
    lowered = text.lower()
    best, best_hits = "team training", 0
    for session_type, keywords in SESSION_TYPE_KEYWORDS.items():
        hits = sum(lowered.count(k) for k in keywords)
        if hits > best_hits:
            best, best_hits = session_type, hits
    return best


def normalize_day_name(name: str) -> str | None:
    key = name.strip().rstrip(".").lower()
    return DAY_NAMES.get(key) or DAY_ABBREVIATIONS.get(key)


# ── Extractors ──────────────────────────────────────────────────────

def _week_number(match: re.Match) -> int | None:
    n = int(match.group(1))
    return n if 1 <= n <= MAX_WEEK else None


def _week_word(match: re.Match) -> int | None:
    return NUMBER_WORDS.get(match.group(1).lower())


def _day_name(match: re.Match) -> str | None:
    return normalize_day_name(match.group(1))


def _numbered(prefix: str):
    def extract(match: re.Match) -> str:
        return f"{prefix} {int(match.group(1))}"
    return extract


def _const(value: str):
    return lambda match: value


def _activity(match: re.Match) -> str:
    word = match.group(1).lower().replace(" ", "-")
    if word.startswith("warm"):
        return "warm-up"
    if word.startswith("cool"):
        return "cool-down"
    if word.startswith("technical"):
        return "technical"
    return word


def _to_minutes(amount: float, unit: str) -> int:
    return round(amount * 60) if unit.lower().startswith("h") else round(amount)


def _duration_range(match: re.Match) -> tuple[int, int] | None:
    lo = _to_minutes(float(match.group(1)), match.group(3))
    hi = _to_minutes(float(match.group(2)), match.group(3))
    if lo <= 0 or hi <= 0:
        return None
    return (min(lo, hi), max(lo, hi))


def _duration_amount(match: re.Match) -> int | None:
    minutes = _to_minutes(float(match.group(1)), match.group(2))
    return minutes if 0 < minutes <= 600 else None


def _duration_minutes(match: re.Match) -> int | None:
    minutes = int(match.group(1))
    return minutes if 0 < minutes <= 600 else None


def _duration_word(match: re.Match) -> int | None:
    return DURATION_WORDS.get(re.sub(r"\s+", " ", match.group(1).lower()))


def _frequency_number(match: re.Match) -> int | None:
    n = int(match.group(1))
    return n if 1 <= n <= 14 else None


def _frequency_word(match: re.Match) -> int | None:
    return FREQUENCY_WORDS.get(re.sub(r"\s+", " ", match.group(1).lower()))


def _every_day(match: re.Match) -> str | None:
    day = normalize_day_name(match.group(1))
    return f"every {day}" if day else None


def _cadence(match: re.Match) -> str:
    word = match.group(1).lower()
    if word in ("biweekly", "fortnightly"):
        return "bi-weekly"
    return word


# ── Rule list ───────────────────────────────────────────────────────

_DAY_ALTERNATION = "|".join(sorted((re.escape(k) for k in DAY_NAMES), key=len, reverse=True))
_ABBREV_ALTERNATION = "|".join(
    sorted({v for k in DAY_ABBREVIATIONS for v in (k.capitalize(), k.upper())}, key=len, reverse=True)
)
_WEEKDAY_ALTERNATION = "|".join(d.lower() for d in WEEKDAYS)
_DURATION_WORD_ALTERNATION = "|".join(
    sorted((w.replace(" ", r"\s+") for w in DURATION_WORDS), key=len, reverse=True)
)
_FREQUENCY_WORD_ALTERNATION = "|".join(
    sorted((w.replace(" ", r"\s+") for w in FREQUENCY_WORDS), key=len, reverse=True)
)
_HOUR_UNITS = r"hours?|hrs?|h"
_MINUTE_UNITS = r"minutes?|mins?|min"

DEFAULT_RULES: list[MarkerRule] = [
    # weeks
    _rule("training_week", WEEK, r"\btraining\s+week\s*(\d{1,2})\b", _week_number),
    _rule("week_numeric", WEEK, r"\bw(?:ee)?k\.?\s*(\d{1,2})\b", _week_number),
    _rule("week_word", WEEK, r"\bweek\s+(" + "|".join(NUMBER_WORDS) + r")\b", _week_word),
    _rule("semana", WEEK, r"\bsemana\s*(\d{1,2})\b", _week_number),
    _rule("woche", WEEK, r"\bwoche\s*(\d{1,2})\b", _week_number),
    _rule("woche_ordinal", WEEK, r"\b(\d{1,2})\.\s*woche\b", _week_number),
    _rule("settimana", WEEK, r"\bsettimana\s*(\d{1,2})\b", _week_number),
    _rule("semaine", WEEK, r"\bsemaine\s*(\d{1,2})\b", _week_number),
    _rule("tyden", WEEK, r"\bt[ýy]den\s*(\d{1,2})\b", _week_number),

    # days
    _rule("day_name", DAY, rf"(?<![\w-])({_DAY_ALTERNATION})(?![\w-])", _day_name),
    _rule("day_abbreviation", DAY, rf"\b({_ABBREV_ALTERNATION})\.?(?![A-Za-z])", _day_name, flags=0),
    _rule("day_numbered", DAY, r"\bday\s*(\d{1,3})\b", _numbered("day")),

    # sessions
    _rule("session_numbered", SESSION, r"\bsession\s*#?\s*(\d{1,3})\b", _numbered("session")),
    _rule("training_session", SESSION, r"\btraining\s+sessions?\b", _const("training session")),
    _rule("workout_numbered", SESSION, r"\bworkout\s*#?\s*(\d{1,3})\b", _numbered("workout")),
    _rule("practice_numbered", SESSION, r"\bpractice\s*#?\s*(\d{1,3})\b", _numbered("practice")),
    _rule("activity_block", SESSION,
          r"\b(warm[\s-]?up|technical(?:\s+drills?)?|conditioning|cool[\s-]?down)\b", _activity),

    # durations, most specific first
    _rule("duration_range", DURATION,
          rf"\b(\d{{1,3}})\s*(?:-|–|to)\s*(\d{{1,3}})\s*({_MINUTE_UNITS}|{_HOUR_UNITS})\b", _duration_range),
    _rule("duration_from_to", DURATION,
          rf"\bfrom\s+(\d{{1,3}})\s+to\s+(\d{{1,3}})\s*({_MINUTE_UNITS}|{_HOUR_UNITS})\b", _duration_range),
    _rule("duration_label", DURATION, r"\bduration\s*[:\-]\s*(\d{1,3})\b", _duration_minutes),
    _rule("session_lasts", DURATION,
          r"\b(?:session|practice|workout)s?\s+lasts?\s+(?:about\s+|approximately\s+)?(\d{1,3})\b",
          _duration_minutes),
    _rule("duration_words", DURATION, rf"\b({_DURATION_WORD_ALTERNATION})\s+minutes?\b", _duration_word),
    _rule("duration_amount", DURATION,
          rf"\b(\d{{1,3}}(?:\.\d+)?)\s*({_MINUTE_UNITS}|{_HOUR_UNITS})\b", _duration_amount),

    # schedule frequency
    _rule("times_per_week", SCHEDULE, r"\b(\d{1,2})\s*(?:x|times)\s*(?:per|a|/)\s*week\b", _frequency_number),
    _rule("sessions_per_week", SCHEDULE,
          r"\b(\d{1,2})\s*(?:sessions?|workouts?|practices?)\s*(?:per|a|/)\s*week\b", _frequency_number),
    _rule("frequency_words", SCHEDULE, rf"\b({_FREQUENCY_WORD_ALTERNATION})\s*(?:per|a)\s*week\b", _frequency_word),
    _rule("every_day", SCHEDULE, rf"\bevery\s+({_WEEKDAY_ALTERNATION})\b", _every_day),
    _rule("cadence", SCHEDULE, r"\b(daily|weekly|bi-weekly|biweekly|fortnightly|monthly)\b", _cadence),
]


def rules_for(kind: str, rules: list[MarkerRule] | None = None) -> list[MarkerRule]:
    return [r for r in (rules if rules is not None else DEFAULT_RULES) if r.kind == kind]


def find_markers(text: str, kind: str, rules: list[MarkerRule] | None = None) -> list[Marker]:
    """Run every rule of `kind` in order; drop matches overlapping earlier ones."""
    accepted: list[Marker] = []
    for rule in rules_for(kind, rules):
        for marker in rule.find(text):
            if any(marker.start < a.end and a.start < marker.end for a in accepted):
                continue
            accepted.append(marker)
    return sorted(accepted, key=lambda m: m.start)


def unique_values(markers: list[Marker]) -> list:
    seen = []
    for m in markers:
        if m.value not in seen:
            seen.append(m.value)
    return seen
