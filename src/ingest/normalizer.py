"""Text normalizer for extracted document text.

Layout-based extractors (PDF text layers especially) glue words together
("WeekTwo", "3Sessions") and lose paragraph breaks. normalize_text() repairs
the common cases. It is pure and idempotent: normalize(normalize(x)) ==
normalize(x).
"""

import re

SECTION_HEADERS = [
    "Technical Competency Focus",
    "Tactical Competency Focus",
    "Daily Session Structure",
    "Technical Focus",
    "Daily Structure",
]

ACTIVITY_HEADERS = [
    "Warm-Up",
    "Technical Drills",
    "Conditioning Games",
    "Cool-down",
]

_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
# lowercase followed by uppercase: "WeekTwo" -> "Week Two"
_LOWER_UPPER = re.compile(r"([a-z])([A-Z])")
# digit followed by a capitalized word: "3Sessions" -> "3 Sessions"
_DIGIT_UPPER = re.compile(r"(\d)([A-Z][a-z])")
_WEEK_NUMBER = re.compile(r"\bweek\s*(\d{1,2})\b", re.IGNORECASE)
_SPACES = re.compile(r"[ \t ]+")
_BLANK_RUNS = re.compile(r"\n{3,}")


def _header_pattern(headers: list[str]) -> re.Pattern:
    alternation = "|".join(re.escape(h) for h in sorted(headers, key=len, reverse=True))
    return re.compile(rf"[ \t]*({alternation})", re.IGNORECASE)


_SECTION_RE = _header_pattern(SECTION_HEADERS)
_ACTIVITY_RE = _header_pattern(ACTIVITY_HEADERS)


def _break_before(text: str, pattern: re.Pattern, breaks: str) -> str:
    """Ensure each header match starts after at least `breaks` newlines."""
    out = []
    last = 0
    for match in pattern.finditer(text):
        start = match.start()
        out.append(text[last:start])
        preceding = "".join(out).rstrip(" \t")
        needed = len(breaks) - (len(preceding) - len(preceding.rstrip("\n")))
        out = [preceding]
        if preceding and needed > 0:
            out.append("\n" * needed)
        out.append(match.group(1))
        last = match.end()
    out.append(text[last:])
    return "".join(out)


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def repair_spacing(text: str) -> str:
    text = _LOWER_UPPER.sub(r"\1 \2", text)
    text = _DIGIT_UPPER.sub(r"\1 \2", text)
    return _WEEK_NUMBER.sub(lambda m: f"Week {int(m.group(1))}", text)


def normalize_text(text: str) -> str:
    """Full normalization pass used by the pipeline."""
    if not text:
        return ""
    text = normalize_line_endings(text)
    text = _CONTROL.sub("", text)
    text = repair_spacing(text)
    text = _SPACES.sub(" ", text)
    text = _break_before(text, _SECTION_RE, "\n\n")
    text = _break_before(text, _ACTIVITY_RE, "\n")
    lines = [line.strip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()
