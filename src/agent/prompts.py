"""Prompts and response parsing for remote session enhancement."""

import re

from src.agent import knowledge
from src.agent.json_utils import extract_json

ENHANCEMENT_SYSTEM_PROMPT = """\
You are an experienced youth and amateur sports coach. You improve individual training sessions taken from a coach's \
uploaded training plan.

Guidelines:
- Keep the session's original intent, day and overall duration
- Respect the age group's maximum session length and intensity
- Drills must be concrete and named, with a short setup description
- Always include at least one safety note
- Progressions describe how to make the session harder next time

You MUST respond with ONLY a valid JSON object. No markdown, no explanation, no code fences.

The JSON must follow this exact structure:
{
  "structure": [{"phase": "Warm-up", "minutes": 15, "activity": "..."}],
  "drills": ["..."],
  "safety": ["..."],
  "progression": ["..."],
  "equipment": ["..."],
  "tips": ["..."]
}
"""

SECTION_KEYWORDS = {
    "structure": ["structure", "phase", "timeline", "schedule"],
    "drills": ["drill", "exercise", "activity"],
    "safety": ["safety", "injury", "caution"],
    "progression": ["progression", "progress", "next level"],
    "equipment": ["equipment", "materials", "gear"],
    "tips": ["tip", "coaching point", "advice"],
}

_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def build_session_prompt(session: dict, profile: dict) -> str:
    sport, info = knowledge.sport_profile(profile.get("sport"))
    group, age = knowledge.age_group(profile)
    level, diff = knowledge.difficulty_profile(profile.get("difficulty"))
    focus = ", ".join(session.get("focus") or []) or "general"
    excerpt = (session.get("raw_excerpt") or "").strip()[:800]

    return f"""\
SESSION TO ENHANCE:
- Title: {session.get('title') or 'Training session'}
- Day: {session.get('day') or 'unspecified'}
- Type: {session.get('type') or 'team training'}
- Duration: {session.get('duration')} minutes
- Focus: {focus}

ATHLETES:
- Sport: {sport} (key skills: {', '.join(info['key_skills'])})
- Age group: {group} (max {age['max_duration']} minutes, intensity {int(age['intensity'] * 100)}%)
- Level: {level} (typical equipment: {', '.join(info['equipment'][diff['equipment_tier']])})

ORIGINAL NOTES FROM THE COACH:
{excerpt or '(none)'}

Return the enhanced session as JSON."""


def parse_enhancement(text: str) -> dict:
    """Parse a remote response into section lists.

    JSON is tried first; free text is split by section headings.
    """
    try:
        data = extract_json(text)
    except ValueError:
        data = None
    if isinstance(data, dict):
        return {key: _as_list(data.get(key)) for key in SECTION_KEYWORDS}
    return _parse_sections(text)


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _parse_sections(text: str) -> dict:
    sections: dict[str, list] = {key: [] for key in SECTION_KEYWORDS}
    current = None
    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            continue
        lowered = line.lower().rstrip(":")
        heading = _heading_for(lowered) if len(lowered) < 40 and not _BULLET.match(raw) else None
        if heading:
            current = heading
            continue
        if current:
            sections[current].append(_BULLET.sub("", line))
    return sections


def _heading_for(line: str) -> str | None:
    for key, keywords in SECTION_KEYWORDS.items():
        if any(k in line for k in keywords):
            return key
    return None


def response_confidence(text: str, session: dict, profile: dict) -> float:
    """Heuristic quality score of a generated response in [0, 1]."""
    if not text.strip():
        return 0.0
    length_score = min(len(text) / 200, 0.4)
    sentences = [s for s in re.split(r"[.!?\n]+", text) if len(s.strip()) > 10]
    coherence = 0.3 if len(sentences) >= 2 else 0.1
    _, info = knowledge.sport_profile(profile.get("sport"))
    lowered = text.lower()
    specific = any(skill in lowered for skill in info["key_skills"])
    specificity = 0.2 if specific else 0.1
    context_terms = [session.get("type") or ""] + list(session.get("focus") or [])
    context = 0.1 if any(t and t.lower() in lowered for t in context_terms) else 0.0
    return round(min(1.0, length_score + coherence + specificity + context), 3)
