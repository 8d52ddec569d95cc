"""Deterministic rule-based session enhancer.

Last tier of the enhancement chain. Needs no model and no network, so it is
always available, and it always returns a non-empty enhancement at
RULE_BASED_CONFIDENCE.
"""

import copy

from src.agent import knowledge

RULE_BASED_CONFIDENCE = 0.85


def enhance_session(session: dict, profile: dict | None = None) -> dict:
    session = session if isinstance(session, dict) else {}
    profile = profile if isinstance(profile, dict) else {}
    sport, info = knowledge.sport_profile(profile.get("sport"))
    group, age = knowledge.age_group(profile)
    level, diff = knowledge.difficulty_profile(profile.get("difficulty"))

    duration = knowledge.parse_duration(session.get("duration"))
    improvements = []
    if duration > age["max_duration"]:
        improvements.append(f"Capped duration at {age['max_duration']} minutes for {group} athletes")
        duration = age["max_duration"]

    structure = knowledge.session_structure(duration, age["structure"])
    drills = info["drills"][diff["drill_level"]]

    enhanced = copy.deepcopy(session)
    enhanced.update({
        "duration": duration,
        "structure": structure,
        "drills": list(drills),
        "safety_notes": list(info["safety"]),
        "progression": list(info["progression"]),
        "equipment": list(info["equipment"][diff["equipment_tier"]]),
        "coaching_tips": list(knowledge.COACHING_TIPS[:2]),
        "enhanced": True,
    })
    improvements += [
        "Added structured timeline: " + ", ".join(f"{p['phase']} {p['minutes']} min" for p in structure),
        f"Added {len(drills)} {sport} drills for {level} level",
        f"Added {len(info['safety'])} safety guidelines",
        "Added progression steps for the following sessions",
        "Added coaching tips",
    ]
    return {"enhanced_session": enhanced, "improvements": improvements, "confidence": RULE_BASED_CONFIDENCE}
