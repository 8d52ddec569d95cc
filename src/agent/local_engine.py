"""On-device enhancement engine.

A small feature-hashing model that runs entirely in-process with numpy.
Session text (title, type, focus, coach notes) is hashed into a fixed-size
bag-of-words vector and compared by cosine similarity with one prototype
vector per focus area. The best-matching areas pick drills, structure and
tips from the knowledge tables.

enhance_session(session, profile) -> {enhanced_session, improvements, confidence}
"""

import copy
import logging
import re
import zlib

import numpy as np

from src.agent import knowledge
from src.config import PlanForgeConfig

log = logging.getLogger(__name__)

FEATURE_DIM = 512
TOP_AREAS = 2
BASE_CONFIDENCE = 0.75
MAX_CONFIDENCE = 0.95

FOCUS_PROTOTYPES = {
    "technique": "technique technical skill drill ball control first touch passing dribbling footwork form",
    "tactics": "tactics tactical positioning formation pressing transition decision shape defending attacking",
    "fitness": "fitness endurance conditioning stamina aerobic intervals running circuits",
    "speed": "speed sprint agility acceleration quickness reaction ladder",
    "strength": "strength power weights resistance core jump plyometric",
    "recovery": "recovery stretching mobility cool down rest foam rolling light",
    "teamwork": "team teamwork communication small sided games possession cooperation",
}

AREA_TIPS = {
    "technique": "Use many repetitions with short feedback loops; correct one detail at a time",
    "tactics": "Freeze play to show positioning, then let players solve it live",
    "fitness": "Build work:rest ratios gradually across the weeks",
    "speed": "Keep sprint reps short with full recovery so quality stays high",
    "strength": "Teach the movement unloaded before adding resistance",
    "recovery": "Keep intensity low and finish with breathing and stretching",
    "teamwork": "Reward communication and support runs, not only goals",
}

_TOKEN = re.compile(r"[a-z]+")


def _hash_token(token: str) -> int:
    return zlib.crc32(token.encode("utf-8")) % FEATURE_DIM


def featurize(text: str) -> np.ndarray:
    """L2-normalized hashed unigram + bigram counts."""
    tokens = _TOKEN.findall(text.lower())
    vec = np.zeros(FEATURE_DIM, dtype=np.float64)
    for token in tokens:
        vec[_hash_token(token)] += 1.0
    for a, b in zip(tokens, tokens[1:]):
        vec[_hash_token(f"{a}_{b}")] += 0.5
    norm = np.linalg.norm(vec)
    return vec / norm if norm > 0 else vec


class LocalInferenceEngine:
    """numpy-backed session enhancer. Call init() before use."""

    def __init__(self, config: PlanForgeConfig | None = None):
        self.config = config or PlanForgeConfig()
        self.areas: list[str] = []
        self._prototypes: np.ndarray | None = None

    def init(self) -> bool:
        if not self.config.local_enabled:
            log.info("Local inference engine disabled by configuration")
            return False
        self.areas = list(FOCUS_PROTOTYPES)
        self._prototypes = np.vstack([featurize(FOCUS_PROTOTYPES[a]) for a in self.areas])
        return True

    @property
    def ready(self) -> bool:
        return self._prototypes is not None

    def score_focus(self, text: str) -> dict[str, float]:
        if not self.ready:
            raise RuntimeError("Local inference engine is not initialized")
        similarities = self._prototypes @ featurize(text)
        return {area: round(float(s), 4) for area, s in zip(self.areas, similarities)}

    def enhance_session(self, session: dict, profile: dict | None = None) -> dict:
        profile = profile or {}
        text = " ".join([
            session.get("title") or "",
            session.get("type") or "",
            " ".join(session.get("focus") or []),
            session.get("raw_excerpt") or "",
        ])
        scores = self.score_focus(text)
        ranked = sorted(scores.items(), key=lambda kv: -kv[1])
        areas = [area for area, score in ranked[:TOP_AREAS] if score > 0]
        top_score = ranked[0][1] if ranked else 0.0

        sport, info = knowledge.sport_profile(profile.get("sport"))
        group, age = knowledge.age_group(profile)
        level, diff = knowledge.difficulty_profile(profile.get("difficulty"))

        duration = knowledge.parse_duration(session.get("duration"))
        improvements = []
        if duration > age["max_duration"]:
            improvements.append(f"Shortened session from {duration} to {age['max_duration']} minutes for {group} athletes")
            duration = age["max_duration"]

        intensity = round(age["intensity"] * diff["intensity"], 2)
        drills = info["drills"][diff["drill_level"]]
        if not areas:
            areas = [session.get("type") or "technique"]

        enhanced = copy.deepcopy(session)
        enhanced.update({
            "duration": duration,
            "structure": knowledge.session_structure(duration, age["structure"]),
            "focus": areas,
            "drills": list(drills),
            "intensity": intensity,
            "equipment": list(info["equipment"][diff["equipment_tier"]]),
            "coaching_tips": [AREA_TIPS[a] for a in areas if a in AREA_TIPS],
            "tracking_metrics": ["attendance", "session RPE", f"{info['key_skills'][0]} quality"],
            "enhanced": True,
        })
        improvements += [
            f"Identified focus areas: {', '.join(areas)}",
            f"Optimized session structure for {group} {sport} athletes",
            f"Set target intensity to {int(intensity * 100)}% for {level} level",
            f"Added {len(drills)} {level} drills",
        ]
        confidence = min(MAX_CONFIDENCE, BASE_CONFIDENCE + 0.2 * max(0.0, top_score))
        return {"enhanced_session": enhanced, "improvements": improvements, "confidence": round(confidence, 3)}
