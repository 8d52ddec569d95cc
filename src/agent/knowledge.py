"""Static coaching knowledge: sports, age groups, difficulty levels.

Read-only lookup tables shared by the rule-based generator, the local
engine and the remote prompt builder. Unknown sports resolve to "fitness",
unknown ages to "adult", unknown levels to "intermediate".
"""

import re

SPORTS = {
    "soccer": {
        "key_skills": ["ball control", "passing", "shooting", "dribbling", "positioning"],
        "equipment": {
            "basic": ["balls", "cones", "bibs"],
            "intermediate": ["agility ladder", "mini goals", "rebound net"],
            "advanced": ["GPS vests", "speed gates", "video analysis"],
        },
        "drills": {
            "beginner": ["Cone dribbling slalom", "Partner passing in pairs", "1v1 to small goals"],
            "intermediate": ["Rondo 4v2", "Passing triangles with movement", "Finishing from cut-backs"],
            "advanced": ["Positional play 7v7+3", "Pressing triggers game", "Transition 6v6 to four goals"],
        },
        "safety": [
            "Check the pitch for holes and debris before play",
            "Shin guards are mandatory for all contact drills",
            "Keep goalposts anchored",
        ],
        "progression": ["Increase opposition pressure", "Reduce touches allowed", "Shrink the playing area"],
    },
    "basketball": {
        "key_skills": ["ball handling", "shooting", "passing", "rebounding", "defense"],
        "equipment": {
            "basic": ["balls", "cones"],
            "intermediate": ["dribble goggles", "rebounder"],
            "advanced": ["shot tracker", "resistance bands"],
        },
        "drills": {
            "beginner": ["Stationary ball handling", "Form shooting close to the rim", "Two-line layups"],
            "intermediate": ["Three-man weave", "Closeout and contest", "Pick-and-roll reads 2v2"],
            "advanced": ["Shell defense rotations", "Transition 3v2 to 2v1", "Late-clock decision game"],
        },
        "safety": [
            "Wipe wet spots on the court immediately",
            "Ankle support for players with previous sprains",
            "Teach safe landing mechanics before jump work",
        ],
        "progression": ["Add a defender", "Add a shot clock", "Use the weak hand only"],
    },
    "tennis": {
        "key_skills": ["forehand", "backhand", "serve", "footwork", "volley"],
        "equipment": {
            "basic": ["rackets", "balls", "cones"],
            "intermediate": ["ball machine", "target mats"],
            "advanced": ["radar gun", "video analysis"],
        },
        "drills": {
            "beginner": ["Mini tennis in the service boxes", "Drop-feed forehands", "Serve toss practice"],
            "intermediate": ["Cross-court rally to targets", "Approach and volley", "Serve plus one"],
            "advanced": ["Live-ball patterns", "Return of serve under pressure", "Point play with scoring handicaps"],
        },
        "safety": [
            "Clear stray balls from the court between drills",
            "Hydrate every change of ends",
            "Progress serve volume gradually to protect the shoulder",
        ],
        "progression": ["Increase ball speed", "Narrow the target", "Add movement before the shot"],
    },
    "volleyball": {
        "key_skills": ["passing", "setting", "serving", "attacking", "blocking"],
        "equipment": {
            "basic": ["balls", "net"],
            "intermediate": ["target hoops", "setting machine"],
            "advanced": ["jump trainers", "video analysis"],
        },
        "drills": {
            "beginner": ["Forearm passing against the wall", "Underhand serve to zones", "Setting to self"],
            "intermediate": ["Pass-set-hit triads", "Serve receive in threes", "Block footwork"],
            "advanced": ["6v6 wash drill", "Transition attack", "Serve and defend"],
        },
        "safety": [
            "Keep the court clear of loose balls during attacking drills",
            "Teach two-foot landings",
            "Limit jump volume for young players",
        ],
        "progression": ["Faster tempo sets", "Add a live block", "Serve from further back"],
    },
    "swimming": {
        "key_skills": ["freestyle", "backstroke", "breaststroke", "turns", "starts"],
        "equipment": {
            "basic": ["kickboards", "pull buoys"],
            "intermediate": ["fins", "paddles", "snorkel"],
            "advanced": ["tempo trainer", "parachute"],
        },
        "drills": {
            "beginner": ["Kick on the side", "Catch-up freestyle", "Streamline push-offs"],
            "intermediate": ["Single-arm drill", "6-kick switch", "Open turns to flip turns"],
            "advanced": ["Race-pace 50s", "Underwater dolphin kick sets", "Broken 200s"],
        },
        "safety": [
            "A qualified lifeguard must be present",
            "No diving in shallow water",
            "Check swimmers' breathing rhythm before hard sets",
        ],
        "progression": ["Reduce rest intervals", "Increase set distance", "Hold pace with fewer strokes"],
    },
    "running": {
        "key_skills": ["running form", "cadence", "pacing", "breathing", "endurance"],
        "equipment": {
            "basic": ["running shoes", "stopwatch"],
            "intermediate": ["heart rate monitor", "cones"],
            "advanced": ["GPS watch", "lactate meter"],
        },
        "drills": {
            "beginner": ["A-skips and B-skips", "Run-walk intervals", "Strides on grass"],
            "intermediate": ["Tempo intervals", "Hill repeats", "Progression run"],
            "advanced": ["Track repeats at race pace", "Threshold cruise intervals", "Long run with fast finish"],
        },
        "safety": [
            "Increase weekly distance by no more than 10%",
            "Wear reflective gear in low light",
            "Stop if sharp pain appears",
        ],
        "progression": ["Extend the interval", "Shorten the recovery", "Increase the pace"],
    },
    "fitness": {
        "key_skills": ["strength", "mobility", "endurance", "coordination", "core stability"],
        "equipment": {
            "basic": ["mats", "bodyweight"],
            "intermediate": ["dumbbells", "kettlebells", "bands"],
            "advanced": ["barbells", "plyo boxes", "sleds"],
        },
        "drills": {
            "beginner": ["Bodyweight squats", "Incline push-ups", "Plank holds"],
            "intermediate": ["Kettlebell swings", "Split squats", "Circuit intervals"],
            "advanced": ["Olympic lift technique", "Plyometric box jumps", "Complex training"],
        },
        "safety": [
            "Warm up joints before loaded movements",
            "Keep a neutral spine under load",
            "Scale the load before sacrificing form",
        ],
        "progression": ["Add load", "Add volume", "Reduce rest"],
    },
}

DEFAULT_SPORT = "fitness"

# structure ratios: warm-up / technical / main / cool-down / reflection
AGE_GROUPS = {
    "youth": {"ages": (5, 12), "max_duration": 45, "intensity": 0.7,
              "structure": [0.20, 0.35, 0.25, 0.15, 0.05]},
    "teen": {"ages": (13, 17), "max_duration": 75, "intensity": 0.85,
             "structure": [0.15, 0.35, 0.25, 0.15, 0.10]},
    "adult": {"ages": (18, 54), "max_duration": 120, "intensity": 1.0,
              "structure": [0.15, 0.35, 0.25, 0.15, 0.10]},
    "senior": {"ages": (55, 120), "max_duration": 60, "intensity": 0.6,
               "structure": [0.20, 0.30, 0.20, 0.20, 0.10]},
}

DEFAULT_AGE_GROUP = "adult"

STRUCTURE_PHASES = ["Warm-up", "Technical work", "Main activity", "Cool-down", "Reflection"]

DIFFICULTIES = {
    "beginner": {"intensity": 0.6, "drill_level": "beginner", "equipment_tier": "basic"},
    "intermediate": {"intensity": 0.8, "drill_level": "intermediate", "equipment_tier": "intermediate"},
    "advanced": {"intensity": 0.95, "drill_level": "advanced", "equipment_tier": "advanced"},
    "professional": {"intensity": 1.0, "drill_level": "advanced", "equipment_tier": "advanced"},
}

DEFAULT_DIFFICULTY = "intermediate"
DEFAULT_DURATION = 60

_MINUTES = re.compile(r"\d+")

COACHING_TIPS = [
    "Keep instructions short and demonstrate before explaining",
    "Praise effort and specific behaviors, not just outcomes",
    "Ask players questions to check understanding",
    "Keep waiting lines to three players or fewer",
]


def parse_duration(value) -> int:
    """Minutes from an int, a float or text such as "90 minutes". Falls back to 60."""
    if isinstance(value, bool):
        return DEFAULT_DURATION
    if isinstance(value, (int, float)):
        return int(value) if 1 <= value < 10_000 else DEFAULT_DURATION
    match = _MINUTES.search(str(value or ""))
    if match and int(match.group()) > 0:
        return int(match.group())
    return DEFAULT_DURATION


def sport_profile(sport: str | None) -> tuple[str, dict]:
    key = str(sport or "").lower()
    if key == "football":
        key = "soccer"
    if key not in SPORTS:
        key = DEFAULT_SPORT
    return key, SPORTS[key]


def age_group(profile: dict | None) -> tuple[str, dict]:
    if not isinstance(profile, dict):
        profile = {}
    group = str(profile.get("age_group") or "").lower()
    if group in AGE_GROUPS:
        return group, AGE_GROUPS[group]
    age = profile.get("age")
    if isinstance(age, (int, float)):
        for name, info in AGE_GROUPS.items():
            lo, hi = info["ages"]
            if lo <= age <= hi:
                return name, info
    return DEFAULT_AGE_GROUP, AGE_GROUPS[DEFAULT_AGE_GROUP]


def difficulty_profile(level: str | None) -> tuple[str, dict]:
    key = str(level or "").lower()
    if key not in DIFFICULTIES:
        key = DEFAULT_DIFFICULTY
    return key, DIFFICULTIES[key]


def session_structure(duration: int, ratios: list[float]) -> list[dict]:
    """Split a session's minutes across the standard phases."""
    phases = []
    for name, ratio in zip(STRUCTURE_PHASES, ratios):
        phases.append({"phase": name, "minutes": max(1, round(duration * ratio))})
    return phases
