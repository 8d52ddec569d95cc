"""Persistent record types: documents, plans, weeks, sessions, analyses, enhancements.

All records round-trip through plain dicts (to_dict / from_dict) so the
key-value store can hold them as JSON.
"""

import copy
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime

ORGANIZATION_LEVELS = (
    "unstructured",
    "basic_structure",
    "moderately_structured",
    "highly_structured",
)

ENHANCEMENT_SOURCES = ("local", "remote", "rule_based")


def clamp_confidence(value: float) -> float:
    return round(max(0.0, min(1.0, float(value))), 3)


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _from_known(cls, data: dict) -> dict:
    """Keep only keys that are fields of cls, so older blobs still load."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class DocumentRecord:
    id: str
    original_name: str
    declared_type: str
    size: int
    uploaded_at: str | None = None
    processed: bool = False
    platform_tag: str | None = None
    integrity_status: str = "unchecked"
    processed_at: str | None = None
    repaired_at: str | None = None
    last_integrity_check: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentRecord":
        return cls(**_from_known(cls, data))


@dataclass
class SessionRecord:
    id: str
    duration: int                               # minutes
    day: str | None = None
    date: str | None = None
    time: str | None = None
    type: str = "team training"
    title: str = ""
    focus: list[str] = field(default_factory=list)
    raw_excerpt: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        return cls(**_from_known(cls, data))


@dataclass
class WeekRecord:
    week_number: int
    title: str
    daily_sessions: list[SessionRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "WeekRecord":
        return cls(
            week_number=data["week_number"],
            title=data.get("title", f"Week {data['week_number']}"),
            daily_sessions=[SessionRecord.from_dict(s) for s in data.get("daily_sessions", [])],
        )


@dataclass
class TrainingPlan:
    id: str
    title: str
    category: str
    difficulty: str
    duration: str
    sessions_count: int
    tags: list[str]
    source_document: str
    weeks: list[WeekRecord] = field(default_factory=list)
    version: int = 1
    created_at: str = field(default_factory=_now_iso)
    description: str = ""
    schedule: dict = field(default_factory=dict)
    organization_level: str = "unstructured"
    confidence: float = 0.0
    source_format: str = ""
    raw_excerpt: str = ""

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TrainingPlan":
        values = _from_known(cls, data)
        values["weeks"] = [WeekRecord.from_dict(w) for w in data.get("weeks", [])]
        return cls(**values)

    def derived_fields(self) -> dict:
        """Everything except identity, version and timestamps."""
        data = self.to_dict()
        for key in ("id", "version", "created_at"):
            data.pop(key, None)
        return data


@dataclass(frozen=True)
class StructuralAnalysis:
    """Result of one analyzer pass. Frozen once built."""

    week_structure: dict
    day_structure: dict
    session_structure: dict
    duration_analysis: dict
    schedule_structure: dict
    organization_level: str
    confidence: float
    document_type: str = "general_training"
    hints: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.organization_level not in ORGANIZATION_LEVELS:
            raise ValueError(f"Unknown organization level: {self.organization_level}")
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))

    def to_dict(self) -> dict:
        return copy.deepcopy(asdict(self))


@dataclass
class PatternFingerprint:
    format: str
    organization_level: str
    week_count: int
    session_count: int
    marker_samples: dict = field(default_factory=dict)
    confidence: float = 0.0
    timestamp: str = field(default_factory=_now_iso)

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PatternFingerprint":
        return cls(**_from_known(cls, data))


@dataclass
class EnhancementRecord:
    original_session: dict
    enhanced_session: dict
    improvements: list[str]
    confidence: float
    source: str
    timestamp: str = field(default_factory=_now_iso)
    model: str | None = None
    transitions: list[dict] = field(default_factory=list)

    def __post_init__(self):
        if self.source not in ENHANCEMENT_SOURCES:
            raise ValueError(f"Unknown enhancement source: {self.source}")
        self.confidence = clamp_confidence(self.confidence)

    def to_dict(self) -> dict:
        return asdict(self)
