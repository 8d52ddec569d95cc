"""Pattern library: fingerprints of past successful analyses, per format.

Every successfully assembled plan appends a fingerprint (format, level,
counts, a few marker strings) to its format's list. Each list is capped at
the 50 most recent entries. hints() turns the best 5 into soft expectations
that the analyzer reports next to what it actually detected.

The library persists through the key-value store under
`document_pattern_library`. If the store cannot be read or written it keeps
working in memory and hints() returns an empty dict.
"""

import logging
import threading

from src.memory.records import PatternFingerprint, StructuralAnalysis
from src.memory.store import PATTERN_LIBRARY_KEY, KeyValueStore

log = logging.getLogger(__name__)

MAX_PATTERNS_PER_FORMAT = 50
MAX_HINT_PATTERNS = 5
SAMPLES_PER_KIND = 3


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def fingerprint_from(fmt: str, analysis: StructuralAnalysis) -> PatternFingerprint:
    """Summarize an analysis into the fingerprint stored for its format."""
    samples = {
        "week": analysis.week_structure.get("samples", [])[:SAMPLES_PER_KIND],
        "day": analysis.day_structure.get("samples", [])[:SAMPLES_PER_KIND],
        "session": analysis.session_structure.get("samples", [])[:SAMPLES_PER_KIND],
        "duration": analysis.duration_analysis.get("samples", [])[:SAMPLES_PER_KIND],
    }
    return PatternFingerprint(
        format=fmt,
        organization_level=analysis.organization_level,
        week_count=analysis.week_structure.get("total_weeks", 0),
        session_count=analysis.session_structure.get("session_count", 0),
        marker_samples={k: v for k, v in samples.items() if v},
        confidence=analysis.confidence,
    )


class PatternLibrary:
    """Bounded, append-only fingerprint lists keyed by format."""

    def __init__(self, store: KeyValueStore | None, enabled: bool = True):
        self.store = store
        self.enabled = enabled
        self.available = store is not None
        self._patterns: dict[str, list[dict]] | None = None
        self._lock = threading.Lock()

    def _load(self) -> dict[str, list[dict]]:
        if self._patterns is not None:
            return self._patterns
        data: dict = {}
        if self.store is not None:
            try:
                data = self.store.get(PATTERN_LIBRARY_KEY, {}) or {}
            except (OSError, ValueError) as e:
                log.warning("Pattern library unavailable (%s), continuing without hints", e)
                self.available = False
                data = {}
        if not isinstance(data, dict):
            log.warning("Pattern library blob is not a mapping, continuing without hints")
            self.available = False
            data = {}
        self._patterns = {fmt: list(entries) for fmt, entries in data.items() if isinstance(entries, list)}
        return self._patterns

    def _persist(self) -> None:
        if self.store is None or not self.available:
            return
        try:
            self.store.set(PATTERN_LIBRARY_KEY, self._patterns)
        except (OSError, TypeError, ValueError) as e:
            log.warning("Could not persist pattern library (%s)", e)
            self.available = False

    def record(self, fingerprint: PatternFingerprint) -> bool:
        """Append a fingerprint, evicting the oldest beyond the cap."""
        if not self.enabled:
            return False
        with self._lock:
            patterns = self._load()
            entries = patterns.setdefault(fingerprint.format, [])
            entries.append(fingerprint.to_dict())
            if len(entries) > MAX_PATTERNS_PER_FORMAT:
                del entries[: len(entries) - MAX_PATTERNS_PER_FORMAT]
            self._persist()
        log.debug("Recorded %s pattern (%s)", fingerprint.format, fingerprint.organization_level)
        return True

    def patterns(self, fmt: str) -> list[PatternFingerprint]:
        with self._lock:
            entries = list(self._load().get(fmt, []))
        return [PatternFingerprint.from_dict(e) for e in entries]

    def count(self, fmt: str) -> int:
        return len(self.patterns(fmt))

    def top_patterns(self, fmt: str, limit: int = MAX_HINT_PATTERNS) -> list[PatternFingerprint]:
        """Best fingerprints first: highest confidence, then most recent."""
        ranked = sorted(
            enumerate(self.patterns(fmt)),
            key=lambda pair: (pair[1].confidence, pair[0]),
            reverse=True,
        )
        return [fp for _, fp in ranked[:limit]]

    def hints(self, fmt: str | None) -> dict:
        if not self.enabled or not fmt:
            return {}
        top = self.top_patterns(fmt)
        if not top or not self.available:
            return {}
        return {
            "pattern_count": len(top),
            "expected_weeks": _round_half_up(sum(p.week_count for p in top) / len(top)),
            "expected_sessions": _round_half_up(sum(p.session_count for p in top) / len(top)),
            "likely_structure_level": top[0].organization_level,
            "average_confidence": round(sum(p.confidence for p in top) / len(top), 3),
        }

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {fmt: len(entries) for fmt, entries in self._load().items()}
