"""Enhancement orchestrator: route session enrichment across three tiers.

Tiers, in the order they are usually tried:
    local       numpy engine in this process (src/agent/local_engine.py)
    remote      Gemini through the global call queue (src/agent/remote.py)
    rule_based  deterministic tables (src/agent/rule_based.py), never fails

Policy decides the first tier:
    local_first   local, then remote
    remote_first  remote, then local
    balanced      per task (TASK_PREFERENCES), then the other one

Live availability overrides the policy: a tier that is not ready, or a
remote tier whose models are all cooling down or retired, is skipped.
Each request runs through an EnhancementMachine so the path it took is
recorded on the resulting EnhancementRecord.

Public API:
    EnhancementOrchestrator(config).init() -> TierAvailability
    .enhance_session(session, profile, task) -> EnhancementRecord
    .enhance_sessions(sessions, profile, task) -> list[EnhancementRecord]
    .enhance_weeks(weeks, profile) -> list[EnhancementRecord]
    .enhance_plan(plan, profile) -> list[EnhancementRecord]
    .status() -> dict
"""

import concurrent.futures
import copy
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from src.agent import rule_based
from src.agent.local_engine import LocalInferenceEngine
from src.agent.prompts import build_session_prompt, parse_enhancement, response_confidence
from src.agent.remote import RemoteInferenceService
from src.agent.state_machine import (
    LOCAL,
    MERGED,
    REMOTE,
    RULE,
    STATE_SOURCES,
    SUCCESS,
    EnhancementMachine,
    EnhancementState,
)
from src.config import PlanForgeConfig
from src.errors import (
    RemoteError,
    RemoteInfrastructureOutage,
    RemoteQuotaExceeded,
    RemoteRateLimited,
    RemoteUnavailable,
)
from src.memory.records import EnhancementRecord, TrainingPlan, WeekRecord

log = logging.getLogger(__name__)

RULE_BASED_FLOOR = 0.8

TASK_PREFERENCES = {
    "session_enhancement": LOCAL,
    "schedule_optimization": LOCAL,
    "text_generation": REMOTE,
    "coaching_tips": REMOTE,
}

# remote response section -> enhanced session field
REMOTE_FIELDS = {
    "structure": "structure",
    "drills": "drills",
    "safety": "safety_notes",
    "progression": "progression",
    "equipment": "equipment",
    "tips": "coaching_tips",
}


@dataclass
class TierAvailability:
    local: bool = False
    remote: bool = False
    rule_based: bool = True
    degraded: list[str] = field(default_factory=list)
    checked_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    def to_dict(self) -> dict:
        return {
            "local": self.local,
            "remote": self.remote,
            "rule_based": self.rule_based,
            "degraded": list(self.degraded),
            "checked_at": self.checked_at,
        }


class EnhancementOrchestrator:
    """Chooses a tier per request, falls back on failure, merges the result."""

    def __init__(
        self,
        config: PlanForgeConfig | None = None,
        local_engine: LocalInferenceEngine | None = None,
        remote_service: RemoteInferenceService | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or PlanForgeConfig()
        self.local = local_engine or LocalInferenceEngine(self.config)
        self.remote = remote_service or RemoteInferenceService(self.config)
        self.availability = TierAvailability()
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._cooldown_until: dict[str, float] = {}
        self._retired_models: set[str] = set()
        self.stats = {"local": 0, "remote": 0, "rule_based": 0, "fallbacks": 0, "remote_errors": 0}

    # ── Initialization ───────────────────────────────────────────────

    def init(self) -> TierAvailability:
        """Probe both model tiers in parallel, bounded by config.init_timeout."""
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix="tier-init")
        futures = {"local": pool.submit(self.local.init), "remote": pool.submit(self.remote.init)}
        deadline = self._clock() + self.config.init_timeout
        availability = TierAvailability()
        for name, future in futures.items():
            try:
                ok = bool(future.result(timeout=max(0.0, deadline - self._clock())))
            except concurrent.futures.TimeoutError:
                log.warning("%s tier init timed out after %.1fs, continuing without it", name, self.config.init_timeout)
                availability.degraded.append(name)
                ok = False
            except Exception as e:
                log.warning("%s tier init failed (%s), continuing without it", name, e)
                availability.degraded.append(name)
                ok = False
            setattr(availability, name, ok)
        pool.shutdown(wait=False)
        self.availability = availability
        log.info("Enhancement tiers: local=%s remote=%s", availability.local, availability.remote)
        return availability

    # ── Availability ─────────────────────────────────────────────────

    def remote_models(self) -> list[str]:
        models = [self.config.remote_model] + [m for m in self.config.alternate_models if m != self.config.remote_model]
        return models

    def _usable_models(self) -> list[str]:
        now = self._clock()
        with self._lock:
            return [
                m for m in self.remote_models()
                if m not in self._retired_models and self._cooldown_until.get(m, 0.0) <= now
            ]

    def local_available(self) -> bool:
        return self.availability.local and self.local.ready

    def remote_available(self) -> bool:
        return self.availability.remote and self.remote.ready and bool(self._usable_models())

    def _tier_available(self, tier: str) -> bool:
        if tier == LOCAL:
            return self.local_available()
        if tier == REMOTE:
            return self.remote_available()
        return True

    def tier_order(self, task: str) -> list[str]:
        policy = self.config.service_priority
        if policy == "local_first":
            return [LOCAL, REMOTE, RULE]
        if policy == "remote_first":
            return [REMOTE, LOCAL, RULE]
        preferred = TASK_PREFERENCES.get(task, LOCAL)
        other = REMOTE if preferred == LOCAL else LOCAL
        return [preferred, other, RULE]

    def select_tier(self, task: str = "session_enhancement") -> str:
        for tier in self.tier_order(task):
            if self._tier_available(tier):
                return tier
        return RULE

    # ── Tier runners ─────────────────────────────────────────────────

    def _run_local(self, session: dict, profile: dict) -> dict:
        return self.local.enhance_session(session, profile)

    def _run_remote(self, session: dict, profile: dict) -> dict:
        prompt = build_session_prompt(session, profile)
        last_error: RemoteError = RemoteUnavailable("No remote model available")
        for model in self._usable_models():
            future = self.remote.submit({
                "model": model,
                "inputs": prompt,
                "parameters": {
                    "temperature": self.config.remote_temperature,
                    "max_new_tokens": self.config.remote_max_tokens,
                },
            })
            try:
                response = future.result(timeout=self.config.remote_timeout)
            except concurrent.futures.TimeoutError:
                # an in-flight call keeps running; its result is discarded
                future.cancel()
                raise RemoteInfrastructureOutage(f"{model} did not answer within {self.config.remote_timeout:.0f}s")
            except RemoteRateLimited as e:
                with self._lock:
                    self._cooldown_until[model] = self._clock() + self.config.cooldown
                log.warning("%s rate limited, cooling down %.0fs (%s)", model, self.config.cooldown, e)
                last_error = e
                continue
            except RemoteQuotaExceeded as e:
                with self._lock:
                    self._retired_models.add(model)
                log.warning("%s quota exhausted, retiring model (%s)", model, e)
                last_error = e
                continue
            except RemoteUnavailable:
                # key rejected: stop sending requests until the next init()
                self.availability.remote = False
                log.warning("Remote tier rejected the API key, disabling it")
                raise

            text = response["generated_text"]
            sections = parse_enhancement(text)
            if not any(sections.values()):
                raise RemoteInfrastructureOutage(f"Unusable response from {model}")
            enhanced = copy.deepcopy(session)
            improvements = []
            for key, target in REMOTE_FIELDS.items():
                if sections.get(key):
                    enhanced[target] = sections[key]
                    improvements.append(f"Added {len(sections[key])} {key} item(s)")
            enhanced["enhanced"] = True
            return {
                "enhanced_session": enhanced,
                "improvements": improvements,
                "confidence": response_confidence(text, session, profile),
                "model": response.get("model", model),
            }
        raise last_error

    def _run_rule_based(self, session: dict, profile: dict) -> dict:
        try:
            result = rule_based.enhance_session(session, profile)
        except Exception as e:
            # last tier: retry on bare defaults rather than fail
            log.warning("rule_based failed on this session (%s), using default profile", e)
            bare = {"id": session.get("id") if isinstance(session, dict) else None}
            result = rule_based.enhance_session(bare)
        result["confidence"] = max(RULE_BASED_FLOOR, result["confidence"])
        return result

    # ── Request flow ─────────────────────────────────────────────────

    def enhance_session(self, session, profile: dict | None = None,
                        task: str = "session_enhancement", batch: bool = False) -> EnhancementRecord:
        """Enhance one session. Never raises for tier failures.

        `batch=True` is used by enhance_sessions(): a local failure then goes
        straight to rule-based for that item instead of trying remote.
        """
        original = session.to_dict() if hasattr(session, "to_dict") else copy.deepcopy(session)
        profile = profile if isinstance(profile, dict) else {}
        machine = EnhancementMachine()
        machine.transition(self.select_tier(task))
        result = None

        while result is None:
            state = machine.state
            if state is EnhancementState.RULE_BASED:
                result = self._run_rule_based(original, profile)
                machine.transition(SUCCESS)
                break
            try:
                if state is EnhancementState.LOCAL_INFER:
                    result = self._run_local(original, profile)
                else:
                    result = self._run_remote(original, profile)
            except Exception as e:
                self.stats["fallbacks"] += 1
                if isinstance(e, RemoteError):
                    self.stats["remote_errors"] += 1
                log.warning("%s failed (%s), falling back", state.value, e)
                machine.transition(self._fallback_event(state, batch))
                continue
            machine.transition(SUCCESS)

        source = STATE_SOURCES[self._producing_state(machine)]
        self.stats[source] += 1
        confidence = result["confidence"]
        if source == "rule_based":
            confidence = max(RULE_BASED_FLOOR, confidence)
        record = EnhancementRecord(
            original_session=original,
            enhanced_session=result["enhanced_session"],
            improvements=list(result["improvements"]),
            confidence=confidence,
            source=source,
            model=result.get("model"),
        )
        machine.transition(MERGED)
        record.transitions = list(machine.history)
        return record

    def _fallback_event(self, state: EnhancementState, batch: bool) -> str:
        if state is EnhancementState.LOCAL_INFER and not batch and self.remote_available():
            return REMOTE
        return RULE

    @staticmethod
    def _producing_state(machine: EnhancementMachine) -> EnhancementState:
        # the state entered just before MERGE
        for entry in reversed(machine.history):
            if entry["to"] == EnhancementState.MERGE.value:
                return EnhancementState(entry["from"])
        raise RuntimeError("Enhancement finished without reaching MERGE")

    def enhance_sessions(self, sessions: list, profile: dict | None = None,
                         task: str = "session_enhancement") -> list[EnhancementRecord]:
        """Enhance many sessions. Local work runs in batches with a pause between batches."""
        if not sessions:
            return []
        if self.select_tier(task) != LOCAL:
            return [self.enhance_session(s, profile, task) for s in sessions]

        size = max(1, self.config.batch_size)
        records = []
        for start in range(0, len(sessions), size):
            if start:
                self._sleep(self.config.batch_delay)
            for session in sessions[start:start + size]:
                records.append(self.enhance_session(session, profile, task, batch=True))
        return records

    def enhance_weeks(self, weeks: list[WeekRecord], profile: dict | None = None) -> list[EnhancementRecord]:
        """Enhance every session of every week, in week order."""
        sessions = [s.to_dict() for week in weeks for s in week.daily_sessions]
        return self.enhance_sessions(sessions, profile)

    def enhance_plan(self, plan: TrainingPlan, profile: dict | None = None) -> list[EnhancementRecord]:
        """Enhance every session of a plan. The plan itself is left untouched."""
        merged_profile = {"sport": plan.category, "difficulty": plan.difficulty}
        merged_profile.update(profile or {})
        return self.enhance_weeks(plan.weeks, merged_profile)

    def status(self) -> dict:
        now = self._clock()
        with self._lock:
            cooldowns = {m: round(t - now, 1) for m, t in self._cooldown_until.items() if t > now}
            retired = sorted(self._retired_models)
        return {
            "policy": self.config.service_priority,
            "availability": self.availability.to_dict(),
            "local_available": self.local_available(),
            "remote_available": self.remote_available(),
            "queue_pending": self.remote.queue.pending(),
            "rate_limit_used": self.remote.limiter.used,
            "rate_limit_max": self.config.rate_limit_max,
            "cooldowns": cooldowns,
            "retired_models": retired,
            "stats": dict(self.stats),
        }

    def close(self) -> None:
        self.remote.close()
