"""Enhancement state machine.

Every enhancement request walks:

    SELECT_SERVICE → {LOCAL_INFER | REMOTE_INFER | RULE_BASED} → MERGE → DONE

Events name where to go next. A tier that fails fires the event of the tier
to fall back to; RULE_BASED cannot fail, so every path ends in DONE.
Transitions not listed in TRANSITIONS raise InvalidTransition.
"""

from datetime import datetime
from enum import Enum

from src.errors import InvalidTransition


class EnhancementState(Enum):
    SELECT_SERVICE = "select_service"
    LOCAL_INFER = "local_infer"
    REMOTE_INFER = "remote_infer"
    RULE_BASED = "rule_based"
    MERGE = "merge"
    DONE = "done"


LOCAL = "local"
REMOTE = "remote"
RULE = "rule_based"
SUCCESS = "success"
MERGED = "merged"

S = EnhancementState

TRANSITIONS: dict[tuple[EnhancementState, str], EnhancementState] = {
    (S.SELECT_SERVICE, LOCAL): S.LOCAL_INFER,
    (S.SELECT_SERVICE, REMOTE): S.REMOTE_INFER,
    (S.SELECT_SERVICE, RULE): S.RULE_BASED,
    (S.LOCAL_INFER, SUCCESS): S.MERGE,
    (S.LOCAL_INFER, REMOTE): S.REMOTE_INFER,
    (S.LOCAL_INFER, RULE): S.RULE_BASED,
    (S.REMOTE_INFER, SUCCESS): S.MERGE,
    (S.REMOTE_INFER, RULE): S.RULE_BASED,
    (S.RULE_BASED, SUCCESS): S.MERGE,
    (S.MERGE, MERGED): S.DONE,
}

# Which enhancement source each inference state produces
STATE_SOURCES = {
    S.LOCAL_INFER: "local",
    S.REMOTE_INFER: "remote",
    S.RULE_BASED: "rule_based",
}


class EnhancementMachine:
    """One request's walk through TRANSITIONS, with a recorded history."""

    def __init__(self):
        self.state = EnhancementState.SELECT_SERVICE
        self.history: list[dict] = []

    def transition(self, event: str) -> EnhancementState:
        key = (self.state, event)
        if key not in TRANSITIONS:
            raise InvalidTransition(f"No transition from {self.state.value} on '{event}'")
        new_state = TRANSITIONS[key]
        self.history.append({
            "from": self.state.value,
            "to": new_state.value,
            "event": event,
            "at": datetime.now().isoformat(timespec="seconds"),
        })
        self.state = new_state
        return new_state

    @property
    def done(self) -> bool:
        return self.state is EnhancementState.DONE

    def path(self) -> list[str]:
        return [EnhancementState.SELECT_SERVICE.value] + [h["to"] for h in self.history]
