"""Runtime configuration for PlanForge.

Every component takes a PlanForgeConfig in its constructor. `from_env()`
reads overrides from the environment; tests build configs directly with
zero delays.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

DATA_DIR = Path(__file__).parent.parent / "data"

SERVICE_PRIORITIES = ("local_first", "remote_first", "balanced")

DEFAULT_REMOTE_MODEL = "gemini-2.5-flash"
ALTERNATE_REMOTE_MODELS = ["gemini-2.0-flash", "gemini-2.0-flash-lite"]


@dataclass
class PlanForgeConfig:
    data_dir: Path = DATA_DIR
    api_key: str | None = None
    service_priority: str = "balanced"

    # Remote tier
    remote_model: str = DEFAULT_REMOTE_MODEL
    alternate_models: list[str] = field(default_factory=lambda: list(ALTERNATE_REMOTE_MODELS))
    remote_delay: float = 0.5           # seconds between queued remote calls
    rate_limit_max: int = 100           # calls per window
    rate_limit_window: float = 60.0     # seconds
    cooldown: float = 60.0              # back-off after a rate-limit error
    remote_temperature: float = 0.7
    remote_max_tokens: int = 400
    remote_timeout: float = 30.0       # max wait for one queued call
    remote_connection_check: bool = True  # one tiny generation during init()

    # Local tier
    local_enabled: bool = True
    batch_size: int = 3
    batch_delay: float = 1.0

    # Ingestion
    max_upload_bytes: int = 10 * 1024 * 1024
    learning_enabled: bool = True
    init_timeout: float = 5.0

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.service_priority not in SERVICE_PRIORITIES:
            raise ValueError(
                f"service_priority must be one of {SERVICE_PRIORITIES}, got {self.service_priority!r}"
            )

    @classmethod
    def from_env(cls, **overrides) -> "PlanForgeConfig":
        """Build a config from PLANFORGE_* / GEMINI_API_KEY environment variables."""
        env = os.environ
        values: dict = {
            "api_key": env.get("GEMINI_API_KEY") or None,
            "service_priority": env.get("PLANFORGE_SERVICE_PRIORITY", "balanced"),
            "remote_model": env.get("PLANFORGE_REMOTE_MODEL", DEFAULT_REMOTE_MODEL),
            "learning_enabled": env.get("PLANFORGE_LEARNING", "true").lower() not in ("0", "false", "no"),
        }
        if env.get("PLANFORGE_DATA_DIR"):
            values["data_dir"] = Path(env["PLANFORGE_DATA_DIR"])
        if env.get("PLANFORGE_REMOTE_DELAY"):
            values["remote_delay"] = float(env["PLANFORGE_REMOTE_DELAY"])
        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **changes) -> "PlanForgeConfig":
        return replace(self, **changes)
