"""Settings via pydantic-settings with CCSPY_ env prefix.

The analysis credential is not a field here: the client reads
the variable named by ``api_key_env`` from the process environment on every
call.
"""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CCSPY_", env_file=".env", extra="ignore")

    # Where the assistant keeps per-project transcripts
    projects_dir: Path = Field(default_factory=lambda: Path.home() / ".claude" / "projects")
    log_level: str = "warning"

    # Watch engine
    poll_interval: float = 0.5  # seconds between ticks
    idle_threshold: float = 15.0  # seconds without growth before auto-analysis
    token_threshold: int = 1000  # new estimated tokens required for auto-analysis
    interaction_limit: int = 10  # most recent interactions sent per analysis
    session_wait_interval: float = 1.0  # polling while no session file exists

    # Analysis endpoint (OpenAI-style chat completions)
    api_base_url: str = "https://api.openai.com/v1"
    api_key_env: str = "OPENAI_API_KEY"
    model: str = "gpt-4o-mini"
    fast_model: str = "gpt-4.1-nano"
    fast_mode: bool = False
    analysis_timeout: float = 30.0  # hard cap per analysis call, retries included

    @model_validator(mode="after")
    def _validate_watch(self) -> "Settings":
        for name in ("poll_interval", "idle_threshold", "session_wait_interval", "analysis_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.token_threshold < 0:
            raise ValueError("token_threshold must be >= 0")
        if self.interaction_limit < 1:
            raise ValueError("interaction_limit must be >= 1")
        return self

    @property
    def analysis_model(self) -> str:
        return self.fast_model if self.fast_mode else self.model
