"""Settings via pydantic-settings with PROMETHEUS_ env prefix.

Marketplace and LLM fields use validation_alias to read the same unprefixed
env vars (SPACEMARS_API_KEY, LLM_API_KEY, etc.) that `prometheus-mars init`
writes to .env, so one file drives both the wizard and the runtime.
"""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SKILLS_DIR = str(Path(__file__).parent / "bundled_skills")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PROMETHEUS_", env_file=".env", extra="ignore")

    # SpaceMars marketplace
    spacemars_api_url: str = Field("https://spacemars.ai", validation_alias="SPACEMARS_API_URL")
    spacemars_api_key: str = Field("", validation_alias="SPACEMARS_API_KEY")
    agent_name: str = Field("Prometheus-Agent", validation_alias="AGENT_NAME")

    # LLM -- provider is one of anthropic | openai | google
    llm_provider: str = Field("anthropic", validation_alias="LLM_PROVIDER")
    llm_api_key: str = Field("", validation_alias="LLM_API_KEY")
    llm_model: str = Field("claude-sonnet-4-5-20250929", validation_alias="LLM_MODEL")
    llm_base_url: str = Field("", validation_alias="LLM_BASE_URL")  # empty = vendor default
    max_tokens: int = 4096

    # Timers
    heartbeat_interval_ms: int = Field(1_800_000, validation_alias="HEARTBEAT_INTERVAL_MS")
    task_loop_interval: int = 60  # seconds between polls after doing work
    error_backoff: int = 120  # seconds to wait after a task loop error
    task_fetch_limit: int = 5

    # Skills and identity
    skills_dir: str = Field(DEFAULT_SKILLS_DIR, validation_alias="SKILLS_DIR")
    soul_file: str = Field("", validation_alias="SOUL_FILE")

    # Agentic loop
    max_turns: int = 25
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Tools
    tools_enabled: bool = True
    workspace_dir: str = "/tmp/prometheus-workspace"

    log_level: str = "info"

    @model_validator(mode="after")
    def _validate_limits(self) -> "Settings":
        if self.max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        if self.heartbeat_interval_ms <= 0:
            raise ValueError("HEARTBEAT_INTERVAL_MS must be > 0")
        return self

    @property
    def heartbeat_interval(self) -> float:
        """Heartbeat interval in seconds."""
        return self.heartbeat_interval_ms / 1000
