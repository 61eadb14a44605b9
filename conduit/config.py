"""Application settings loaded from environment variables."""

import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Conduit configuration. All values come from environment variables."""

    # Service identity
    service_name: str = Field(default="Enhanced_Whispermind_Conduit")
    service_version: str = Field(default="2.0.0")

    # Transports: "redis" for production, "local"/"memory" for a single process
    bus_backend: str = Field(default="redis")
    store_backend: str = Field(default="redis")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0")
    request_channel: str = Field(default="whispermind:request")
    response_channel: str = Field(default="whispermind:response")
    status_channel: str = Field(default="whispermind:status")
    activity_channel: str = Field(default="whispermind:agent")
    sessions_prefix: str = Field(default="sessions")
    conversations_prefix: str = Field(default="conversations")
    activity_log_key: str = Field(default="agent_logs")
    activity_log_maxlen: int = Field(default=10000)
    status_key: str = Field(default="service:status")

    # Inference backend (Messages API compatible)
    llm_api_key: str = Field(default="")
    llm_base_url: str = Field(default="")
    llm_model: str = Field(default="claude-sonnet-4-5-20250929")
    llm_timeout_seconds: float = Field(default=30.0)
    max_tool_rounds: int = Field(default=10)
    verify_backend_on_start: bool = Field(default=True)

    # Sessions and history
    session_ttl_seconds: int = Field(default=86400)
    conversation_ttl_seconds: int = Field(default=604800)
    conversation_max_entries: int = Field(default=100)
    history_default_limit: int = Field(default=5)

    # Request pipeline
    agent_trigger_words: str = Field(default="solve,analyze,calculate")
    response_tag: str = Field(default="autonomous_chaos")
    error_tag: str = Field(default="error_chaos")
    max_concurrent_requests: int = Field(default=0)
    shutdown_grace_seconds: float = Field(default=30.0)
    status_interval_seconds: float = Field(default=0.0)

    # File analyzer tool
    file_preview_chars: int = Field(default=200)
    file_max_bytes: int = Field(default=5 * 1024 * 1024)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_trigger_words(self) -> list[str]:
        """Parse AGENT_TRIGGER_WORDS into a list of lowercase words."""
        if not self.agent_trigger_words.strip():
            return []
        return [w.strip().lower() for w in self.agent_trigger_words.split(",") if w.strip()]


settings = Settings()
