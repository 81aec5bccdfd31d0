import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

ENV_PREFIX = "AGENT_CHAT_"

# Values suggested to the user when nothing else is configured
DEFAULT_API_URL = "http://localhost:2024"
DEFAULT_ASSISTANT_ID = "agent"


class SessionSettings(BaseSettings):
    """Settings loaded from environment variables (AGENT_CHAT_*) and .env."""

    # Connection
    api_url: Optional[str] = Field(default=None, description="Base URL of the agent server deployment")
    assistant_id: Optional[str] = Field(default=None, description="Assistant or graph id to run")
    api_key: Optional[str] = Field(default=None, description="API key sent as X-Api-Key (not needed for local servers)")

    # Session behavior
    thread_refresh_delay: float = Field(default=4.0, description="Seconds to wait after a new thread id before refreshing the thread list")
    health_check_timeout: float = Field(default=10.0, description="Timeout in seconds for the /info health probe")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    log_format: str = Field(default='%(asctime)s - %(name)s - %(levelname)s - %(message)s', description="Logging format string")
    log_to_file: bool = Field(default=False, description="Enable logging to file with rotation")
    log_file_path: str = Field(default="logs/agent_chat.log", description="Path to the log file (directory will be created)")
    log_max_lines_per_file: int = Field(default=5000, description="Maximum lines per log file before rotation")
    log_max_files: int = Field(default=10, description="Maximum number of log files to keep")

    # Observability
    tracing_enabled: bool = Field(default=False, description="Export traces and logs over OTLP")

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        env_prefix=ENV_PREFIX,
        extra='ignore',
        case_sensitive=False
    )


class SessionConfig(BaseModel):
    """Resolved, validated connection settings for one conversation session."""

    api_url: str
    assistant_id: str
    api_key: Optional[str] = None
    thread_refresh_delay: float = 4.0
    health_check_timeout: float = 10.0

    model_config = ConfigDict(frozen=True)

    @field_validator("api_url")
    @classmethod
    def _normalize_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("api_url must not be empty")
        return value

    @field_validator("assistant_id")
    @classmethod
    def _require_assistant(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("assistant_id must not be empty")
        return value

    @field_validator("api_key")
    @classmethod
    def _blank_key_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


def load_settings() -> SessionSettings:
    logger.info(f"Loading configuration from .env file and environment variables (prefix: '{ENV_PREFIX}')...")
    try:
        env_loaded = load_dotenv('.env', override=False)
        logger.debug(f".env loaded: {env_loaded}")
    except Exception as e:
        logger.warning(f"Failed to load .env file: {e}")

    prefixed_vars = [k for k in os.environ if k.upper().startswith(ENV_PREFIX)]
    logger.info(f"Found {len(prefixed_vars)} {ENV_PREFIX} environment variables: {prefixed_vars}")

    settings = SessionSettings()
    logger.info(f"API key configured: {'YES' if settings.api_key else 'NO'}")
    return settings


def resolve_session_config(settings: SessionSettings,
                           api_url: Optional[str] = None,
                           assistant_id: Optional[str] = None,
                           api_key: Optional[str] = None) -> SessionConfig:
    """
    Combine explicit values with loaded settings. Explicit values win.

    Raises:
        ValueError: if no endpoint or no assistant id can be resolved
    """
    final_api_url = api_url or settings.api_url
    final_assistant_id = assistant_id or settings.assistant_id
    final_api_key = api_key if api_key is not None else settings.api_key

    missing = [name for name, value in (("api_url", final_api_url), ("assistant_id", final_assistant_id)) if not value]
    if missing:
        raise ValueError(
            f"Missing session configuration: {', '.join(missing)}. "
            f"Pass them explicitly or set {', '.join(ENV_PREFIX + m.upper() for m in missing)}."
        )

    return SessionConfig(
        api_url=final_api_url,
        assistant_id=final_assistant_id,
        api_key=final_api_key,
        thread_refresh_delay=settings.thread_refresh_delay,
        health_check_timeout=settings.health_check_timeout,
    )
