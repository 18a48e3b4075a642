"""Configuration and settings management using pydantic-settings."""
from typing import Annotated, Any

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="WEAVEFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core service settings
    env: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")

    # Gemini LLM settings
    gemini_api_key: SecretStr | None = Field(
        default=None,
        description="Google Gemini API key",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Gemini API base URL",
    )
    gemini_api_version: str = Field(
        default="v1beta",
        description="Gemini API version path segment",
    )
    default_llm_model: str = Field(
        default="gemini-3-flash-preview",
        description="Model assigned to newly created LLM nodes",
    )

    # LLM retry controls
    llm_timeout_s: float = Field(
        default=60,
        description="Read timeout for a single LLM request in seconds",
    )
    llm_max_retries: int = Field(
        default=3,
        description="Retries beyond the first attempt for retryable LLM errors",
    )
    llm_retry_delays_s: Annotated[list[float], NoDecode] = Field(
        default_factory=lambda: [1.0, 2.0, 4.0],
        description="Backoff delay before each retry, in seconds",
    )

    # Media processing service
    media_service_url: str | None = Field(
        default=None,
        description="Base URL of the crop / frame extraction service",
    )
    media_timeout_s: float = Field(
        default=120,
        description="Timeout for media processing requests in seconds",
    )

    # Persistence
    redis_url: str | None = Field(
        default=None,
        description="Redis URL for run history and graph state (in-memory if unset)",
    )
    graph_state_key: str = Field(
        default="weaveflow-workflow-state",
        description="Storage key of the persisted graph",
    )

    # Run ledger
    ledger_enabled: bool = Field(
        default=True,
        description="Record node runs in the run ledger",
    )
    ledger_list_limit: int = Field(
        default=25,
        description="Default number of runs returned by the history API",
    )
    ledger_input_char_limit: int = Field(
        default=500,
        description="Max characters kept per text input in ledger records",
    )
    ledger_output_char_limit: int = Field(
        default=5000,
        description="Max characters kept per text output in ledger records",
    )

    @field_validator("llm_retry_delays_s", mode="before")
    @classmethod
    def parse_retry_delays(cls, v: Any) -> Any:
        """Accept a comma separated string from the environment."""
        if isinstance(v, str):
            return [float(part) for part in v.split(",") if part.strip()]
        return v

    @field_validator("llm_retry_delays_s")
    @classmethod
    def validate_retry_delays(cls, v: list[float]) -> list[float]:
        """Validate that retry delays are present and non-negative."""
        if not v:
            raise ValueError("llm_retry_delays_s must not be empty")
        if any(delay < 0 for delay in v):
            raise ValueError("llm_retry_delays_s must be non-negative")
        return v

    @field_validator("llm_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate that the retry count is not negative."""
        if v < 0:
            raise ValueError("llm_max_retries must be >= 0")
        return v

    @field_validator(
        "ledger_list_limit",
        "ledger_input_char_limit",
        "ledger_output_char_limit",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate that limits are positive."""
        if v <= 0:
            raise ValueError("limit must be positive")
        return v


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
