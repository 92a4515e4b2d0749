"""Router settings loaded from environment variables.

Environment Configuration:
    GPTHELPER_ENV: Deployment environment (local | test | prod)
    GPTHELPER_DEBUG: Emit sanitized debug events

Request sizing:
    GPTHELPER_HARD_CHAR_CAP: Ceiling on total request characters (system + messages)
    GPTHELPER_RETRY_HISTORY_MESSAGES: History tail kept when retrying an oversized request
    GPTHELPER_RETRY_USER_MAX_CHARS: User prompt ceiling when retrying an oversized request

Transport:
    GPTHELPER_REQUEST_TIMEOUT_S: Per-call timeout for generation requests
    GPTHELPER_CONNECT_TIMEOUT_S: Connect timeout for all provider calls
    GPTHELPER_MODEL_LIST_TIMEOUT_S: Per-call timeout for model listing

Note: user-facing preferences (active provider, model ids, max output tokens)
are NOT settings. They live in the editor configuration store and are read at
send time through gpthelper.stores.ConfigStore.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

# Heuristic ceilings; tune through the environment rather than in code.
DEFAULT_HARD_CHAR_CAP = 1_500_000
DEFAULT_RETRY_USER_MAX_CHARS = 200_000
DEFAULT_RETRY_HISTORY_MESSAGES = 6


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """Router configuration.

    Validation rules:
    - hard_char_cap must leave room for a head/tail truncation marker
    - retry_user_max_chars must not exceed hard_char_cap
    """

    env: Environment = Field(default=Environment.LOCAL, alias="GPTHELPER_ENV")
    debug: bool = Field(default=False, alias="GPTHELPER_DEBUG")

    hard_char_cap: int = Field(
        default=DEFAULT_HARD_CHAR_CAP, ge=1_000, alias="GPTHELPER_HARD_CHAR_CAP"
    )
    retry_history_messages: int = Field(
        default=DEFAULT_RETRY_HISTORY_MESSAGES, ge=0, alias="GPTHELPER_RETRY_HISTORY_MESSAGES"
    )
    retry_user_max_chars: int = Field(
        default=DEFAULT_RETRY_USER_MAX_CHARS, ge=1_000, alias="GPTHELPER_RETRY_USER_MAX_CHARS"
    )

    request_timeout_s: float = Field(default=120.0, gt=0, alias="GPTHELPER_REQUEST_TIMEOUT_S")
    connect_timeout_s: float = Field(default=10.0, gt=0, alias="GPTHELPER_CONNECT_TIMEOUT_S")
    model_list_timeout_s: float = Field(default=30.0, gt=0, alias="GPTHELPER_MODEL_LIST_TIMEOUT_S")
    model_cache_ttl_s: int = Field(default=24 * 60 * 60, gt=0, alias="GPTHELPER_MODEL_CACHE_TTL_S")

    # Anthropic requires max_tokens on every request
    anthropic_default_max_tokens: int = Field(
        default=1024, gt=0, alias="GPTHELPER_ANTHROPIC_DEFAULT_MAX_TOKENS"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_ceilings(self) -> "Settings":
        """Ensure the retry ceiling fits inside the hard cap."""
        if self.retry_user_max_chars > self.hard_char_cap:
            raise ValueError(
                "GPTHELPER_RETRY_USER_MAX_CHARS must not exceed GPTHELPER_HARD_CHAR_CAP "
                f"({self.retry_user_max_chars} > {self.hard_char_cap})"
            )
        return self

    @property
    def is_strict(self) -> bool:
        """Whether log-guard violations should raise instead of warn."""
        return self.env in (Environment.LOCAL, Environment.TEST)


@lru_cache
def get_settings() -> Settings:
    """Get cached router settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If a setting is out of range.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
