"""Service configuration loaded from AGENTGATE_* environment variables."""

from __future__ import annotations

import os

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentgate.agent_runtime.models.enums import ModelAlias


class GateSettings(BaseSettings):
    """agentgate runtime settings.

    All fields are read from environment variables with the ``AGENTGATE_``
    prefix.  For example, ``AGENTGATE_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Engine credentials (ANTHROPIC_API_KEY, ...) are **not** managed here --
    the engine reads them from its own environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False
    """Emit one JSON object per log line on stderr."""

    log_file: str | None = None
    """Optional path of a rotating log file, in addition to stderr."""

    # -- Server ----------------------------------------------------------------
    host: str = "127.0.0.1"
    port: int = 8000
    graceful_shutdown_timeout: int = 30
    """Seconds to wait for active runs to finish during shutdown.

    After this timeout, remaining runs are cancelled.
    """

    # -- Engine ----------------------------------------------------------------
    default_cwd: str = Field(default_factory=os.getcwd)
    """Working directory for sessions started without one."""

    include_partial_messages: bool = True
    setting_sources: list[str] = Field(default_factory=lambda: ["user", "project"])

    default_model: str | None = None
    """Model alias or id used when a session does not select one."""

    sonnet_model: str = Field(
        default="claude-sonnet-4-20250514",
        validation_alias=AliasChoices("AGENTGATE_SONNET_MODEL", "ANTHROPIC_DEFAULT_SONNET_MODEL"),
    )
    opus_model: str = Field(
        default="claude-opus-4-20250514",
        validation_alias=AliasChoices("AGENTGATE_OPUS_MODEL", "ANTHROPIC_DEFAULT_OPUS_MODEL"),
    )
    haiku_model: str = Field(
        default="claude-haiku-3-5-20241022",
        validation_alias=AliasChoices("AGENTGATE_HAIKU_MODEL", "ANTHROPIC_DEFAULT_HAIKU_MODEL"),
    )

    # -- Helpers ---------------------------------------------------------------

    def resolve_model(self, model: str | None) -> str | None:
        """Map a model alias to its configured id.

        Unknown names pass through unchanged so callers can select a full
        model id directly.  ``None`` falls back to ``default_model``.
        """
        model = model or self.default_model
        if model is None:
            return None
        match model.lower():
            case ModelAlias.SONNET:
                return self.sonnet_model
            case ModelAlias.OPUS:
                return self.opus_model
            case ModelAlias.HAIKU:
                return self.haiku_model
        return model


def get_settings() -> GateSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> GateSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return GateSettings()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
