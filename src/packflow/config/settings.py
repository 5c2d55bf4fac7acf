"""Engine settings loaded from kwargs, environment, ``.env`` and YAML."""

from __future__ import annotations

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "PACKFLOW_CONFIG"

# A whole value of the form ${NAME}
_PLACEHOLDER = re.compile(r"^\$\{([A-Z_][A-Z0-9_]*)\}$")

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def config_file_candidates() -> list[Path]:
    """Where a ``packflow.yaml`` is looked for, highest priority first."""
    candidates = [Path("packflow.yaml"), Path("config") / "packflow.yaml"]
    candidates.append(Path.home() / ".config" / "packflow" / "packflow.yaml")
    if explicit := os.environ.get(CONFIG_FILE_ENV):
        candidates.insert(0, Path(explicit))
    return candidates


def find_config_file() -> Path | None:
    return next((path for path in config_file_candidates() if path.is_file()), None)


def _expand_placeholders(data: dict[str, Any]) -> dict[str, Any]:
    """Substitute ``${NAME}`` values from the environment.

    Keys whose variable is unset are dropped so the field default applies.
    """
    expanded: dict[str, Any] = {}
    for key, value in data.items():
        match = _PLACEHOLDER.match(value) if isinstance(value, str) else None
        if match:
            value = os.environ.get(match.group(1))
        if value is not None:
            expanded[key] = value
    return expanded


class Settings(BaseSettings):
    """Engine settings.

    Later sources lose: init kwargs, environment, ``.env``, then the first
    ``packflow.yaml`` from :func:`config_file_candidates`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        chain = [init_settings, env_settings, dotenv_settings]
        config_file = find_config_file()
        if config_file is not None:
            logger.debug("Loading settings from %s", config_file)
            chain.append(YamlConfigSettingsSource(settings_cls, yaml_file=config_file))
        return (*chain, file_secret_settings)

    @model_validator(mode="before")
    @classmethod
    def _resolve_placeholders(cls, data: Any) -> Any:
        return _expand_placeholders(data) if isinstance(data, dict) else data

    # Logging
    log_level: str = Field("INFO", description="DEBUG, INFO, WARNING, ERROR or CRITICAL")
    log_format: str = Field("text", description="'text' or 'json'")
    sanitize_logs: bool = Field(True, description="Redact API keys and tokens in log output")

    # Task execution
    default_task_timeout_ms: int = Field(
        300_000, ge=1, description="Timeout for tasks parsed from a coordinator plan (5 minutes)"
    )
    default_plan_task_timeout_ms: int = Field(
        1_800_000, ge=1, description="Timeout for tasks of the fallback default plan (30 minutes)"
    )
    default_task_estimate_ms: int = Field(
        1_800_000, ge=0, description="Duration assumed when a task estimate cannot be parsed"
    )
    parallel_limit: int = Field(
        0, ge=0, description="Max concurrent tasks within one parallel batch (0 = unlimited)"
    )
    default_max_retries: int = Field(
        0, ge=0, description="Retry budget for coordinator-planned tasks when auto retry is on"
    )
    max_retry_backoff_ms: int = Field(
        30_000, ge=0, description="Upper bound for a single retry backoff sleep"
    )

    # Persistence
    execution_store: str = Field(
        "memory", description="Execution store: 'memory' or a path to a SQLite database file"
    )

    # Provider
    anthropic_api_key: str | None = Field(None, description="API key for the Anthropic provider")
    default_model: str = Field("claude-sonnet-4-20250514", description="Default Claude model")
    max_tokens: int = Field(4096, ge=1, description="Max tokens per completion")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level

    @field_validator("log_format")
    @classmethod
    def _normalize_log_format(cls, value: str) -> str:
        fmt = value.lower()
        if fmt not in {"text", "json"}:
            raise ValueError("log_format must be 'text' or 'json'")
        return fmt

    @property
    def uses_sqlite_store(self) -> bool:
        return self.execution_store.lower() != "memory"

    @property
    def has_anthropic_key(self) -> bool:
        return bool(self.anthropic_api_key)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, built on first use."""
    return Settings()
