from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator

from fit_repo.exceptions import InvalidBudgetError, SettingsFileError

ENV_FILE = find_dotenv(usecwd=True)


class Settings(BaseModel):
    """Budget constants for the content-fitting pipeline."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tokens_per_char: float = Field(default=0.25, description="Estimated tokens per character.")
    max_context_tokens: int = Field(default=128_000, description="Context window of the consumer.")
    max_code_content_chars: int = Field(
        default=400_000,
        description="Raw character ceiling for a single fitted blob.",
    )
    aggressive_truncation_lines: int = Field(
        default=100,
        description="Lines kept per file during aggressive truncation.",
    )
    truncation_message: str = Field(
        default="\n\n... [Content truncated due to size limits]",
        description="Marker appended whenever content is cut.",
    )
    llm_max_tokens: int = Field(default=4000, description="Default response tokens.")
    quest_response_tokens: int = Field(
        default=6000,
        description="Response tokens requested for per-quest generation.",
    )
    chunking_response_tokens: int = Field(
        default=10_000,
        description="Tokens reserved for the response while chunking.",
    )
    chunking_prompt_tokens: int = Field(
        default=3_000,
        description="Tokens reserved for the prompt template while chunking.",
    )
    chunking_context_summary_tokens: int = Field(
        default=8_000,
        description="Tokens reserved in later chunks for the carried-over summary.",
    )
    cache_ttl_seconds: float = Field(default=60.0, description="Fit result cache TTL.")

    @model_validator(mode="after")
    def _check_budgets(self) -> Settings:
        if self.tokens_per_char <= 0:
            raise InvalidBudgetError(name="tokens_per_char", value=self.tokens_per_char)
        for name in (
            "max_context_tokens",
            "max_code_content_chars",
            "aggressive_truncation_lines",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise InvalidBudgetError(name=name, value=value)
        for name in (
            "llm_max_tokens",
            "quest_response_tokens",
            "chunking_response_tokens",
            "chunking_prompt_tokens",
            "chunking_context_summary_tokens",
            "cache_ttl_seconds",
        ):
            value = getattr(self, name)
            if value < 0:
                raise InvalidBudgetError(name=name, value=value)
        subsequent = self.available_content_tokens - self.chunking_context_summary_tokens
        if subsequent <= 0:
            raise InvalidBudgetError(name="available_content_tokens", value=subsequent)
        return self

    @property
    def reserved_response_tokens(self) -> int:
        return max(self.llm_max_tokens, self.quest_response_tokens, self.chunking_response_tokens)

    @property
    def available_content_tokens(self) -> int:
        return self.max_context_tokens - self.reserved_response_tokens - self.chunking_prompt_tokens


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise SettingsFileError(path=path, reason=str(e)) from e
    if not isinstance(data, dict):
        raise SettingsFileError(path=path, reason="top level must be a mapping")
    return data


def _read_environment(env_file: str | Path | None) -> dict[str, Any]:
    env: dict[str, Any] = {}
    source = env_file if env_file is not None else ENV_FILE
    if source:
        env.update({k: v for k, v in dotenv_values(source).items() if v is not None})
    env.update(os.environ)
    values: dict[str, Any] = {}
    for name in Settings.model_fields:
        key = name.upper()
        if key in env:
            values[name] = env[key]
    return values


def load_settings(
    env_file: str | Path | None = None,
    config_file: str | Path | None = None,
    **overrides: Any,
) -> Settings:
    """Build settings from defaults, a YAML file, the environment and overrides.

    Later sources win: defaults < ``config_file`` < ``.env`` and process
    environment (upper-case field names) < ``overrides``.

    Args:
        env_file: Optional ``.env`` file. Defaults to the one found from the cwd.
        config_file: Optional YAML file holding a mapping of field names.
        **overrides: Explicit field values.

    Returns:
        Settings: the validated, frozen settings.
    """
    values: dict[str, Any] = {}
    if config_file:
        values.update(_read_config_file(Path(config_file)))
    values.update(_read_environment(env_file))
    values.update(overrides)
    return Settings(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return load_settings()
