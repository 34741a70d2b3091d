from __future__ import annotations

from pathlib import Path

import pytest

from fit_repo.exceptions import InvalidBudgetError, SettingsFileError
from fit_repo.settings import Settings, load_settings


@pytest.mark.unit
def test_settings_defaults() -> None:
    settings = Settings()

    assert settings.tokens_per_char == 0.25
    assert settings.max_context_tokens == 128_000
    assert settings.aggressive_truncation_lines == 100
    assert settings.reserved_response_tokens == 10_000
    assert settings.available_content_tokens == 115_000
    assert "truncated" in settings.truncation_message


@pytest.mark.unit
def test_reserved_response_takes_largest_allowance() -> None:
    settings = Settings(llm_max_tokens=12_000)

    assert settings.reserved_response_tokens == 12_000


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides",
    [
        {"tokens_per_char": 0},
        {"max_context_tokens": -1},
        {"aggressive_truncation_lines": 0},
        {"chunking_prompt_tokens": -5},
        {"max_context_tokens": 20_000},
    ],
)
def test_invalid_budgets_fail_fast(overrides: dict[str, float]) -> None:
    with pytest.raises(InvalidBudgetError):
        Settings(**overrides)


@pytest.mark.unit
def test_settings_are_frozen() -> None:
    settings = Settings()

    with pytest.raises(ValueError):
        settings.max_context_tokens = 1  # type: ignore[misc]


@pytest.mark.unit
def test_load_settings_layers_sources(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "fit.yaml"
    config.write_text("max_context_tokens: 64000\naggressive_truncation_lines: 40\n", encoding="utf-8")
    env_file = tmp_path / ".env"
    env_file.write_text("AGGRESSIVE_TRUNCATION_LINES=60\n", encoding="utf-8")
    monkeypatch.setenv("TOKENS_PER_CHAR", "0.5")

    settings = load_settings(env_file=env_file, config_file=config, cache_ttl_seconds=5)

    assert settings.max_context_tokens == 64_000
    assert settings.aggressive_truncation_lines == 60
    assert settings.tokens_per_char == 0.5
    assert settings.cache_ttl_seconds == 5


@pytest.mark.unit
def test_load_settings_rejects_non_mapping_yaml(tmp_path: Path) -> None:
    config = tmp_path / "fit.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(SettingsFileError) as excinfo:
        load_settings(env_file="", config_file=config)

    assert "mapping" in str(excinfo.value)


@pytest.mark.unit
def test_load_settings_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SettingsFileError):
        load_settings(env_file="", config_file=tmp_path / "missing.yaml")
