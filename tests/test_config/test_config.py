"""Tests for settings."""

from pathlib import Path

import pytest

from clinical_memory.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for Settings defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        for name in ("DATA_DIR", "DATA_BASE_URL", "TELEMETRY_ENABLED", "ASK_BUDGET_CHARS"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)

        assert settings.data_dir == Path("./data/patients")
        assert settings.has_http_source is False
        assert settings.telemetry_enabled is False
        assert settings.ask_budget_chars == 5000
        assert settings.dictate_budget_chars == 10000
        assert settings.refresh_budget_chars == 15000
        assert settings.write_note_budget_chars == 15000
        assert settings.max_writeback_chars == 4000

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.setenv("DATA_BASE_URL", "https://charts.example.test")
        monkeypatch.setenv("ASK_BUDGET_CHARS", "2500")
        monkeypatch.setenv("log_level", "DEBUG")

        settings = Settings(_env_file=None)

        assert settings.data_dir == tmp_path
        assert settings.has_http_source is True
        assert settings.ask_budget_chars == 2500
        assert settings.log_level == "DEBUG"

    def test_invalid_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "VERBOSE")
        with pytest.raises(ValueError):
            Settings(_env_file=None)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
