"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from finance_engine.config import (
    AppSettings,
    EngineSettings,
    LedgerSettings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)


class TestSettings:
    """Tests for pydantic-settings configuration."""

    def test_defaults(self):
        """Test the documented defaults."""
        engine = EngineSettings()
        ledger = LedgerSettings()
        storage = StorageSettings()
        assert engine.max_amortization_periods == 600
        assert engine.max_projection_years == 100
        assert engine.max_projection_months == 1200
        assert ledger.max_attempts == 10
        assert storage.backend == "memory"

    def test_env_prefix(self, monkeypatch):
        """Test that settings read their prefixed environment variables."""
        monkeypatch.setenv("ENGINE_MAX_AMORTIZATION_PERIODS", "360")
        monkeypatch.setenv("LEDGER_MAX_ATTEMPTS", "3")
        monkeypatch.setenv("STORAGE_BACKEND", "sql")
        assert EngineSettings().max_amortization_periods == 360
        assert LedgerSettings().max_attempts == 3
        assert StorageSettings().backend == "sql"

    def test_invalid_backend_rejected(self, monkeypatch):
        """Test that an unknown storage backend fails validation."""
        monkeypatch.setenv("STORAGE_BACKEND", "sheets")
        with pytest.raises(ValidationError):
            StorageSettings()

    def test_log_level_normalized(self, monkeypatch):
        """Test that the log level is upper-cased and validated."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert AppSettings().log_level == "DEBUG"
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        with pytest.raises(ValidationError, match="Unsupported log level"):
            AppSettings()

    def test_validate_all_settings_reports_errors(self, monkeypatch):
        """Test that the startup check reports a broken sub-setting."""
        monkeypatch.setenv("LEDGER_MAX_ATTEMPTS", "0")
        results = validate_all_settings()
        assert results["engine"] is True
        assert results["ledger"] is False
        assert "ledger_error" in results

    def test_get_settings_cached(self):
        """Test that the root settings object is cached."""
        assert get_settings() is get_settings()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
