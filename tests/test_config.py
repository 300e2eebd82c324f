"""
Tests for environment settings validation.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from backend.app.core.config import Settings


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.LOOKBACK_DAYS == 15
        assert s.FORECAST_DAYS == 7
        assert s.ASSESSMENT_INTERVAL_SECONDS == 300
        assert s.ASSESSMENT_HISTORY_SIZE == 10

    @pytest.mark.parametrize("name", [
        "FORECAST_DAYS",
        "LOOKBACK_DAYS",
        "ASSESSMENT_INTERVAL_SECONDS",
        "ASSESSMENT_HISTORY_SIZE",
        "LATEST_READINGS_LIMIT",
    ])
    def test_rejects_non_positive(self, name):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{name: 0})

    def test_rejects_env_var(self, monkeypatch):
        monkeypatch.setenv("FORECAST_DAYS", "0")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_provider_configured(self):
        assert not Settings(_env_file=None, SUPABASE_URL=None).provider_configured
        s = Settings(
            _env_file=None,
            SUPABASE_URL="https://example.supabase.co",
            SUPABASE_ANON_KEY="anon",
        )
        assert s.provider_configured
