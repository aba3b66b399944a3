"""Settings validation"""
import pytest
from pydantic import ValidationError as SettingsValidationError

from app.core.config import Settings
from app.core.constants import MAX_RETRY_COUNT


class TestSettings:

    def test_retry_limit_defaults_to_cap(self, monkeypatch):
        monkeypatch.delenv("MAX_GENERATION_RETRIES", raising=False)
        assert Settings().MAX_GENERATION_RETRIES == MAX_RETRY_COUNT

    def test_retry_limit_below_cap_accepted(self):
        assert Settings(MAX_GENERATION_RETRIES=1).MAX_GENERATION_RETRIES == 1

    def test_retry_limit_above_cap_rejected(self):
        with pytest.raises(SettingsValidationError):
            Settings(MAX_GENERATION_RETRIES=MAX_RETRY_COUNT + 1)

    def test_retry_limit_from_environment_is_checked(self, monkeypatch):
        monkeypatch.setenv("MAX_GENERATION_RETRIES", "10")
        with pytest.raises(SettingsValidationError):
            Settings()
