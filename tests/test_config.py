"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from fincontrol.config import (
    AppSettings,
    GoogleSheetsSettings,
    get_settings,
    validate_all_settings,
)


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)  # keep a developer's .env out of the tests
    for name in (
        "GOOGLE_SHEETS_CREDENTIALS_PATH",
        "GOOGLE_SHEETS_SPREADSHEET_ID",
        "USAGE_WARNING_PERCENT",
        "USAGE_CRITICAL_PERCENT",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestAppSettings:

    def test_defaults(self):
        settings = AppSettings()
        assert settings.currency_code == "ARS"
        assert settings.usage_warning_percent == 70.0
        assert settings.usage_critical_percent == 95.0

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("USAGE_WARNING_PERCENT", "60")
        assert AppSettings().usage_warning_percent == 60.0

    def test_warning_must_not_exceed_critical(self):
        with pytest.raises(ValidationError):
            AppSettings(usage_warning_percent=96, usage_critical_percent=95)


class TestGoogleSheetsSettings:

    def test_requires_spreadsheet(self):
        with pytest.raises(ValidationError):
            GoogleSheetsSettings()

    def test_missing_credentials_file_only_warns(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", str(tmp_path / "missing.json"))
        monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-1")
        with pytest.warns(UserWarning):
            settings = GoogleSheetsSettings()
        assert settings.spreadsheet_id == "sheet-1"
        assert settings.poll_interval_seconds == 5.0


class TestValidateAllSettings:

    def test_local_only_configuration(self):
        results = validate_all_settings()
        assert results["app"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results

    def test_fully_configured(self, monkeypatch, tmp_path):
        credentials = tmp_path / "service-account.json"
        credentials.write_text("{}")
        monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", str(credentials))
        monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-1")
        assert validate_all_settings() == {"google_sheets": True, "app": True}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
