"""
Settings, logging and exception taxonomy.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from trade_analytics.utils.config import Settings, get_settings, reload_settings
from trade_analytics.utils.exceptions import ErrorCategory, MalformedRecordError
from trade_analytics.utils.logger import get_logger, setup_logging


class TestSettings:

    def test_defaults(self, settings):
        assert settings.percent_precision == 2
        assert settings.last_n_days == 7
        assert [b.label for b in settings.dte_buckets][0] == "0 DTE"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TRADE_ANALYTICS_LOCAL_TIMEZONE", "Europe/London")
        monkeypatch.setenv("TRADE_ANALYTICS_LAST_N_DAYS", "30")
        try:
            reloaded = reload_settings()
            assert reloaded.local_timezone == "Europe/London"
            assert reloaded.last_n_days == 30
            assert get_settings() is reloaded
        finally:
            monkeypatch.undo()
            reload_settings()

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, local_timezone="Mars/Base")


class TestLogging:

    def test_file_handler(self, tmp_path, settings):
        log_file = tmp_path / "logs" / "analytics.log"
        setup_logging(settings.model_copy(update={"log_file": str(log_file)}))
        get_logger("test").warning("record_skipped", record_id="p1", reason="missing_realized_pl")
        assert log_file.parent.exists()


class TestExceptions:

    def test_malformed_record_message(self):
        exc = MalformedRecordError("p1", "missing_realized_pl")
        assert exc.reason == "missing_realized_pl"
        assert exc.category == ErrorCategory.RECORD
        assert str(exc) == "[record] missing realized pl | Record: p1"
