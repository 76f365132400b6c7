"""Tests for Settings."""

from datetime import time

import pytest

from stockwatch.config import Settings


class TestSettingsFromEnv:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.timezone == "Asia/Ho_Chi_Minh"
        assert settings.active_start == time(9, 0)
        assert settings.active_end == time(15, 0)
        assert settings.active_ttl == 30.0
        assert settings.standby_ttl == 300.0
        assert not settings.simulate
        assert not settings.smtp_configured

    def test_overrides(self):
        settings = Settings.from_env(
            {
                "STOCKWATCH_ACTIVE_START": "09:15",
                "STOCKWATCH_ACTIVE_END": "14:45",
                "STOCKWATCH_CLOSING_START": "14:30",
                "STOCKWATCH_SIMULATE": "yes",
                "STOCKWATCH_BATCH_SIZE": "20",
                "STOCKWATCH_LOG_LEVEL": "debug",
                "MASSIVE_API_KEY": " key ",
            }
        )
        assert settings.active_start == time(9, 15)
        assert settings.active_end == time(14, 45)
        assert settings.simulate
        assert settings.batch_size == 20
        assert settings.log_level == "DEBUG"
        assert settings.massive_api_key == "key"

    def test_smtp_configured(self):
        settings = Settings.from_env(
            {
                "STOCKWATCH_SMTP_HOST": "smtp.test.com",
                "STOCKWATCH_SMTP_USER": "user",
                "STOCKWATCH_SMTP_PASS": "pass",
                "STOCKWATCH_SMTP_FROM": "alerts@test.com",
            }
        )
        assert settings.smtp_configured

    @pytest.mark.parametrize(
        "env, message",
        [
            ({"STOCKWATCH_ACTIVE_TTL": "soon"}, "must be a number"),
            ({"STOCKWATCH_BATCH_SIZE": "1.5"}, "must be an integer"),
            ({"STOCKWATCH_ACTIVE_START": "9am"}, "HH:MM"),
            ({"STOCKWATCH_TIMEZONE": "Mars/Olympus"}, "Unknown timezone"),
            ({"STOCKWATCH_ACTIVE_START": "16:00"}, "active window"),
            ({"STOCKWATCH_CLOSING_START": "15:30"}, "closing_start"),
            ({"STOCKWATCH_ACTIVE_TTL": "600"}, "active_ttl"),
            ({"STOCKWATCH_BATCH_SIZE": "0"}, "batch_size"),
            ({"STOCKWATCH_MARKET_SYNC_INTERVAL": "0"}, "market_sync_interval"),
        ],
    )
    def test_invalid_values(self, env, message):
        with pytest.raises(ValueError, match=message):
            Settings.from_env(env)

    def test_tz(self):
        assert str(Settings().tz) == "Asia/Ho_Chi_Minh"
