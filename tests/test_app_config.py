"""Tests for environment-driven configuration."""
import base64
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from app_config import DEFAULT_TIME_ZONE, AppConfig
from schemas.settings import ScheduleSettings
from services.errors import InvalidScheduleError
from services.scheduler import build_schedule

REQUIRED_ENV = {
    "MARKETPLACE_SELLER_ID": "42",
    "MARKETPLACE_API_KEY": "key",
    "MARKETPLACE_API_SECRET": "secret",
    "CHATBASE_AGENT_ID": "agent-1",
    "CHATBASE_API_KEY": "cb-key",
}


class TestFromEnv:
    def test_missing_credentials_are_named(self):
        with patch.dict(os.environ, {"MARKETPLACE_SELLER_ID": "42"}, clear=True):
            with pytest.raises(RuntimeError) as exc_info:
                AppConfig.from_env()
        message = str(exc_info.value)
        assert "MARKETPLACE_API_KEY" in message
        assert "CHATBASE_API_KEY" in message
        assert "MARKETPLACE_SELLER_ID" not in message

    def test_defaults(self):
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            config = AppConfig.from_env()
        assert config.request_retries == 1
        assert config.request_retry_delay_seconds == 5.0
        assert config.queue_interval_seconds == 1.0
        assert config.unknown_answer_sentinel == "xyz"
        assert config.default_time_zone == DEFAULT_TIME_ZONE

    def test_overrides(self):
        env = {**REQUIRED_ENV, "REQUEST_RETRIES": "3", "UNKNOWN_ANSWER_SENTINEL": "??"}
        with patch.dict(os.environ, env, clear=True):
            config = AppConfig.from_env()
        assert config.request_retries == 3
        assert config.unknown_answer_sentinel == "??"

    def test_marketplace_token_is_basic_auth(self):
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            config = AppConfig.from_env()
        assert base64.b64decode(config.marketplace_token).decode() == "key:secret"


class TestScheduleSettingsDefaults:
    def test_time_zone_defaults_to_configured_zone(self):
        assert ScheduleSettings().time_zone == DEFAULT_TIME_ZONE

    @pytest.mark.parametrize("value", ["24:00", "9:00", "09:60"])
    def test_time_format_matches_schedule_validation(self, value):
        with pytest.raises(ValidationError):
            ScheduleSettings(start_time=value)
        with pytest.raises(InvalidScheduleError):
            build_schedule(["Monday"], value, "17:00", DEFAULT_TIME_ZONE)
