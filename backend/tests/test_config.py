"""
Tests for tradepilot.core.config module.

Covers Settings and get_settings.
"""

import os
from unittest.mock import patch

import pytest

from tradepilot.core.config import Settings, get_settings


class TestSettings:
    """Test Settings model."""

    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.app_name == "TradePilot"
        assert s.environment == "development"
        assert s.host == "0.0.0.0"
        assert s.port == 8000

    def test_is_debug_development(self):
        s = Settings(_env_file=None, environment="development")
        assert s.is_debug is True

    def test_is_debug_staging(self):
        s = Settings(_env_file=None, environment="staging")
        assert s.is_debug is True

    def test_is_debug_production(self):
        s = Settings(_env_file=None, environment="production", anthropic_api_key="sk-test")
        assert s.is_debug is False

    def test_production_requires_anthropic_key(self):
        env = os.environ.copy()
        env.pop("ANTHROPIC_API_KEY", None)
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ValueError, match="ANTHROPIC_API_KEY must be set"):
                Settings(_env_file=None, environment="production")

    def test_production_requires_openai_key_for_openai_model(self):
        env = os.environ.copy()
        env.pop("OPENAI_API_KEY", None)
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ValueError, match="OPENAI_API_KEY must be set"):
                Settings(
                    _env_file=None,
                    environment="production",
                    ai_model="openai:gpt-4o",
                    anthropic_api_key="sk-unused",
                )

    def test_env_overrides(self):
        env = {
            "ENVIRONMENT": "staging",
            "SCHEDULER_INTERVAL_SECONDS": "10",
            "ALLOW_SHORT_SELLING": "true",
        }
        with patch.dict(os.environ, env):
            s = Settings(_env_file=None)
            assert s.environment == "staging"
            assert s.scheduler_interval_seconds == 10
            assert s.allow_short_selling is True

    def test_cors_origins_parsed(self):
        s = Settings(_env_file=None, cors_origins="http://a.test, http://b.test,,")
        assert s.get_cors_origins() == ["http://a.test", "http://b.test"]

    def test_has_broker_credentials(self):
        assert Settings(_env_file=None, alpaca_api_key="k", alpaca_api_secret="s").has_broker_credentials
        assert not Settings(_env_file=None, alpaca_api_key="k", alpaca_api_secret="").has_broker_credentials

    def test_db_pool_defaults(self):
        s = Settings(_env_file=None)
        assert s.db_pool_size == 5
        assert s.db_pool_max_overflow == 10
        assert s.db_pool_timeout == 30
        assert s.db_pool_recycle == 1800

    def test_cycle_defaults(self):
        s = Settings(_env_file=None)
        assert s.max_consecutive_errors == 5
        assert s.min_trade_confidence == 70
        assert s.allow_short_selling is False
        assert s.settlement_max_retries == 3

    def test_scheduler_defaults(self):
        s = Settings(_env_file=None)
        assert s.scheduler_enabled is True
        assert s.scheduler_interval_seconds == 30
        assert s.manual_interval_seconds == 300


class TestGetSettings:
    """Test get_settings function."""

    def test_returns_settings(self):
        get_settings.cache_clear()
        s = get_settings()
        assert isinstance(s, Settings)

    def test_caching(self):
        get_settings.cache_clear()
        s1 = get_settings()
        s2 = get_settings()
        assert s1 is s2
