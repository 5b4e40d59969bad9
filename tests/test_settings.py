#!/usr/bin/env python3
"""Tests for environment-driven settings and logging bootstrap."""
import sys

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.maya.common.exceptions import ConfigurationError
from src.maya.common.settings import (
    configure_logging,
    env_bool,
    env_float,
    env_int,
    load_settings,
)
from src.maya.orchestration.cache.hybrid_cache import CacheConfig
from src.maya.orchestration.orchestrator.engine import OrchestratorConfig


class TestEnvHelpers:
    """Test environment variable parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("true", True),
        ("1", True),
        ("YES", True),
        ("false", False),
        ("0", False),
        ("nonsense", False),
    ])
    def test_env_bool(self, monkeypatch, raw, expected):
        monkeypatch.setenv("MAYA_TEST_FLAG", raw)
        assert env_bool("MAYA_TEST_FLAG", not expected) is expected

    def test_env_bool_default(self, monkeypatch):
        monkeypatch.delenv("MAYA_TEST_FLAG", raising=False)
        assert env_bool("MAYA_TEST_FLAG", True) is True

    def test_env_float_and_int(self, monkeypatch):
        monkeypatch.setenv("MAYA_TEST_NUMBER", "2.5")
        assert env_float("MAYA_TEST_NUMBER", 1.0) == 2.5
        assert env_int("MAYA_TEST_NUMBER", 1) == 2

    def test_blank_uses_default(self, monkeypatch):
        monkeypatch.setenv("MAYA_TEST_NUMBER", "  ")
        assert env_float("MAYA_TEST_NUMBER", 7.0) == 7.0

    def test_invalid_number_raises_configuration_error(self, monkeypatch):
        monkeypatch.setenv("MAYA_TEST_NUMBER", "ten")
        with pytest.raises(ConfigurationError) as exc_info:
            env_float("MAYA_TEST_NUMBER", 1.0)
        assert exc_info.value.details["variable"] == "MAYA_TEST_NUMBER"


class TestConfigFromEnvironment:
    """Config dataclasses read their defaults from the environment."""

    def test_orchestrator_config(self, monkeypatch):
        monkeypatch.setenv("MAYA_ORCHESTRATOR_TIMEOUT_SECONDS", "12")
        monkeypatch.setenv("MAYA_ORCHESTRATOR_MAX_RETRIES", "1")
        monkeypatch.setenv("MAYA_STUB_UNREGISTERED", "false")

        config = OrchestratorConfig()
        assert config.timeout_seconds == 12.0
        assert config.retry_policy.max_retries == 1
        assert config.stub_unregistered is False

    def test_cache_config(self, monkeypatch):
        monkeypatch.setenv("MAYA_CACHE_FRESHNESS_SECONDS", "30")
        monkeypatch.setenv("MAYA_CACHE_REMOTE_SYNC", "false")

        config = CacheConfig()
        assert config.freshness_window_seconds == 30.0
        assert config.remote_sync_enabled is False

    def test_load_settings_reads_env_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("JSONBIN_API_KEY", "")
        monkeypatch.delenv("JSONBIN_API_KEY")
        env_file = tmp_path / ".env"
        env_file.write_text("JSONBIN_API_KEY=from-file\n")

        settings = load_settings(str(env_file))
        assert settings.jsonbin_api_key == "from-file"


class TestLogging:
    """Test logging bootstrap."""

    def test_unknown_level_rejected(self):
        with pytest.raises(ConfigurationError):
            configure_logging("LOUD")

    def test_known_level_accepted(self):
        configure_logging("debug")
