import sys

import pytest
from pydantic import ValidationError

from talonlang.config import PredefinedPolicy, RuntimeConfig
from talonlang.log import configure_logging
from loguru import logger


def test_defaults(monkeypatch):
    for var in ("TALON_PREDEFINED_POLICY", "TALON_LOG_LEVEL", "TALON_PARSE_CACHE_SIZE",
                "TALON_REQUIRE_CHAIN_FIELDS", "TALON_STATE_DIR"):
        monkeypatch.delenv(var, raising=False)
    config = RuntimeConfig.from_env()
    assert config.predefined_policy == PredefinedPolicy.FAIL_CLOSED
    assert config.log_level == "INFO"
    assert config.parse_cache_size == 256
    assert config.require_chain_fields is False


def test_from_env(monkeypatch):
    monkeypatch.setenv("TALON_PREDEFINED_POLICY", "SKIP")
    monkeypatch.setenv("TALON_LOG_LEVEL", "debug")
    monkeypatch.setenv("TALON_PARSE_CACHE_SIZE", "0")
    monkeypatch.setenv("TALON_REQUIRE_CHAIN_FIELDS", "true")
    monkeypatch.setenv("TALON_STATE_DIR", "/tmp/talon")
    config = RuntimeConfig.from_env()
    assert config.predefined_policy == PredefinedPolicy.SKIP
    assert config.log_level == "DEBUG"
    assert config.parse_cache_size == 0
    assert config.require_chain_fields is True
    assert config.state_dir == "/tmp/talon"


def test_invalid_env(monkeypatch):
    monkeypatch.setenv("TALON_PARSE_CACHE_SIZE", "-1")
    with pytest.raises(ValidationError):
        RuntimeConfig.from_env()


def test_configure_logging_routes_to_sink():
    lines = []
    configure_logging("WARNING", sink=lines.append)
    try:
        logger.info("hidden")
        logger.warning("shown")
    finally:
        configure_logging("INFO", sink=sys.stderr)
    assert len(lines) == 1
    assert "shown" in lines[0]
