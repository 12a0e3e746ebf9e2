"""Tests for settings and logging setup."""

import json
import logging
import sys
from datetime import timedelta

from riskwatch.config import MonitorConfig, ScoringConfig, Settings
from riskwatch.log import JsonFormatter, configure_logging


def test_settings_from_environment(monkeypatch) -> None:
    """Test that settings are read from environment variables."""
    monkeypatch.setenv("CACHE_TTL_SECONDS", "60")
    monkeypatch.setenv("SWEEP_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("ENABLE_ML_MODELS", "false")
    monkeypatch.setenv("KNOWN_MALICIOUS_ADDRESSES", '["0xDEADbeef"]')

    settings = Settings()

    scoring = settings.scoring_config()
    assert scoring.cache_ttl == timedelta(seconds=60)
    assert scoring.enable_ml_models is False
    assert "0xdeadbeef" in scoring.known_malicious_addresses
    assert "0x0000000000000000000000000000000000000000" in scoring.known_malicious_addresses

    monitor = settings.monitor_config()
    assert monitor.sweep_interval == timedelta(seconds=5)
    assert monitor.recheck_interval == timedelta(minutes=5)


def test_config_defaults() -> None:
    """Test default scoring and monitor constants."""
    scoring = ScoringConfig()
    assert scoring.cache_ttl == timedelta(minutes=15)
    assert scoring.confidence_weight_divisor == 5.0
    assert scoring.min_confidence == 0.1

    monitor = MonitorConfig()
    assert monitor.sweep_interval == timedelta(seconds=30)
    assert monitor.recheck_interval == timedelta(minutes=5)


def test_json_formatter_includes_extra() -> None:
    """Test that structured fields end up in the JSON line."""
    logger = logging.getLogger("riskwatch.test")
    record = logger.makeRecord(
        "riskwatch.test",
        logging.INFO,
        __file__,
        1,
        "Alert triggered",
        (),
        None,
        extra={"alert_id": "a1", "risk_score": 85},
    )

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Alert triggered"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "riskwatch.test"
    assert payload["alert_id"] == "a1"
    assert payload["risk_score"] == 85


def test_configure_logging_sets_level() -> None:
    """Test logger configuration from settings."""
    configure_logging(Settings(log_level="debug", log_format="text"))

    logger = logging.getLogger("riskwatch")
    try:
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0].formatter, JsonFormatter)
    finally:
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)


def test_json_formatter_renders_exceptions() -> None:
    """Test that exception details are part of the JSON line."""
    logger = logging.getLogger("riskwatch.test")
    try:
        raise RuntimeError("rpc unavailable")
    except RuntimeError:
        record = logger.makeRecord(
            "riskwatch.test",
            logging.WARNING,
            __file__,
            1,
            "Contract code lookup failed",
            (),
            sys.exc_info(),
            extra={"chain_id": 1},
        )

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["chain_id"] == 1
    assert "rpc unavailable" in payload["exc_info"]
    assert payload["ts"].endswith("+00:00")


def test_configure_logging_json_format() -> None:
    """Test that the json log format installs the JSON formatter."""
    configure_logging(Settings(log_level="info", log_format="json"))

    logger = logging.getLogger("riskwatch")
    try:
        assert logger.level == logging.INFO
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)
    finally:
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
