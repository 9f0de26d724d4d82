"""
test_logging_config.py — Tests for renewal_risk/logging_config.py

Verifies Loguru setup, stdlib logging interception (the services log via
logging.getLogger("renewal.*")), and the production JSON sink chosen
from Settings.app_url.

Called by: pytest
Depends on: renewal_risk/logging_config.py
"""

import logging
import os
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from loguru import logger

from renewal_risk.logging_config import setup_logging


@pytest.fixture(autouse=True)
def _clean_loguru():
    """Remove all handlers before/after each test for isolation."""
    logger.remove()
    yield
    logger.remove()


def _app_url(url: str):
    """Patch the settings setup_logging reads app_url from."""
    return patch("renewal_risk.logging_config.get_settings", return_value=SimpleNamespace(app_url=url))


def test_setup_logging_adds_handler():
    assert len(logger._core.handlers) == 0
    with _app_url("http://localhost:8000"):
        setup_logging()
    assert len(logger._core.handlers) > 0


def test_service_logger_intercepted():
    """Messages from a renewal.* stdlib logger reach Loguru sinks."""
    with _app_url("http://localhost:8000"):
        setup_logging()

    # setup_logging() calls logger.remove(), so the capture sink goes on after
    messages = []
    logger.add(lambda m: messages.append(str(m)), format="{message}")

    logging.getLogger("renewal.refresh").warning("refresh finished with 2 errors")

    assert any("refresh finished with 2 errors" in m for m in messages)


def test_noisy_loggers_quieted():
    with _app_url("http://localhost:8000"):
        setup_logging()
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    assert logging.getLogger("apscheduler").level == logging.WARNING


def test_log_level_from_env():
    with _app_url("http://localhost:8000"), patch.dict(os.environ, {"LOG_LEVEL": "warning"}):
        setup_logging()

    messages = []
    logger.add(lambda m: messages.append(str(m)), level="WARNING", format="{message}")

    logger.debug("should be filtered")
    logger.warning("should appear")

    assert any("should appear" in m for m in messages)
    assert not any("should be filtered" in m for m in messages)


def test_production_mode_uses_serialize():
    """An https app_url that is not localhost switches to JSON output."""
    with _app_url("https://renewals.example.com"):
        # The file sink directory may not exist in test
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
    serialize_calls = [c for c in mock_add.call_args_list if c.kwargs.get("serialize") is True]
    assert len(serialize_calls) == 2


def test_development_mode_is_human_readable():
    with _app_url("http://localhost:8000"):
        with patch("loguru.logger.add") as mock_add:
            setup_logging()
    assert mock_add.call_count == 1
    assert not mock_add.call_args.kwargs.get("serialize")
