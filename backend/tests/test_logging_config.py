"""
Logging setup: billing logger levels, log directory and file handlers.
"""
from __future__ import annotations

import logging

import pytest

from saaskit.core import logging_config
from saaskit.core.config import settings

BILLING_LOGGER = "saaskit.services.subscription_service"


@pytest.fixture
def billing_logger():
    logger = logging.getLogger(BILLING_LOGGER)
    previous = logger.level
    yield logger
    logger.setLevel(previous)


def test_billing_level_is_configurable(billing_logger, monkeypatch) -> None:
    monkeypatch.setattr(settings, "BILLING_LOG_LEVEL", "debug")

    logging_config.configure_billing_loggers()

    assert billing_logger.level == logging.DEBUG


def test_unknown_billing_level_falls_back_to_info(billing_logger, monkeypatch) -> None:
    monkeypatch.setattr(settings, "BILLING_LOG_LEVEL", "chatty")

    logging_config.configure_billing_loggers()

    assert billing_logger.level == logging.INFO


def test_log_dir_defaults_to_backend_logs(monkeypatch) -> None:
    monkeypatch.setattr(settings, "LOG_DIR", "")
    assert logging_config.resolve_log_dir() == logging_config.DEFAULT_LOG_DIR


def test_log_dir_from_settings(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(settings, "LOG_DIR", str(tmp_path / "audit"))
    assert logging_config.resolve_log_dir() == tmp_path / "audit"


def test_file_handler_creates_directory_and_writes(tmp_path) -> None:
    path = tmp_path / "nested" / logging_config.BILLING_LOG_NAME
    handler = logging_config._build_file_handler(path)
    logger = logging.getLogger("saaskit.tests.file_handler")
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    try:
        logger.info("webhook_processed: event=%s", "evt_1")
    finally:
        logger.removeHandler(handler)
        handler.close()

    content = path.read_text(encoding="utf-8")
    assert "webhook_processed: event=evt_1" in content
    assert "saaskit.tests.file_handler" in content
