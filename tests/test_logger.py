import logging

import notifiers.logging
import pytest

from run_ci import config
from run_ci.logger import NOTIFY_LEVEL, setup_logger


@pytest.fixture
def logger():
    logger = logging.getLogger("run_ci.tests.setup")
    yield logger
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


def notification_handlers(logger):
    return [
        h for h in logger.handlers if isinstance(h, notifiers.logging.NotificationHandler)
    ]


def test_level_from_config(logger, monkeypatch):
    monkeypatch.setattr(config, "TELEGRAM_TOKEN", None)

    assert setup_logger(logger, "debug")
    assert logger.level == logging.DEBUG
    assert notification_handlers(logger) == []


def test_invalid_level_keeps_current(logger, monkeypatch, caplog):
    monkeypatch.setattr(config, "TELEGRAM_TOKEN", None)
    logger.setLevel(logging.INFO)

    assert not setup_logger(logger, "chatty")
    assert logger.level == logging.INFO
    assert "the log level is invalid: chatty" in caplog.text


def test_telegram_handler_is_attached_once(logger, monkeypatch):
    monkeypatch.setattr(config, "TELEGRAM_TOKEN", "123:abc")
    monkeypatch.setattr(config, "TELEGRAM_CHAT_ID", "42")

    setup_logger(logger, "info")
    setup_logger(logger, "warning")

    handlers = notification_handlers(logger)
    assert len(handlers) == 1
    assert handlers[0].level == NOTIFY_LEVEL
    assert logger.level == logging.WARNING
