import logging

import notifiers.logging

from run_ci import config

NOTIFY_LEVEL = logging.WARNING


def _telegram_handler() -> logging.Handler:
    handler = notifiers.logging.NotificationHandler(
        "telegram",
        defaults={
            "token": config.TELEGRAM_TOKEN,
            "chat_id": config.TELEGRAM_CHAT_ID,
        },
    )
    handler.setLevel(NOTIFY_LEVEL)
    return handler


def setup_logger(logger: logging.Logger, level_name: str) -> bool:
    """
    Apply the configured level to the run's logger and, when a Telegram token
    is set, forward its warnings and errors to that chat.

    Returns ``False`` when ``level_name`` is not a logging level, in which
    case the current level is kept. Calling it again never adds a second
    notification handler.
    """
    level = logging.getLevelName(level_name.upper())
    valid = isinstance(level, int)
    if valid:
        logger.setLevel(level)
    else:
        logger.error("the log level is invalid: %s", level_name)

    if config.TELEGRAM_TOKEN is not None and not any(
        isinstance(h, notifiers.logging.NotificationHandler) for h in logger.handlers
    ):
        logger.addHandler(_telegram_handler())
    return valid
