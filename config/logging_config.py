"""Logging setup: a rotating application log plus a separate model-call log."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

APP_LOG_NAME = "draftbook.log"
MODEL_LOG_NAME = "model_calls.log"

# Loggers whose records also go to the model-call log
MODEL_CALL_LOGGERS = ("tools.agent_sdk_client", "tools.image_client")

# Chatty third-party loggers capped at WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "replicate", "claude_agent_sdk")


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        str(path),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str | Path] = None,
    console_enabled: bool = True,
) -> None:
    """Configure the root logger and the model-call log.

    Safe to call more than once; handlers from a previous call are replaced.

    Args:
        level: Root logging level.
        log_dir: Directory for log files. Defaults to ./data/logs.
        console_enabled: Also log to stderr.
    """
    log_dir = Path(log_dir or "./data/logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.addHandler(_rotating_handler(log_dir / APP_LOG_NAME, level, formatter))

    # Keeps DEBUG records whatever the root level is
    model_handler = _rotating_handler(log_dir / MODEL_LOG_NAME, logging.DEBUG, formatter)
    for name in MODEL_CALL_LOGGERS:
        model_logger = logging.getLogger(name)
        model_logger.setLevel(logging.DEBUG)
        for handler in list(model_logger.handlers):
            model_logger.removeHandler(handler)
            handler.close()
        model_logger.addHandler(model_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging initialized: level=%s, dir=%s", level, log_dir)
