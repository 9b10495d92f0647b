"""Logging configuration for the rewards engine."""
import logging
import sys
from pathlib import Path
from typing import Optional

# Ledger anomalies (balance clamps) are routed here so they can be alerted on separately
ANOMALY_LOGGER_NAME = "green_rewards.anomaly"

# Chatty third-party loggers
_NOISY_LOGGERS = ("httpx", "httpcore", "google_genai", "sqlalchemy.engine")


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None):
    """Configure logging for the application."""
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper()))

    # Avoid duplicate handlers when called twice (CLI + uvicorn reload)
    for handler in list(logger.handlers):
        if getattr(handler, "_green_rewards", False):
            logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler._green_rewards = True
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler._green_rewards = True
        logger.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_anomaly_logger() -> logging.Logger:
    """Logger for invariant violations that were repaired in place."""
    return logging.getLogger(ANOMALY_LOGGER_NAME)
