import logging
import sys

from creditledger.core.settings import settings


def setup_logger(name: str = "creditledger", level: str | None = None) -> logging.Logger:
    """Configure the process-wide logger and return it.

    Args:
        name: logger name (default: creditledger)
        level: log level name; falls back to settings.LOG_LEVEL
    """
    if level is None:
        level = settings.LOG_LEVEL

    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # drop handlers from a previous call so lines are not printed twice
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    # e.g. 2026-10-01 03:00:05 [INFO] [creditledger.services.distribution] distribute credits start
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)
    logger.propagate = False

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(handler)
        root_logger.setLevel(log_level)

    return logger
