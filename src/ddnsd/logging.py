"""Logging configuration for ddnsd."""

import logging
from pathlib import Path

from ddnsd.config import Config

# Module-level logger cache
_logger: logging.Logger | None = None


def setup_logging(config: Config) -> logging.Logger:
    """Set up logging based on configuration.

    Args:
        config: Configuration object with log settings.

    Returns:
        Configured logger instance.
    """
    global _logger

    # Idempotent
    if _logger is not None:
        return _logger

    logger = logging.getLogger("ddnsd")
    level = getattr(logging, config.log_level.upper(), None)
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    logger.handlers.clear()

    # 2025-01-27 10:30:45 [INFO] message
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    formatter.datefmt = "%Y-%m-%d %H:%M:%S"

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = False

    if level == logging.INFO and config.log_level.upper() != "INFO":
        logger.warning("Failed to parse log level %r, using default INFO", config.log_level)

    _logger = logger
    return logger


def reset_logging() -> None:
    """Reset logging state. Used for testing."""
    global _logger
    if _logger is not None:
        for handler in _logger.handlers:
            handler.close()
        _logger.handlers.clear()
        _logger.propagate = True
        _logger = None
