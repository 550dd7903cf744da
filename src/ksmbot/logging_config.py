"""
Logging configuration for the validator bot.
"""

import logging
from logging.handlers import RotatingFileHandler


def setup_logging(log_file: str = "ksm_bot.log") -> logging.Logger:
    """
    Configure logging with console and file handlers.

    Args:
        log_file: Path of the rotating warning/error log

    Returns:
        Configured logger instance
    """
    log_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Console handler: Show all INFO+ messages
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(log_formatter)

    # File handler: Only WARNING and ERROR, rotated
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10 MB per file
        backupCount=5,
    )
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(log_formatter)

    logging.basicConfig(
        level=logging.INFO,
        handlers=[console_handler, file_handler],
    )

    return logging.getLogger(__name__)
