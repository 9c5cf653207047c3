"""
Logging Configuration
Sets up the application logger.
"""
import logging
import sys
from typing import Optional


LOGGER_NAME = "counseldesk"


def setup_logging(level: int | str = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configures the logger for the 'counseldesk' namespace.

    Args:
        level: Logging level (e.g. logging.DEBUG or "INFO")
        log_file: Optional path to save logs to a file.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Streamlit re-runs the script on every interaction
    if logger.hasHandlers():
        logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    logger.debug("Logging initialized.")
    return logger
