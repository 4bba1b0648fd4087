"""
Logging Configuration
Sets up the 'meshmirror' logger used by the command line tool.
"""
import logging
import sys
from typing import Optional, TextIO

PACKAGE_LOGGER = "meshmirror"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def level_from_verbosity(verbose: bool) -> int:
    """Map the CLI --verbose flag to a logging level."""
    return logging.DEBUG if verbose else logging.INFO


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configures the package logger for the 'meshmirror' namespace.

    Library modules only create module loggers; handlers are attached here,
    once, by the entry point.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
        stream: Console stream, stdout by default.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    # Drop handlers from a previous call (repeated main() in one process)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S')

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging initialized.")
    return logger
