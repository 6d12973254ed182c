"""Logging setup for asvToolkit runs."""

import logging
import sys
from pathlib import Path
from typing import List, Optional

DEFAULT_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def _make_handlers(log_file: Optional[str], level: int, formatter: logging.Formatter) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_logger(
    name: str = "asvtoolkit",
    log_file: Optional[str] = None,
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    capture_warnings: bool = True,
) -> logging.Logger:
    """
    Configure the package logger for a command-line run.

    Module loggers (`asvtoolkit.denoise.partition`, ...) propagate to it.
    With capture_warnings, Python warnings such as NonConvergenceWarning
    are routed through the same handlers so they land in the log file.

    Args:
        name: Logger name
        log_file: Optional path to log file
        level: Logging level (default: INFO)
        format_string: Custom format string
        capture_warnings: Also log warnings.warn() messages

    Returns:
        Configured logger instance
    """
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    # Replace handlers from earlier calls
    logger.handlers.clear()
    for handler in _make_handlers(log_file, level, formatter):
        logger.addHandler(handler)

    warnings_logger = logging.getLogger("py.warnings")
    warnings_logger.handlers.clear()
    if capture_warnings:
        logging.captureWarnings(True)
        for handler in logger.handlers:
            warnings_logger.addHandler(handler)
    else:
        logging.captureWarnings(False)

    return logger
