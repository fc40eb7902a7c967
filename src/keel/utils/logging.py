"""
Logging configuration for keel.

Console output goes through rich, file output is plain and parseable.
"""

import logging
import threading
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

# Script bodies are logged below DEBUG
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def formatMessage(self, record: logging.LogRecord) -> str:
        """Keep multi-line messages (script bodies) indented under their header."""
        result = super().formatMessage(record)
        return result.replace("\n", "\n    ")


# Map string level names to logging constants
LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int) -> int:
    """
    Parse logging level from string or int.

    Args:
        level: Logging level as string (TRACE, DEBUG, INFO, etc.) or int

    Returns:
        Logging level constant
    """
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level_upper = level.upper()
        if level_upper in LEVEL_MAP:
            return LEVEL_MAP[level_upper]
    # Default to INFO if invalid
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    format_string: str | None = None,
    file_mode: str = "a",
    console: Console | None = None,
    console_enabled: bool = True,
    use_rich: bool = True,
) -> logging.Logger:
    """
    Setup logging configuration for keel.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: None, console only)
        format_string: Optional custom format string for the plain console handler
        file_mode: File mode for file handler - 'a' for append, 'w' for overwrite (default: 'a')
        console: Optional Rich Console instance to use (default: None, creates one on stderr)
        console_enabled: Whether to enable console logging (default: True)
        use_rich: Whether to render console logs with RichHandler (default: True)

    Returns:
        Logger instance
    """
    logger = logging.getLogger("keel")

    # Only clear handlers from this specific logger, not root or child loggers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        if use_rich:
            logger.addHandler(
                RichHandler(
                    level=level_int,
                    console=console or Console(stderr=True),
                    show_time=True,
                    show_path=False,
                    markup=False,
                    rich_tracebacks=True,
                    tracebacks_show_locals=False,
                    log_time_format="[%X]",
                    omit_repeated_times=False,
                )
            )
        else:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(level_int)
            console_handler.setFormatter(
                logging.Formatter(format_string or "%(levelname)s: %(asctime)s - %(name)s - %(message)s")
            )
            logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything the logger lets through
        file_handler.setLevel(TRACE)
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


def setup_logging_from_config(config: dict[str, Any], project_dir: Path | None = None) -> logging.Logger:
    """
    Setup logging from keel configuration.

    Args:
        config: Configuration dictionary (logging settings under the 'logging' key)
        project_dir: Optional project directory for resolving relative log file paths

    Returns:
        Logger instance
    """
    logging_config = config.get("logging") or {}

    level = logging_config.get("level", logging.INFO)
    file_mode = logging_config.get("file_mode", "a")
    format_string = logging_config.get("format")

    log_file = logging_config.get("file") if logging_config.get("file_enabled", True) else None
    if log_file and project_dir:
        log_file = Path(log_file)
        if not log_file.is_absolute():
            log_file = project_dir / log_file

    console_enabled = logging_config.get("console_enabled", True)
    console_type = logging_config.get("console_type", "rich")

    return setup_logging(
        level=level,
        log_file=log_file,
        format_string=format_string,
        file_mode=file_mode,
        console_enabled=console_enabled,
        use_rich=console_type == "rich",
    )


_logging_setup_done = False
_logging_setup_lock = threading.Lock()


def _auto_setup_logging() -> None:
    """Attach a default console handler once if nothing configured keel logging yet."""
    global _logging_setup_done

    if _logging_setup_done:
        return

    with _logging_setup_lock:
        if _logging_setup_done:
            return
        keel_logger = logging.getLogger("keel")
        if not keel_logger.handlers and not logging.getLogger().handlers:
            keel_logger.addHandler(logging.NullHandler())
        _logging_setup_done = True


def get_logger(name: str = "keel") -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (default: "keel")

    Returns:
        Logger instance
    """
    _auto_setup_logging()

    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
