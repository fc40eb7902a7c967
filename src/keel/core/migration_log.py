"""
Per-version log collection.

Every line emitted while a version runs goes to the regular logger and is
also kept in memory; the collected text is stored with the version log entry
when the version commits.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from keel.utils.logging import TRACE, get_logger


class MigrationLogCollector:
    """
    Logger facade that records what it logs.

    Scripts receive this object as their ``logger`` argument, so it mirrors
    the usual logging methods (``trace`` included).
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._lines: list[str] = []
        self._closed = False

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self._lines)

    def _log(self, level: int, message: str, *args: object) -> None:
        text = message % args if args else message
        self._logger.log(level, text)
        if not self._closed:
            self._lines.append(f"[{logging.getLevelName(level)}] {text}")

    def trace(self, message: str, *args: object) -> None:
        self._log(TRACE, message, *args)

    def debug(self, message: str, *args: object) -> None:
        self._log(logging.DEBUG, message, *args)

    def info(self, message: str, *args: object) -> None:
        self._log(logging.INFO, message, *args)

    def warning(self, message: str, *args: object) -> None:
        self._log(logging.WARNING, message, *args)

    warn = warning

    def error(self, message: str, *args: object) -> None:
        self._log(logging.ERROR, message, *args)

    def flush(self) -> str:
        """Return the collected text and clear the buffer."""
        text = "\n".join(self._lines)
        self._lines.clear()
        return text

    def close(self) -> None:
        """Drop any remaining lines; later calls still reach the logger but are not collected."""
        self._lines.clear()
        self._closed = True


@contextmanager
def collect_version_log(direction: str, version: str) -> Iterator[MigrationLogCollector]:
    """
    Provide the log collector of one version run.

    The collector is closed when the block exits, including on error.
    """
    collector = MigrationLogCollector(get_logger(f"keel.migration.{direction}.{version}"))
    try:
        yield collector
    finally:
        collector.close()
