"""
Cooperative cancellation.

Cancellation is only observed at item boundaries (before a version, before a
script, before a file is read). Code already running, including a script-coded
migration, is never interrupted.
"""

import threading

from keel.exceptions import MigrationCancelledError


class CancellationToken:
    """Flag that a long-running operation checks between items."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Safe to call from a signal handler or another thread."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise MigrationCancelledError if cancellation was requested."""
        if self._event.is_set():
            message = "Operation was cancelled"
            if self._reason:
                message = f"{message}: {self._reason}"
            raise MigrationCancelledError(message)
