"""
keel exception hierarchy.

All domain-specific exceptions inherit from KeelError, so callers can catch
any engine failure with a single base class while still handling the
individual categories when needed.

Hierarchy::

    KeelError
    ├── ConfigurationError          - config loading, parsing, validation
    ├── MigrationDataError          - malformed bundle, duplicate names, unknown version
    │   └── UnsupportedSourceError  - source URL scheme not supported
    ├── MigrationError              - failures while running a schedule
    │   ├── ScriptExecutionError    - SQL or script failure inside a version
    │   ├── SandboxError            - script-coded migration could not be loaded
    │   └── MigrationCancelledError - cancellation observed between items
    ├── ConnectionError_            - connection init and usage
    │   └── ConnectionReleasedError - connection used after its scope ended
    └── StateStoreError             - bookkeeping tables read/write/verify
"""

from __future__ import annotations


class KeelError(Exception):
    """Base exception for all keel errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(KeelError):
    """Raised when configuration loading, parsing, or validation fails."""


# --- Migration data ----------------------------------------------------------


class MigrationDataError(KeelError):
    """Raised when migration sources are malformed or a lookup misses.

    These errors are raised before any transaction is opened.
    """


class UnsupportedSourceError(MigrationDataError):
    """Raised when a migration source URL uses an unsupported scheme."""

    def __init__(self, uri: str) -> None:
        super().__init__(f"Not supported source: {uri}", details={"uri": uri})
        self.uri = uri


# --- Execution ---------------------------------------------------------------


class MigrationError(KeelError):
    """Raised when running an install or rollback schedule fails."""


class ScriptExecutionError(MigrationError):
    """Raised when a single script fails inside a version transaction."""

    def __init__(
        self,
        version: str,
        script_name: str,
        direction: str,
        message: str,
        *,
        cause: BaseException | None = None,
    ) -> None:
        full = f"{direction.capitalize()} script '{version}:{script_name}' failed: {message}"
        super().__init__(
            full,
            details={"version": version, "script": script_name, "direction": direction},
        )
        self.version = version
        self.script_name = script_name
        self.direction = direction
        if cause is not None:
            self.__cause__ = cause


class SandboxError(MigrationError):
    """Raised when a script-coded migration cannot be compiled or loaded."""


class MigrationCancelledError(MigrationError):
    """Raised when cancellation was requested between scheduled items."""


# --- Connections -------------------------------------------------------------


class ConnectionError_(KeelError):
    """Raised when a database connection cannot be established or used.

    Named with trailing underscore to avoid shadowing the builtin
    ``ConnectionError``; the public alias ``KeelConnectionError`` is
    preferred for external use.
    """


# Public alias so callers don't need the underscore
KeelConnectionError = ConnectionError_


class ConnectionReleasedError(ConnectionError_):
    """Raised when a connection is used after its transaction scope ended."""


# --- State store -------------------------------------------------------------


class StateStoreError(KeelError):
    """Raised when the bookkeeping tables cannot be read, written or verified."""
