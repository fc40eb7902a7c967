"""
keel - versioned SQL migrations with self-contained rollback.

Installs and rolls back ordered versions of SQL and Python migration scripts,
one transaction per version, and keeps a copy of every installed version's
rollback scripts in the database itself.
"""

__version__ = "0.3.0"

from keel.connections import ConnectionFactory, DuckDBConnectionFactory, PostgresConnectionFactory, SqlConnection
from keel.core import (
    CancellationToken,
    MigrationContext,
    MigrationManager,
    SandboxRunner,
    VersionStatus,
    install_schedule,
    rollback_schedule,
)
from keel.core.api import build_manager
from keel.exceptions import (
    ConfigurationError,
    ConnectionError_,
    ConnectionReleasedError,
    KeelConnectionError,
    KeelError,
    MigrationCancelledError,
    MigrationDataError,
    MigrationError,
    SandboxError,
    ScriptExecutionError,
    StateStoreError,
    UnsupportedSourceError,
)
from keel.sources import (
    Direction,
    MigrationSources,
    Script,
    ScriptKind,
    VersionBundle,
    load_from_archive,
    load_from_filesystem,
    load_sources,
)
from keel.state import DuckDBStateStore, PostgresStateStore, VersionStateStore, create_state_store
from keel.utils.logging import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    "__version__",
    # Engine
    "MigrationManager",
    "VersionStatus",
    "build_manager",
    "install_schedule",
    "rollback_schedule",
    "CancellationToken",
    "MigrationContext",
    "SandboxRunner",
    # Sources
    "Direction",
    "MigrationSources",
    "Script",
    "ScriptKind",
    "VersionBundle",
    "load_from_archive",
    "load_from_filesystem",
    "load_sources",
    # Connections and state
    "ConnectionFactory",
    "SqlConnection",
    "DuckDBConnectionFactory",
    "PostgresConnectionFactory",
    "VersionStateStore",
    "DuckDBStateStore",
    "PostgresStateStore",
    "create_state_store",
    # Exceptions
    "KeelError",
    "ConfigurationError",
    "MigrationDataError",
    "UnsupportedSourceError",
    "MigrationError",
    "ScriptExecutionError",
    "SandboxError",
    "MigrationCancelledError",
    "ConnectionError_",
    "KeelConnectionError",
    "ConnectionReleasedError",
    "StateStoreError",
    # Logging
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
]
