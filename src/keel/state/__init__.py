"""
Persistent bookkeeping of installed versions and their rollback scripts.
"""

from keel.exceptions import ConfigurationError
from keel.state.base import VersionLogEntry, VersionStateStore
from keel.state.duckdb import DuckDBStateStore
from keel.state.postgres import PostgresStateStore

STATE_STORE_TYPES: dict[str, type[VersionStateStore]] = {
    "duckdb": DuckDBStateStore,
    "postgres": PostgresStateStore,
}


def create_state_store(connection_type: str, table: str = "__migration", schema: str | None = None) -> VersionStateStore:
    """
    Create the state store matching a connection type.

    Raises:
        ConfigurationError: If no state store exists for the connection type
    """
    store_class = STATE_STORE_TYPES.get(connection_type)
    if store_class is None:
        raise ConfigurationError(f"No version state store for connection type '{connection_type}'")
    return store_class(table=table, schema=schema)


__all__ = [
    "VersionLogEntry",
    "VersionStateStore",
    "DuckDBStateStore",
    "PostgresStateStore",
    "STATE_STORE_TYPES",
    "create_state_store",
]
