"""
Connection factory selection by configured type.
"""

from typing import Any

from keel.connections.base import ConnectionFactory
from keel.connections.duckdb import DuckDBConnectionFactory
from keel.connections.postgres import PostgresConnectionFactory
from keel.exceptions import ConfigurationError

CONNECTION_TYPES: dict[str, type[ConnectionFactory]] = {
    "duckdb": DuckDBConnectionFactory,
    "postgres": PostgresConnectionFactory,
}


def create_connection_factory(name: str, config: dict[str, Any]) -> ConnectionFactory:
    """
    Create the connection factory for one configured connection.

    Args:
        name: Connection name
        config: Connection configuration (must contain 'type')

    Returns:
        ConnectionFactory for the configured engine

    Raises:
        ConfigurationError: If the type is missing or unsupported
    """
    conn_type = config.get("type")
    factory_class = CONNECTION_TYPES.get(conn_type)
    if factory_class is None:
        raise ConfigurationError(
            f"Unsupported connection type '{conn_type}' for connection '{name}'. "
            f"Supported types: {', '.join(sorted(CONNECTION_TYPES))}",
            details={"connection": name, "type": conn_type},
        )
    return factory_class(name, config)
