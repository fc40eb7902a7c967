"""
Connection management.

Transactional connection factories for DuckDB and Postgres via ibis.
"""

from keel.connections.base import ConnectionFactory, SqlConnection
from keel.connections.duckdb import DuckDBConnectionFactory, DuckDBSqlConnection
from keel.connections.manager import CONNECTION_TYPES, create_connection_factory
from keel.connections.postgres import PostgresConnectionFactory, PostgresSqlConnection

__all__ = [
    "ConnectionFactory",
    "SqlConnection",
    "DuckDBConnectionFactory",
    "DuckDBSqlConnection",
    "PostgresConnectionFactory",
    "PostgresSqlConnection",
    "CONNECTION_TYPES",
    "create_connection_factory",
]
