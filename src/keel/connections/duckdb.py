"""
DuckDB connection via ibis.

Transactions and parameter binding go through the raw duckdb connection
behind the ibis backend, so statements issued by the state store, SQL
scripts and script-coded migrations all share one transaction.
"""

from pathlib import Path
from typing import Any

import ibis

from keel.connections.base import ConnectionFactory, SqlConnection
from keel.exceptions import ConnectionError_
from keel.utils.logging import get_logger

logger = get_logger("keel.connections.duckdb")


class DuckDBSqlConnection(SqlConnection):
    """SqlConnection over a duckdb.DuckDBPyConnection."""

    placeholder = "?"

    def _run(self, raw: Any, sql: str, params: tuple, fetch: str | None) -> Any:
        # Multi-statement batches are only accepted without parameters
        result = raw.execute(sql, list(params)) if params else raw.execute(sql)
        if fetch == "one":
            return result.fetchone()
        if fetch == "all":
            return result.fetchall()
        return None


class DuckDBConnectionFactory(ConnectionFactory):
    """DuckDB connection factory using ibis."""

    @property
    def connection(self) -> ibis.BaseBackend:
        """
        Get DuckDB connection via ibis (lazy initialization).

        Returns:
            ibis.BaseBackend: ibis DuckDB backend
        """
        if self._connection is None:
            path = self.config.get("path", ":memory:")

            if path == ":memory:":
                self._connection = ibis.duckdb.connect()
            else:
                Path(path).parent.mkdir(parents=True, exist_ok=True)
                try:
                    self._connection = ibis.duckdb.connect(path)
                except Exception as e:
                    error_str = str(e)
                    if "lock" in error_str.lower() or "conflicting" in error_str.lower():
                        raise ConnectionError_(
                            f"Cannot connect to DuckDB database '{path}': File is locked by another process.\n"
                            f"Migrations against one database must not run concurrently.",
                            details={"path": path},
                        ) from e
                    raise ConnectionError_(
                        f"Cannot connect to DuckDB database '{path}': {error_str}",
                        details={"path": path},
                    ) from e
            logger.debug(f"Opened DuckDB connection '{self.name}' ({path})")

        return self._connection

    def _raw_connection(self) -> Any:
        return self.connection.con

    def _wrap(self, raw: Any) -> SqlConnection:
        return DuckDBSqlConnection(raw, self.name)
