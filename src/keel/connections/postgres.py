"""
Postgres connection via ibis.

The raw psycopg connection behind the ibis backend is switched to autocommit
so transactions are delimited explicitly with BEGIN / COMMIT / ROLLBACK.
"""

from typing import Any

import ibis

from keel.connections.base import ConnectionFactory, SqlConnection
from keel.exceptions import ConnectionError_
from keel.utils.logging import get_logger

logger = get_logger("keel.connections.postgres")


class PostgresSqlConnection(SqlConnection):
    """SqlConnection over a psycopg connection."""

    placeholder = "%s"

    def _run(self, raw: Any, sql: str, params: tuple, fetch: str | None) -> Any:
        with raw.cursor() as cursor:
            if params:
                cursor.execute(sql, params)
            else:
                cursor.execute(sql)
            if fetch == "one":
                return cursor.fetchone()
            if fetch == "all":
                return cursor.fetchall()
            return None


class PostgresConnectionFactory(ConnectionFactory):
    """Postgres connection factory using ibis."""

    @property
    def connection(self) -> ibis.BaseBackend:
        """
        Get Postgres connection via ibis (lazy initialization).

        Returns:
            ibis.BaseBackend: ibis Postgres backend
        """
        if self._connection is None:
            db_config = self.config.get("config") or {}
            # Top-level keys are accepted as well as a nested 'config' block
            params = {
                key: db_config.get(key, self.config.get(key))
                for key in ("host", "port", "user", "password", "database")
            }
            params["host"] = params["host"] or "localhost"
            params["port"] = int(params["port"] or 5432)

            try:
                self._connection = ibis.postgres.connect(**{k: v for k, v in params.items() if v is not None})
            except Exception as e:
                raise ConnectionError_(
                    f"Cannot connect to Postgres '{params['host']}:{params['port']}/{params['database']}': {e}",
                    details={"host": params["host"], "database": params["database"]},
                ) from e
            self._connection.con.autocommit = True
            logger.debug(f"Opened Postgres connection '{self.name}' ({params['host']}:{params['port']})")

        return self._connection

    def _raw_connection(self) -> Any:
        return self.connection.con

    def _wrap(self, raw: Any) -> SqlConnection:
        return PostgresSqlConnection(raw, self.name)

    def _begin(self, raw: Any) -> None:
        with raw.cursor() as cursor:
            cursor.execute("BEGIN")

    def _commit(self, raw: Any) -> None:
        with raw.cursor() as cursor:
            cursor.execute("COMMIT")

    def _rollback(self, raw: Any) -> None:
        with raw.cursor() as cursor:
            cursor.execute("ROLLBACK")
