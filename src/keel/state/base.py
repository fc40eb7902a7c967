"""
Version state store.

Persists which versions are installed (one row per version in the version
table, holding the captured execution log) and a copy of every installed
version's rollback scripts (in ``<table>_rollback``), so a later rollback
never needs the original migration sources.

Every operation takes the SqlConnection of the caller's scope; the store
never opens transactions itself.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from keel.connections.base import SqlConnection
from keel.exceptions import ConfigurationError, StateStoreError
from keel.sources.models import Script, ScriptKind
from keel.utils.logging import get_logger
from keel.utils.sql_escape import escape_qualified_name, validate_identifier

logger = get_logger("keel.state")

VERSION_TABLE_COLUMNS = ("version", "applied_at", "log_text")
ROLLBACK_TABLE_COLUMNS = ("version", "script_name", "kind", "source_path", "content")


@dataclass(frozen=True)
class VersionLogEntry:
    """Persisted marker of an installed version."""

    version: str
    applied_at: int
    log_text: str


class VersionStateStore(ABC):
    """Bookkeeping of installed versions for one database engine."""

    def __init__(self, table: str = "__migration", schema: str | None = None):
        """
        Initialize state store.

        Args:
            table: Version table name; rollback scripts go to ``<table>_rollback``
            schema: Optional schema holding both tables

        Raises:
            ConfigurationError: If a name is not a plain identifier
        """
        for label, identifier in (("table", table), ("schema", schema)):
            if identifier is not None and not validate_identifier(identifier):
                raise ConfigurationError(f"Invalid {label} name '{identifier}'")
        self.table = table
        self.schema = schema
        self.rollback_table = f"{table}_rollback"

    @property
    def version_table_sql(self) -> str:
        return escape_qualified_name(self.schema, self.table)

    @property
    def rollback_table_sql(self) -> str:
        return escape_qualified_name(self.schema, self.rollback_table)

    @abstractmethod
    def _create_table_statements(self) -> list[str]:
        """DDL creating the schema (if any) and both tables, each with IF NOT EXISTS."""

    def _sql(self, connection: SqlConnection, template: str) -> str:
        # Templates use '?' placeholders; engines with another style swap them in
        return template.replace("?", connection.placeholder)

    async def _table_columns(self, connection: SqlConnection, table: str) -> list[str]:
        sql = "SELECT column_name FROM information_schema.columns WHERE table_name = ?"
        params: list[str] = [table]
        if self.schema:
            sql += " AND table_schema = ?"
            params.append(self.schema)
        rows = await connection.fetch_all(self._sql(connection, sql), *params)
        return [str(row[0]).lower() for row in rows]

    async def bookkeeping_table_exists(self, connection: SqlConnection) -> bool:
        """Whether the version table exists."""
        return bool(await self._table_columns(connection, self.table))

    async def create_bookkeeping_table(self, connection: SqlConnection) -> None:
        """Create both bookkeeping tables if absent."""
        for statement in self._create_table_statements():
            await connection.execute(statement)
        logger.info(f"Created version table {self.version_table_sql}")

    async def verify_bookkeeping_table(self, connection: SqlConnection) -> None:
        """
        Check that both bookkeeping tables have the expected columns.

        Raises:
            StateStoreError: If a table is missing or a column is absent
        """
        for table, expected in (
            (self.table, VERSION_TABLE_COLUMNS),
            (self.rollback_table, ROLLBACK_TABLE_COLUMNS),
        ):
            columns = await self._table_columns(connection, table)
            missing = [c for c in expected if c not in columns]
            if missing:
                raise StateStoreError(
                    f"Bookkeeping table '{table}' has an unexpected structure; missing columns: {missing}",
                    details={"table": table, "missing": missing},
                )

    async def is_version_logged(self, connection: SqlConnection, version: str) -> bool:
        count = await connection.execute_scalar(
            self._sql(connection, f"SELECT COUNT(*) FROM {self.version_table_sql} WHERE version = ?"), version
        )
        return bool(count)

    async def insert_version_log(self, connection: SqlConnection, version: str, log_text: str) -> None:
        """
        Record a version as installed.

        Raises:
            StateStoreError: If the version is already logged
        """
        if await self.is_version_logged(connection, version):
            raise StateStoreError(f"Version '{version}' is already installed", details={"version": version})
        await connection.execute(
            self._sql(
                connection,
                f"INSERT INTO {self.version_table_sql} (version, applied_at, log_text) VALUES (?, ?, ?)",
            ),
            version,
            int(time.time()),
            log_text,
        )

    async def remove_version_log(self, connection: SqlConnection, version: str) -> None:
        """Delete the version's log entry and its rollback script records."""
        await connection.execute(
            self._sql(connection, f"DELETE FROM {self.rollback_table_sql} WHERE version = ?"), version
        )
        await connection.execute(
            self._sql(connection, f"DELETE FROM {self.version_table_sql} WHERE version = ?"), version
        )

    async def list_logged_versions(self, connection: SqlConnection) -> list[str]:
        """Installed versions, ascending."""
        rows = await connection.fetch_all(f"SELECT version FROM {self.version_table_sql}")
        return sorted(str(row[0]) for row in rows)

    async def get_version_log(self, connection: SqlConnection, version: str) -> VersionLogEntry | None:
        rows = await connection.fetch_all(
            self._sql(
                connection,
                f"SELECT version, applied_at, log_text FROM {self.version_table_sql} WHERE version = ?",
            ),
            version,
        )
        if not rows:
            return None
        row = rows[0]
        return VersionLogEntry(version=str(row[0]), applied_at=int(row[1]), log_text=row[2] or "")

    async def list_version_logs(self, connection: SqlConnection) -> list[VersionLogEntry]:
        rows = await connection.fetch_all(f"SELECT version, applied_at, log_text FROM {self.version_table_sql}")
        entries = [VersionLogEntry(version=str(r[0]), applied_at=int(r[1]), log_text=r[2] or "") for r in rows]
        return sorted(entries, key=lambda e: e.version)

    async def save_rollback_scripts(self, connection: SqlConnection, version: str, scripts: Iterable[Script]) -> None:
        """Persist the rollback scripts of a version being installed."""
        insert = self._sql(
            connection,
            f"INSERT INTO {self.rollback_table_sql} (version, script_name, kind, source_path, content) "
            f"VALUES (?, ?, ?, ?, ?)",
        )
        for script in scripts:
            await connection.execute(insert, version, script.name, script.kind.value, script.source_path, script.content)

    async def load_rollback_scripts(self, connection: SqlConnection, version: str) -> list[Script]:
        """Rollback scripts persisted for a version, in name-ascending order."""
        rows = await connection.fetch_all(
            self._sql(
                connection,
                f"SELECT script_name, kind, source_path, content FROM {self.rollback_table_sql} WHERE version = ?",
            ),
            version,
        )
        scripts = [
            Script(name=str(r[0]), kind=ScriptKind.parse(str(r[1])), source_path=r[2] or "", content=r[3] or "")
            for r in rows
        ]
        return sorted(scripts, key=lambda s: s.name)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(table={self.version_table_sql})"
