"""
Abstract connection classes for ibis-backed SQL databases.

A ConnectionFactory owns one lazily created ibis backend and hands out
SqlConnection handles scoped to a transaction (or to an autocommit block).
A handle is released when its scope ends and refuses any further use.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import ibis

from keel.exceptions import ConnectionReleasedError
from keel.utils.logging import get_logger

logger = get_logger("keel.connections.base")

T = TypeVar("T")


class SqlConnection(ABC):
    """
    Connection handle used by migrations and the version state store.

    Calls run on the driver connection of the owning scope. Drivers are
    synchronous, so every call completes before the coroutine returns and
    statements never interleave.
    """

    # Placeholder used for positional parameters in statements sent to this engine
    placeholder = "?"

    def __init__(self, raw: Any, name: str):
        self._raw = raw
        self.name = name
        self._released = False

    @property
    def released(self) -> bool:
        """Whether the owning scope has ended."""
        return self._released

    def release(self) -> None:
        """Detach from the driver connection; later calls raise ConnectionReleasedError."""
        self._released = True
        self._raw = None

    def _active_raw(self) -> Any:
        if self._released:
            raise ConnectionReleasedError(
                f"Connection '{self.name}' was used after its transaction scope ended",
                details={"connection": self.name},
            )
        return self._raw

    async def execute(self, sql: str, *params: Any) -> None:
        """
        Execute a statement (or a batch of statements when no parameters are given).

        Args:
            sql: SQL text sent verbatim to the driver
            *params: Positional parameters bound to the engine's placeholders
        """
        self._run(self._active_raw(), sql, params, fetch=None)

    async def execute_scalar(self, sql: str, *params: Any) -> Any:
        """
        Execute a query and return the first column of the first row.

        Returns:
            The value, or None if the query produced no rows
        """
        row = self._run(self._active_raw(), sql, params, fetch="one")
        if row is None:
            return None
        return row[0]

    async def fetch_all(self, sql: str, *params: Any) -> list[tuple]:
        """Execute a query and return all rows as tuples."""
        rows = self._run(self._active_raw(), sql, params, fetch="all")
        return [tuple(row) for row in rows or []]

    @abstractmethod
    def _run(self, raw: Any, sql: str, params: tuple, fetch: str | None) -> Any:
        """Run one statement on the driver connection and optionally fetch results."""

    def __repr__(self) -> str:
        state = "released" if self._released else "active"
        return f"{self.__class__.__name__}(name='{self.name}', {state})"


class ConnectionFactory(ABC):
    """
    Base class for database connection factories.

    Provides transactional and autocommit scopes over one ibis backend.
    """

    def __init__(self, name: str, config: dict[str, Any]):
        """
        Initialize connection factory.

        Args:
            name: Connection name (from config)
            config: Connection configuration dictionary
        """
        self.name = name
        self.config = config
        self._connection: ibis.BaseBackend | None = None

    @property
    @abstractmethod
    def connection(self) -> ibis.BaseBackend:
        """
        Get ibis backend connection (lazy initialization).

        Returns:
            ibis.BaseBackend: ibis backend connection
        """

    @abstractmethod
    def _raw_connection(self) -> Any:
        """Return the DB-API driver connection underlying the ibis backend."""

    @abstractmethod
    def _wrap(self, raw: Any) -> SqlConnection:
        """Wrap the driver connection in an engine-specific SqlConnection."""

    def _begin(self, raw: Any) -> None:
        raw.execute("BEGIN TRANSACTION")

    def _commit(self, raw: Any) -> None:
        raw.execute("COMMIT")

    def _rollback(self, raw: Any) -> None:
        raw.execute("ROLLBACK")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlConnection]:
        """
        Open a transaction and yield a connection bound to it.

        Commits when the block exits normally and rolls back when it raises.
        The yielded connection is released on exit either way.
        """
        raw = self._raw_connection()
        self._begin(raw)
        handle = self._wrap(raw)
        try:
            yield handle
        except BaseException:
            try:
                self._rollback(raw)
            except Exception as e:
                # Keep the original failure; the rollback error is secondary
                logger.warning(f"Rollback failed on connection '{self.name}': {e}")
            raise
        else:
            self._commit(raw)
        finally:
            handle.release()

    @asynccontextmanager
    async def autocommit(self) -> AsyncIterator[SqlConnection]:
        """Yield a connection that runs each statement in its own implicit transaction."""
        handle = self._wrap(self._raw_connection())
        try:
            yield handle
        finally:
            handle.release()

    async def run_in_transaction(self, unit_of_work: Callable[[SqlConnection], Awaitable[T]]) -> T:
        """Run ``unit_of_work(connection)`` inside one transaction."""
        async with self.transaction() as connection:
            return await unit_of_work(connection)

    async def run_without_transaction(self, unit_of_work: Callable[[SqlConnection], Awaitable[T]]) -> T:
        """Run ``unit_of_work(connection)`` in autocommit mode."""
        async with self.autocommit() as connection:
            return await unit_of_work(connection)

    def close(self) -> None:
        """Close connection and cleanup resources."""
        if self._connection:
            if hasattr(self._connection, "disconnect"):
                try:
                    self._connection.disconnect()
                except Exception as e:
                    logger.debug(f"Error during disconnect() for {self.name}: {e}")
            self._connection = None

    def __enter__(self) -> "ConnectionFactory":
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        """Context manager exit - closes connection."""
        try:
            self.close()
        except Exception as e:
            # Don't override the original exception if one occurred
            if exc_type is None:
                raise
            logger.warning(f"Error closing connection {self.name} during context exit: {e}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
