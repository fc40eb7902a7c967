"""
Tests for connection factories and transaction scopes.
"""

import pytest

from keel.connections.duckdb import DuckDBConnectionFactory, DuckDBSqlConnection
from keel.connections.manager import CONNECTION_TYPES, create_connection_factory
from keel.exceptions import ConfigurationError, ConnectionReleasedError

from conftest import table_exists


class TestCreateConnectionFactory:
    """Tests for create_connection_factory."""

    def test_duckdb(self):
        factory = create_connection_factory("main", {"type": "duckdb", "path": ":memory:"})
        assert isinstance(factory, DuckDBConnectionFactory)
        assert factory.name == "main"

    def test_unknown_type_raises(self):
        with pytest.raises(ConfigurationError, match="mysql"):
            create_connection_factory("main", {"type": "mysql"})

    def test_supported_types(self):
        assert {"duckdb", "postgres"} <= set(CONNECTION_TYPES)


class TestDuckDBConnectionFactory:
    """Tests for DuckDB transaction and autocommit scopes."""

    def test_lazy_connection(self, factory):
        assert factory._connection is None
        backend = factory.connection
        assert factory.connection is backend

    def test_file_database_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "db.duckdb"
        with DuckDBConnectionFactory("file", {"path": str(path)}) as factory:
            assert factory.connection is not None
        assert path.parent.is_dir()

    @pytest.mark.asyncio
    async def test_transaction_commits(self, factory):
        async with factory.transaction() as connection:
            assert isinstance(connection, DuckDBSqlConnection)
            await connection.execute("CREATE TABLE items (id INTEGER)")
            await connection.execute("INSERT INTO items VALUES (?)", 1)

        async with factory.autocommit() as connection:
            assert await connection.execute_scalar("SELECT COUNT(*) FROM items") == 1

    @pytest.mark.asyncio
    async def test_transaction_rolls_back_on_error(self, factory):
        with pytest.raises(RuntimeError, match="boom"):
            async with factory.transaction() as connection:
                await connection.execute("CREATE TABLE items (id INTEGER)")
                raise RuntimeError("boom")

        assert not await table_exists(factory, "items")

    @pytest.mark.asyncio
    async def test_connection_released_after_scope(self, factory):
        async with factory.transaction() as connection:
            await connection.execute("SELECT 1")

        assert connection.released
        with pytest.raises(ConnectionReleasedError):
            await connection.execute("SELECT 1")

    @pytest.mark.asyncio
    async def test_autocommit_connection_released(self, factory):
        async with factory.autocommit() as connection:
            pass
        with pytest.raises(ConnectionReleasedError):
            await connection.fetch_all("SELECT 1")

    @pytest.mark.asyncio
    async def test_fetch_helpers(self, factory):
        async with factory.autocommit() as connection:
            await connection.execute("CREATE TABLE items (id INTEGER, name VARCHAR)")
            await connection.execute("INSERT INTO items VALUES (?, ?)", 1, "a")
            await connection.execute("INSERT INTO items VALUES (?, ?)", 2, "b")

            assert await connection.fetch_all("SELECT id, name FROM items ORDER BY id") == [(1, "a"), (2, "b")]
            assert await connection.execute_scalar("SELECT name FROM items WHERE id = ?", 2) == "b"
            assert await connection.execute_scalar("SELECT name FROM items WHERE id = ?", 9) is None

    @pytest.mark.asyncio
    async def test_run_in_transaction(self, factory):
        async def create(connection):
            await connection.execute("CREATE TABLE items (id INTEGER)")
            return "done"

        assert await factory.run_in_transaction(create) == "done"
        assert await table_exists(factory, "items")

    @pytest.mark.asyncio
    async def test_run_without_transaction(self, factory):
        async def count(connection):
            return await connection.execute_scalar("SELECT 42")

        assert await factory.run_without_transaction(count) == 42

    def test_close_resets_backend(self, factory):
        _ = factory.connection
        factory.close()
        assert factory._connection is None
