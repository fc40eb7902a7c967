"""
Tests for building a MigrationManager from project configuration.
"""

import shutil
from pathlib import Path

import pytest

from keel import build_manager
from keel.connections.duckdb import DuckDBConnectionFactory
from keel.core.api import resolve_connection_paths, resolve_source
from keel.exceptions import ConfigurationError, UnsupportedSourceError
from keel.state import DuckDBStateStore

EXAMPLE_PROJECT = Path(__file__).resolve().parents[1] / "examples" / "basic"


@pytest.fixture
def project(tmp_path):
    (tmp_path / "keel.yaml").write_text(
        "connections:\n"
        "  main:\n"
        "    type: duckdb\n"
        "    path: db.duckdb\n"
        "migrations:\n"
        "  table: versions\n"
        "sandbox:\n"
        "  allowed_imports: [csv]\n"
    )
    (tmp_path / "migrations" / "v1" / "install").mkdir(parents=True)
    (tmp_path / "migrations" / "v1" / "install" / "10.sql").write_text("CREATE TABLE a (id INTEGER)")
    return tmp_path


class TestResolve:
    def test_relative_source(self, tmp_path):
        assert resolve_source("migrations", tmp_path) == str(tmp_path / "migrations")

    def test_absolute_source(self, tmp_path):
        assert resolve_source(str(tmp_path), Path("/elsewhere")) == str(tmp_path)

    def test_url_source_unchanged(self, tmp_path):
        url = "https+tar+gz://example.com/db.tgz"
        assert resolve_source(url, tmp_path) == url

    def test_relative_duckdb_path(self, tmp_path):
        config = resolve_connection_paths({"type": "duckdb", "path": "db.duckdb"}, tmp_path)
        assert config["path"] == str(tmp_path / "db.duckdb")

    def test_memory_and_other_engines_unchanged(self, tmp_path):
        memory = {"type": "duckdb", "path": ":memory:"}
        postgres = {"type": "postgres", "host": "localhost"}
        assert resolve_connection_paths(memory, tmp_path) is memory
        assert resolve_connection_paths(postgres, tmp_path) is postgres


class TestBuildManager:
    @pytest.mark.asyncio
    async def test_build_and_install(self, project):
        manager = await build_manager(project)
        try:
            assert isinstance(manager.connection_factory, DuckDBConnectionFactory)
            assert isinstance(manager.state_store, DuckDBStateStore)
            assert manager.state_store.table == "versions"
            assert "csv" in manager.sandbox.allowed_imports
            assert manager.sources.version_names == ("v1",)
            assert await manager.install() == ["v1"]
        finally:
            manager.close()
        assert (project / "db.duckdb").is_file()

    @pytest.mark.asyncio
    async def test_unsupported_source(self, project):
        with pytest.raises(UnsupportedSourceError):
            await build_manager(project, source="s3://bucket/migrations")

    @pytest.mark.asyncio
    async def test_unknown_connection_type(self, tmp_path):
        (tmp_path / "keel.yaml").write_text("connections:\n  main:\n    type: oracle\n")
        (tmp_path / "migrations").mkdir()
        with pytest.raises(ConfigurationError, match="oracle"):
            await build_manager(tmp_path)

    @pytest.mark.asyncio
    async def test_example_project_round_trip(self, tmp_path):
        project = tmp_path / "basic"
        shutil.copytree(EXAMPLE_PROJECT, project)

        manager = await build_manager(project)
        try:
            assert await manager.install() == ["20240101", "20240215"]
            async with manager.connection_factory.autocommit() as connection:
                assert await connection.execute_scalar("SELECT COUNT(*) FROM orders") == 2
            entry = await manager.get_version_log("20240215")
            assert "Seeded 2 customers and 2 orders for 20240215" in entry.log_text

            assert await manager.rollback() == ["20240215", "20240101"]
            assert await manager.get_current_version() is None
        finally:
            manager.close()
