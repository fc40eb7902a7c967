"""
Shared fixtures: in-memory DuckDB and small in-memory migration sources.
"""

import pytest

from keel.connections.duckdb import DuckDBConnectionFactory
from keel.core.manager import MigrationManager
from keel.sources.models import MigrationSources, Script, ScriptKind, VersionBundle
from keel.state.duckdb import DuckDBStateStore


def make_script(name: str, content: str, kind: ScriptKind | None = None) -> Script:
    return Script(
        name=name,
        kind=kind or ScriptKind.from_file_name(name),
        source_path=f"/migrations/{name}",
        content=content,
    )


def make_sources(versions: dict[str, dict[str, dict[str, str]]]) -> MigrationSources:
    """
    Build sources from ``{version: {"install": {name: content}, "rollback": {name: content}}}``.
    """
    bundles = []
    for version, directions in versions.items():
        install = [make_script(n, c) for n, c in directions.get("install", {}).items()]
        rollback = [make_script(n, c) for n, c in directions.get("rollback", {}).items()]
        bundles.append(VersionBundle(version, install, rollback))
    return MigrationSources(bundles)


def table_versions(version: str, table: str) -> dict[str, dict[str, str]]:
    """A version creating one table on install and dropping it on rollback."""
    return {
        "install": {"10-create.sql": f"CREATE TABLE {table} (id INTEGER PRIMARY KEY, name VARCHAR)"},
        "rollback": {"10-drop.sql": f"DROP TABLE {table}"},
    }


@pytest.fixture
def factory():
    factory = DuckDBConnectionFactory("test", {"type": "duckdb", "path": ":memory:"})
    yield factory
    factory.close()


@pytest.fixture
def state_store():
    return DuckDBStateStore()


@pytest.fixture
def three_versions():
    return make_sources(
        {
            "20210101": table_versions("20210101", "t1"),
            "20210202": table_versions("20210202", "t2"),
            "20210303": table_versions("20210303", "t3"),
        }
    )


@pytest.fixture
def manager(three_versions, factory, state_store):
    return MigrationManager(three_versions, factory, state_store)


async def table_exists(factory: DuckDBConnectionFactory, table: str) -> bool:
    async with factory.autocommit() as connection:
        count = await connection.execute_scalar(
            "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?", table
        )
    return bool(count)
