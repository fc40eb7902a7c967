"""
Tests for the script-coded migration sandbox.
"""

import logging
import sys

import pytest

from keel.connections.base import SqlConnection
from keel.core.cancellation import CancellationToken
from keel.core.migration_log import MigrationLogCollector
from keel.core.sandbox import MigrationContext, SandboxRunner, ScriptConnection
from keel.exceptions import ConnectionReleasedError, MigrationDataError, SandboxError
from keel.sources.models import Direction

from conftest import make_script


def make_context(script_name: str = "01-script.py") -> MigrationContext:
    return MigrationContext(
        version="v1",
        direction=Direction.INSTALL,
        script_name=script_name,
        source_path=f"/migrations/v1/install/{script_name}",
        cancellation_token=CancellationToken(),
    )


@pytest.fixture
def collector():
    return MigrationLogCollector(logging.getLogger("keel.test.sandbox"))


class TestLoadEntryPoint:
    """Tests for compiling scripts and finding the entry point."""

    def test_returns_migration_function(self):
        script = make_script("01.py", "def migration(context, connection, logger):\n    return 1\n")
        entry = SandboxRunner().load_entry_point(script)
        assert entry(None, None, None) == 1

    def test_missing_entry_point_raises(self):
        script = make_script("01.py", "x = 1\n")
        with pytest.raises(MigrationDataError, match="must define a function 'migration"):
            SandboxRunner().load_entry_point(script)

    def test_non_callable_entry_point_raises(self):
        script = make_script("01.py", "migration = 'not a function'\n")
        with pytest.raises(MigrationDataError):
            SandboxRunner().load_entry_point(script)

    def test_syntax_error_raises(self):
        script = make_script("01.py", "def migration(:\n")
        with pytest.raises(SandboxError, match="does not compile"):
            SandboxRunner().load_entry_point(script)

    def test_error_while_loading_raises(self):
        script = make_script("01.py", "1 / 0\n")
        with pytest.raises(SandboxError, match="failed while loading"):
            SandboxRunner().load_entry_point(script)

    def test_module_is_not_registered(self):
        script = make_script("01-isolated.py", "def migration(context, connection, logger):\n    pass\n")
        SandboxRunner().load_entry_point(script)
        assert not any(name.startswith("keel_migration") for name in sys.modules)


class TestRestrictions:
    """Tests for the import allow-list and blocked builtins."""

    def test_allowed_import(self):
        script = make_script("01.py", "import json\ndef migration(context, connection, logger):\n    return json.dumps(1)\n")
        assert SandboxRunner().load_entry_point(script)(None, None, None) == "1"

    def test_from_import_of_allowed_submodule(self):
        script = make_script(
            "01.py", "from collections.abc import Mapping\ndef migration(context, connection, logger):\n    pass\n"
        )
        SandboxRunner().load_entry_point(script)

    @pytest.mark.parametrize("module", ["os", "subprocess", "socket", "importlib", "keel"])
    def test_blocked_import(self, module):
        script = make_script("01.py", f"import {module}\n")
        with pytest.raises(SandboxError, match=f"Import of '{module}' is not allowed"):
            SandboxRunner().load_entry_point(script)

    def test_extra_allowed_imports(self):
        script = make_script("01.py", "import csv\ndef migration(context, connection, logger):\n    pass\n")
        SandboxRunner(allowed_imports=["csv"]).load_entry_point(script)

    def test_prefix_is_not_a_package_match(self):
        script = make_script("01.py", "import jsonschema\n")
        with pytest.raises(SandboxError):
            SandboxRunner().load_entry_point(script)

    @pytest.mark.parametrize("name", ["open", "eval", "exec", "compile", "input"])
    def test_blocked_builtins(self, name):
        script = make_script("01.py", f"{name}\n")
        with pytest.raises(SandboxError, match="failed while loading"):
            SandboxRunner().load_entry_point(script)

    def test_namespace_globals(self):
        namespace = SandboxRunner().build_namespace(make_script("01-seed.py", ""))
        assert namespace["__name__"] == "keel_migration.01-seed"
        assert namespace["__file__"] == "/migrations/01-seed.py"
        assert namespace["__dirname__"] == "/migrations"
        assert "open" not in namespace["__builtins__"]
        assert "len" in namespace["__builtins__"]


class TestRun:
    """Tests for running the entry point."""

    @pytest.mark.asyncio
    async def test_async_entry_point(self, factory, collector):
        script = make_script(
            "01-script.py",
            "async def migration(context, connection, logger):\n"
            "    await connection.execute('CREATE TABLE items (id INTEGER, version VARCHAR)')\n"
            "    await connection.execute(\n"
            "        f'INSERT INTO items VALUES (1, {connection.placeholder})', context.version\n"
            "    )\n"
            "    logger.info('inserted %s', context.script_name)\n",
        )
        async with factory.transaction() as connection:
            await SandboxRunner().run(script, make_context(), connection, collector)
            assert await connection.fetch_all("SELECT id, version FROM items") == [(1, "v1")]

        assert collector.lines == ("[INFO] inserted 01-script.py",)

    @pytest.mark.asyncio
    async def test_sync_entry_point(self, factory, collector):
        script = make_script("01.py", "def migration(context, connection, logger):\n    logger.warn('sync')\n")
        async with factory.transaction() as connection:
            await SandboxRunner().run(script, make_context(), connection, collector)
        assert collector.lines == ("[WARNING] sync",)

    @pytest.mark.asyncio
    async def test_exception_propagates_unchanged(self, factory, collector):
        script = make_script("01.py", "async def migration(context, connection, logger):\n    raise ValueError('bad data')\n")
        async with factory.transaction() as connection:
            with pytest.raises(ValueError, match="bad data"):
                await SandboxRunner().run(script, make_context(), connection, collector)

    @pytest.mark.asyncio
    async def test_script_connection_hides_driver(self, factory):
        async with factory.transaction() as connection:
            wrapped = ScriptConnection(connection)
            assert not hasattr(wrapped, "release")
            assert not hasattr(wrapped, "_raw")
            assert not hasattr(wrapped, "_connection")
            for name in ScriptConnection.__slots__:
                assert not isinstance(getattr(wrapped, name), SqlConnection)
            assert wrapped.placeholder == "?"
            with pytest.raises(AttributeError):
                wrapped.extra = 1  # type: ignore[attr-defined]
            assert await wrapped.execute_scalar("SELECT 1") == 1

        with pytest.raises(ConnectionReleasedError):
            await wrapped.execute("SELECT 1")

    def test_context_source_dir(self):
        assert make_context().source_dir == "/migrations/v1/install"
