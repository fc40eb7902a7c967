"""
Sandboxed execution of script-coded (Python) migrations.

A script-coded migration is a Python file defining one entry point::

    async def migration(context, connection, logger):
        ...

The runner compiles the file into a fresh namespace that is never registered
in ``sys.modules``, with restricted builtins and an import allow-list, and
calls the entry point with exactly three capabilities:

- ``context``: a MigrationContext describing the script being run
- ``connection``: a ScriptConnection bound to the version's transaction
- ``logger``: the version's log collector

This is a capability boundary, not a security boundary against hostile code:
migrations are trusted to the same degree as the SQL scripts next to them.
"""

import builtins
import inspect
import posixpath
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any

from keel.connections.base import SqlConnection
from keel.core.cancellation import CancellationToken
from keel.core.migration_log import MigrationLogCollector
from keel.exceptions import MigrationDataError, SandboxError
from keel.sources.models import Direction, Script

ENTRY_POINT = "migration"

# Standard library modules without process, file or network access
DEFAULT_ALLOWED_IMPORTS = frozenset(
    {
        "base64",
        "collections",
        "dataclasses",
        "datetime",
        "decimal",
        "enum",
        "functools",
        "hashlib",
        "itertools",
        "json",
        "math",
        "operator",
        "re",
        "string",
        "textwrap",
        "time",
        "typing",
        "uuid",
        "zoneinfo",
    }
)

BLOCKED_BUILTINS = frozenset(
    {
        "breakpoint",
        "compile",
        "eval",
        "exec",
        "exit",
        "globals",
        "input",
        "memoryview",
        "open",
        "quit",
        "vars",
    }
)


@dataclass(frozen=True)
class MigrationContext:
    """What a script-coded migration knows about itself."""

    version: str
    direction: Direction
    script_name: str
    source_path: str
    cancellation_token: CancellationToken

    @property
    def source_dir(self) -> str:
        return str(PurePath(self.source_path).parent)


class ScriptConnection:
    """
    Connection handle given to script-coded migrations.

    Statements run inside the version's transaction. Only the statement
    methods are kept, as closures; the SqlConnection itself is not stored on
    the object.
    """

    __slots__ = ("placeholder", "execute", "execute_scalar", "fetch_all")

    def __init__(self, connection: SqlConnection):
        run, scalar, fetch = connection.execute, connection.execute_scalar, connection.fetch_all

        async def execute(sql: str, *params: Any) -> None:
            await run(sql, *params)

        async def execute_scalar(sql: str, *params: Any) -> Any:
            return await scalar(sql, *params)

        async def fetch_all(sql: str, *params: Any) -> list[tuple]:
            return await fetch(sql, *params)

        # Positional parameter placeholder of the database engine
        self.placeholder: str = connection.placeholder
        self.execute = execute
        self.execute_scalar = execute_scalar
        self.fetch_all = fetch_all


class SandboxRunner:
    """Runs script-coded migrations."""

    def __init__(self, allowed_imports: Iterable[str] = ()):
        self.allowed_imports = DEFAULT_ALLOWED_IMPORTS | frozenset(allowed_imports)

    def _is_allowed(self, module_name: str) -> bool:
        return any(
            module_name == allowed or module_name.startswith(allowed + ".") for allowed in self.allowed_imports
        )

    def _guarded_import(self, script: Script):
        def _import(name, globals=None, locals=None, fromlist=(), level=0):
            if level != 0:
                raise SandboxError(f"Relative import '{name}' is not allowed in migration '{script.name}'")
            if not self._is_allowed(name):
                raise SandboxError(
                    f"Import of '{name}' is not allowed in migration '{script.name}'",
                    details={"module": name, "script": script.name},
                )
            return builtins.__import__(name, globals, locals, fromlist, level)

        return _import

    def build_namespace(self, script: Script) -> dict[str, Any]:
        """Create the isolated global namespace a script body is executed in."""
        safe_builtins = {k: v for k, v in vars(builtins).items() if k not in BLOCKED_BUILTINS}
        safe_builtins["__import__"] = self._guarded_import(script)
        return {
            "__builtins__": safe_builtins,
            "__name__": f"keel_migration.{PurePath(script.name).stem}",
            "__file__": script.source_path,
            "__dirname__": posixpath.dirname(script.source_path.replace("\\", "/")),
        }

    def load_entry_point(self, script: Script) -> Any:
        """
        Execute the script body and return its ``migration`` function.

        Raises:
            SandboxError: If the body does not compile or fails while loading
            MigrationDataError: If no callable ``migration`` is defined
        """
        try:
            code = compile(script.content, script.source_path, "exec")
        except SyntaxError as e:
            raise SandboxError(
                f"Migration '{script.name}' does not compile: {e.msg} (line {e.lineno})",
                details={"script": script.name},
            ) from e

        namespace = self.build_namespace(script)
        try:
            exec(code, namespace)
        except SandboxError:
            raise
        except Exception as e:
            raise SandboxError(f"Migration '{script.name}' failed while loading: {e}") from e

        entry = namespace.get(ENTRY_POINT)
        if not callable(entry):
            raise MigrationDataError(
                f"Migration '{script.name}' must define a function '{ENTRY_POINT}(context, connection, logger)'",
                details={"script": script.name},
            )
        return entry

    async def run(
        self,
        script: Script,
        context: MigrationContext,
        connection: SqlConnection,
        logger: MigrationLogCollector,
    ) -> None:
        """
        Run one script-coded migration to completion.

        The caller's step is suspended until the entry point's coroutine
        finishes; any exception it raises propagates unchanged.
        """
        entry = self.load_entry_point(script)
        result = entry(context, ScriptConnection(connection), logger)
        if inspect.isawaitable(result):
            await result
