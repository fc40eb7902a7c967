"""
Migration manager.

Installs and rolls back versions. Each version runs in its own transaction:
its scripts execute in name order and the version log entry is written (or
removed) in the same transaction, so a version is either fully applied and
recorded or not at all. The first failure aborts the run.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from keel.connections.base import ConnectionFactory, SqlConnection
from keel.core.cancellation import CancellationToken
from keel.core.migration_log import MigrationLogCollector, collect_version_log
from keel.core.sandbox import MigrationContext, SandboxRunner
from keel.core.scheduler import install_schedule, rollback_schedule
from keel.exceptions import (
    MigrationCancelledError,
    MigrationDataError,
    ScriptExecutionError,
)
from keel.sources.models import Direction, MigrationSources, Script, ScriptKind
from keel.state.base import VersionLogEntry, VersionStateStore
from keel.utils.logging import get_logger

logger = get_logger("keel.manager")


@dataclass(frozen=True)
class VersionStatus:
    """Install state of one version."""

    version: str
    installed: bool
    in_sources: bool
    applied_at: datetime | None = None


class MigrationManager:
    """Applies and reverts versions of a MigrationSources against one database."""

    def __init__(
        self,
        sources: MigrationSources,
        connection_factory: ConnectionFactory,
        state_store: VersionStateStore,
        *,
        sandbox: SandboxRunner | None = None,
        cancellation_token: CancellationToken | None = None,
    ):
        """
        Initialize migration manager.

        Args:
            sources: Migration sources used for install
            connection_factory: Provides transactional and autocommit scopes
            state_store: Bookkeeping for the factory's database engine
            sandbox: Runner for script-coded migrations (default: default allow-list)
            cancellation_token: Checked before each version and each script
        """
        self.sources = sources
        self.connection_factory = connection_factory
        self.state_store = state_store
        self.sandbox = sandbox or SandboxRunner()
        self.cancellation_token = cancellation_token or CancellationToken()

    async def _logged_versions(self, connection: SqlConnection) -> list[str]:
        if not await self.state_store.bookkeeping_table_exists(connection):
            return []
        return await self.state_store.list_logged_versions(connection)

    async def get_current_version(self) -> str | None:
        """
        Highest installed version.

        Returns:
            The version, or None if nothing is installed or the version table is absent
        """
        async with self.connection_factory.autocommit() as connection:
            versions = await self._logged_versions(connection)
        return versions[-1] if versions else None

    async def get_version_log(self, version: str) -> VersionLogEntry | None:
        """Log entry of an installed version, or None."""
        async with self.connection_factory.autocommit() as connection:
            if not await self.state_store.bookkeeping_table_exists(connection):
                return None
            return await self.state_store.get_version_log(connection, version)

    async def status(self) -> list[VersionStatus]:
        """Every version known to the sources or the database, ascending."""
        async with self.connection_factory.autocommit() as connection:
            if await self.state_store.bookkeeping_table_exists(connection):
                entries = {e.version: e for e in await self.state_store.list_version_logs(connection)}
            else:
                entries = {}

        statuses = []
        for version in sorted(set(self.sources.version_names) | set(entries)):
            entry = entries.get(version)
            statuses.append(
                VersionStatus(
                    version=version,
                    installed=entry is not None,
                    in_sources=version in self.sources,
                    applied_at=datetime.fromtimestamp(entry.applied_at, tz=timezone.utc) if entry else None,
                )
            )
        return statuses

    async def plan_install(self, target_version: str | None = None) -> list[str]:
        """Versions ``install`` would apply, without applying them."""
        return install_schedule(await self.get_current_version(), self.sources.version_names, target_version)

    async def plan_rollback(self, target_version: str | None = None) -> list[str]:
        """Versions ``rollback`` would revert, without reverting them."""
        async with self.connection_factory.autocommit() as connection:
            logged = await self._logged_versions(connection)
        current_version = logged[-1] if logged else None
        return rollback_schedule(current_version, logged, target_version)

    async def _ensure_bookkeeping_table(self) -> None:
        async with self.connection_factory.autocommit() as connection:
            if not await self.state_store.bookkeeping_table_exists(connection):
                await self.state_store.create_bookkeeping_table(connection)
            await self.state_store.verify_bookkeeping_table(connection)

    async def install(self, target_version: str | None = None) -> list[str]:
        """
        Install versions newer than the current one, up to ``target_version`` if given.

        Args:
            target_version: Optional inclusive upper bound (default: latest)

        Returns:
            Versions installed by this call, in order

        Raises:
            ScriptExecutionError: A script failed; its version was rolled back
                and later versions were not attempted
            MigrationCancelledError: Cancellation was requested between items
        """
        await self._ensure_bookkeeping_table()
        schedule = await self.plan_install(target_version)
        if not schedule:
            logger.info("No versions to install")
            return []

        # Resolve every bundle before the first transaction opens
        bundles = [self.sources.get_version_bundle(version) for version in schedule]

        logger.info(f"Installing {len(schedule)} version(s): {', '.join(schedule)}")
        installed = []
        for bundle in bundles:
            self.cancellation_token.raise_if_cancelled()
            version = bundle.version
            async with self.connection_factory.transaction() as connection:
                with collect_version_log(Direction.INSTALL.value, version) as migration_log:
                    await self._run_scripts(
                        connection, migration_log, version, Direction.INSTALL, bundle.scripts(Direction.INSTALL)
                    )
                    await self.state_store.insert_version_log(connection, version, migration_log.flush())
                    await self.state_store.save_rollback_scripts(
                        connection, version, bundle.scripts(Direction.ROLLBACK)
                    )
            installed.append(version)
            logger.info(f"Installed version {version}")
        return installed

    async def rollback(self, target_version: str | None = None) -> list[str]:
        """
        Roll back installed versions newer than ``target_version``.

        Rollback scripts are read from the database copy saved at install
        time, so versions no longer present in the sources can be reverted.

        Args:
            target_version: Optional exclusive lower bound (default: roll back everything)

        Returns:
            Versions rolled back by this call, in order

        Raises:
            ScriptExecutionError: A script failed; the version stays installed
                and older versions were not attempted
            MigrationCancelledError: Cancellation was requested between items
        """
        schedule = await self.plan_rollback(target_version)
        if not schedule:
            logger.info("No versions to roll back")
            return []

        logger.info(f"Rolling back {len(schedule)} version(s): {', '.join(schedule)}")
        rolled_back = []
        for version in schedule:
            self.cancellation_token.raise_if_cancelled()
            async with self.connection_factory.transaction() as connection:
                if not await self.state_store.is_version_logged(connection, version):
                    logger.warning(f"Skip rollback for version '{version}': it is not present in the database")
                    continue
                scripts = await self.state_store.load_rollback_scripts(connection, version)
                with collect_version_log(Direction.ROLLBACK.value, version) as migration_log:
                    await self._run_scripts(connection, migration_log, version, Direction.ROLLBACK, scripts)
                    await self.state_store.remove_version_log(connection, version)
            rolled_back.append(version)
            logger.info(f"Rolled back version {version}")
        return rolled_back

    async def _run_scripts(
        self,
        connection: SqlConnection,
        migration_log: MigrationLogCollector,
        version: str,
        direction: Direction,
        scripts: Sequence[Script],
    ) -> None:
        for script in sorted(scripts, key=lambda s: s.name):
            self.cancellation_token.raise_if_cancelled()
            try:
                await self._run_script(connection, migration_log, version, direction, script)
            except (MigrationDataError, MigrationCancelledError, ScriptExecutionError):
                raise
            except Exception as e:
                migration_log.error(f"Script '{version}:{script.name}' failed: {e}")
                raise ScriptExecutionError(version, script.name, direction.value, str(e), cause=e) from e

    async def _run_script(
        self,
        connection: SqlConnection,
        migration_log: MigrationLogCollector,
        version: str,
        direction: Direction,
        script: Script,
    ) -> None:
        if script.kind is ScriptKind.SQL:
            migration_log.info(f"Execute SQL script: {script.name}")
            migration_log.trace("\n" + script.content)
            if not script.content.strip():
                migration_log.warning(f"Skip script '{version}:{script.name}' due empty content")
                return
            await connection.execute(script.content)
        elif script.kind is ScriptKind.SCRIPT:
            migration_log.info(f"Execute Python script: {script.name}")
            migration_log.trace("\n" + script.content)
            context = MigrationContext(
                version=version,
                direction=direction,
                script_name=script.name,
                source_path=script.source_path,
                cancellation_token=self.cancellation_token,
            )
            await self.sandbox.run(script, context, connection, migration_log)
        else:
            migration_log.warning(f"Skip script '{version}:{script.name}' due unknown kind of script")

    def close(self) -> None:
        """Close the underlying connection factory."""
        self.connection_factory.close()
