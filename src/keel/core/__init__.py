"""
Migration engine: scheduling, transactional execution and sandboxed scripts.
"""

from keel.core.cancellation import CancellationToken
from keel.core.manager import MigrationManager, VersionStatus
from keel.core.migration_log import MigrationLogCollector, collect_version_log
from keel.core.sandbox import DEFAULT_ALLOWED_IMPORTS, MigrationContext, SandboxRunner, ScriptConnection
from keel.core.scheduler import install_schedule, rollback_schedule

__all__ = [
    "CancellationToken",
    "MigrationManager",
    "VersionStatus",
    "MigrationLogCollector",
    "collect_version_log",
    "DEFAULT_ALLOWED_IMPORTS",
    "MigrationContext",
    "SandboxRunner",
    "ScriptConnection",
    "install_schedule",
    "rollback_schedule",
]
