"""
Programmatic API: assemble a MigrationManager from project configuration.
"""

from pathlib import Path
from urllib.parse import urlparse

from keel.config.loader import Config, load_config
from keel.config.settings import MigrationSettings
from keel.connections.manager import create_connection_factory
from keel.core.cancellation import CancellationToken
from keel.core.manager import MigrationManager
from keel.core.sandbox import SandboxRunner
from keel.sources.loader import load_sources
from keel.state import create_state_store


def resolve_source(source: str, project_dir: Path) -> str:
    """Resolve a relative source path against the project directory; URLs are returned unchanged."""
    scheme = urlparse(source).scheme
    if scheme and len(scheme) > 1:
        return source
    path = Path(source)
    return str(path if path.is_absolute() else project_dir / path)


def resolve_connection_paths(connection_config: dict, project_dir: Path) -> dict:
    """Make a relative DuckDB database path relative to the project directory."""
    path = connection_config.get("path")
    if connection_config.get("type") != "duckdb" or not path or path == ":memory:" or Path(path).is_absolute():
        return connection_config
    return {**connection_config, "path": str(project_dir / path)}


async def build_manager(
    project_dir: Path | None = None,
    env: str | None = None,
    source: str | None = None,
    cancellation_token: CancellationToken | None = None,
    config: Config | None = None,
) -> MigrationManager:
    """
    Load configuration and sources and build a ready-to-use MigrationManager.

    Args:
        project_dir: Directory holding keel.yaml (default: current directory)
        env: Environment name selecting keel.{env}.yaml
        source: Overrides ``migrations.source`` from config
        cancellation_token: Shared with source loading and the manager
        config: Already loaded configuration (skips loading keel.yaml again)

    Returns:
        MigrationManager; call ``close()`` when done
    """
    project_dir = project_dir or Path.cwd()
    token = cancellation_token or CancellationToken()

    if config is None:
        config = load_config(project_dir, env)
    settings = MigrationSettings.from_config(config)

    sources = await load_sources(
        resolve_source(source or settings.source, project_dir),
        version_from=settings.version_from,
        version_to=settings.version_to,
        cancellation_token=token,
    )
    factory = create_connection_factory(
        settings.connection_name, resolve_connection_paths(settings.connection_config, project_dir)
    )
    state_store = create_state_store(settings.connection_config["type"], settings.table, settings.schema)

    return MigrationManager(
        sources,
        factory,
        state_store,
        sandbox=SandboxRunner(settings.allowed_imports),
        cancellation_token=token,
    )
