"""
Typed migration settings extracted from a loaded Config.
"""

from dataclasses import dataclass, field
from typing import Any

from keel.config.loader import Config
from keel.exceptions import ConfigurationError
from keel.utils.sql_escape import validate_identifier

DEFAULT_VERSION_TABLE = "__migration"
DEFAULT_SOURCE = "migrations"


@dataclass
class MigrationSettings:
    """Settings for one migration run."""

    connection_name: str
    connection_config: dict[str, Any]
    source: str = DEFAULT_SOURCE
    table: str = DEFAULT_VERSION_TABLE
    schema: str | None = None
    version_from: str | None = None
    version_to: str | None = None
    allowed_imports: list[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: Config) -> "MigrationSettings":
        """
        Build settings from the 'connections', 'migrations' and 'sandbox' sections.

        If ``migrations.connection`` is omitted and exactly one connection is
        configured, that connection is used.

        Raises:
            ConfigurationError: If the connection cannot be resolved or a
                table/schema name is not a plain identifier
        """
        migrations = config.migrations
        connections = config.connections

        connection_name = migrations.get("connection")
        if connection_name is None:
            if len(connections) != 1:
                raise ConfigurationError(
                    "Set 'migrations.connection' to one of the configured connections: "
                    f"{', '.join(sorted(connections)) or '(none)'}"
                )
            connection_name = next(iter(connections))
        if connection_name not in connections:
            raise ConfigurationError(
                f"Connection '{connection_name}' is not configured",
                details={"connection": connection_name},
            )

        table = migrations.get("table") or DEFAULT_VERSION_TABLE
        schema = migrations.get("schema")
        for label, identifier in (("table", table), ("schema", schema)):
            if identifier is not None and not validate_identifier(str(identifier)):
                raise ConfigurationError(
                    f"Invalid migrations.{label} '{identifier}': use letters, digits and underscores only"
                )

        allowed_imports = config.sandbox.get("allowed_imports") or []
        if not isinstance(allowed_imports, list):
            raise ConfigurationError("'sandbox.allowed_imports' must be a list of module names")

        version_from = migrations.get("version_from")
        version_to = migrations.get("version_to")

        return cls(
            connection_name=connection_name,
            connection_config=dict(connections[connection_name]),
            source=str(migrations.get("source") or DEFAULT_SOURCE),
            table=table,
            schema=schema,
            version_from=str(version_from) if version_from is not None else None,
            version_to=str(version_to) if version_to is not None else None,
            allowed_imports=[str(name) for name in allowed_imports],
        )
