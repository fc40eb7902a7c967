"""
In-memory migration sources.

A MigrationSources object is an immutable set of VersionBundles, each holding
the install and rollback scripts of one version keyed by script name.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import PurePath
from types import MappingProxyType

from keel.exceptions import MigrationDataError


class ScriptKind(str, Enum):
    """How a migration script is executed."""

    SQL = "SQL"
    SCRIPT = "SCRIPT"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: str) -> ScriptKind:
        """Parse a persisted kind name; raises MigrationDataError for unknown names."""
        try:
            return cls(value)
        except ValueError:
            raise MigrationDataError(f"Not supported script kind '{value}'") from None

    @classmethod
    def from_file_name(cls, file_name: str) -> ScriptKind:
        """Resolve the kind from a file extension."""
        suffix = PurePath(file_name).suffix.lower()
        if suffix in SQL_FILE_EXTENSIONS:
            return cls.SQL
        if suffix in SCRIPT_FILE_EXTENSIONS:
            return cls.SCRIPT
        return cls.UNKNOWN


SQL_FILE_EXTENSIONS = frozenset({".sql"})
SCRIPT_FILE_EXTENSIONS = frozenset({".py"})


class Direction(str, Enum):
    INSTALL = "install"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class Script:
    """One migration script."""

    name: str
    kind: ScriptKind
    source_path: str
    content: str


@dataclass(frozen=True)
class ScriptInfo:
    """Location of a script passed to MigrationSources.map callbacks."""

    version: str
    direction: Direction
    script_name: str


def _index_scripts(version: str, direction: Direction, scripts: Iterable[Script]) -> Mapping[str, Script]:
    index: dict[str, Script] = {}
    for script in scripts:
        if script.name in index:
            raise MigrationDataError(
                f"Duplicate {direction.value} script '{script.name}' in version '{version}'",
                details={"version": version, "script": script.name, "direction": direction.value},
            )
        index[script.name] = script
    return MappingProxyType(index)


class VersionBundle:
    """Install and rollback scripts of a single version."""

    def __init__(self, version: str, install_scripts: Iterable[Script], rollback_scripts: Iterable[Script]):
        self.version = version
        self._install = _index_scripts(version, Direction.INSTALL, install_scripts)
        self._rollback = _index_scripts(version, Direction.ROLLBACK, rollback_scripts)

    @property
    def install_script_names(self) -> tuple[str, ...]:
        return tuple(sorted(self._install))

    @property
    def rollback_script_names(self) -> tuple[str, ...]:
        return tuple(sorted(self._rollback))

    @property
    def install_scripts(self) -> Mapping[str, Script]:
        return self._install

    @property
    def rollback_scripts(self) -> Mapping[str, Script]:
        return self._rollback

    def scripts(self, direction: Direction) -> list[Script]:
        """Scripts of one direction in name-ascending order."""
        index = self._install if direction is Direction.INSTALL else self._rollback
        return [index[name] for name in sorted(index)]

    def get_install_script(self, name: str) -> Script:
        return self._get(self._install, Direction.INSTALL, name)

    def get_rollback_script(self, name: str) -> Script:
        return self._get(self._rollback, Direction.ROLLBACK, name)

    def _get(self, index: Mapping[str, Script], direction: Direction, name: str) -> Script:
        try:
            return index[name]
        except KeyError:
            raise MigrationDataError(
                f"No {direction.value} script with name '{name}' in version '{self.version}'",
                details={"version": self.version, "script": name},
            ) from None

    def map(self, fn: Callable[[Script, Direction], str]) -> VersionBundle:
        """Return a copy whose script contents are replaced by ``fn(script, direction)``."""
        return VersionBundle(
            self.version,
            [replace(s, content=fn(s, Direction.INSTALL)) for s in self.scripts(Direction.INSTALL)],
            [replace(s, content=fn(s, Direction.ROLLBACK)) for s in self.scripts(Direction.ROLLBACK)],
        )

    def __repr__(self) -> str:
        return (
            f"VersionBundle(version='{self.version}', install={list(self.install_script_names)}, "
            f"rollback={list(self.rollback_script_names)})"
        )


class MigrationSources:
    """Immutable collection of version bundles."""

    def __init__(self, bundles: Iterable[VersionBundle]):
        versions: dict[str, VersionBundle] = {}
        for bundle in bundles:
            if bundle.version in versions:
                raise MigrationDataError(
                    f"Duplicate version '{bundle.version}' in migration sources",
                    details={"version": bundle.version},
                )
            versions[bundle.version] = bundle
        self._versions = MappingProxyType(versions)
        self.version_names: tuple[str, ...] = tuple(sorted(versions))

    def get_version_bundle(self, version: str) -> VersionBundle:
        """
        Look up the bundle of one version.

        Raises:
            MigrationDataError: If the version is not part of these sources
        """
        try:
            return self._versions[version]
        except KeyError:
            raise MigrationDataError(
                f"No version bundle with name: {version}", details={"version": version}
            ) from None

    def map(self, fn: Callable[[str, ScriptInfo], str]) -> MigrationSources:
        """
        Transform every script content, e.g. to substitute template variables.

        Args:
            fn: Called with the script content and its ScriptInfo; returns new content

        Returns:
            New MigrationSources with transformed contents
        """
        return MigrationSources(
            self._versions[version].map(
                lambda script, direction, version=version: fn(
                    script.content, ScriptInfo(version, direction, script.name)
                )
            )
            for version in self.version_names
        )

    def __contains__(self, version: object) -> bool:
        return version in self._versions

    def __len__(self) -> int:
        return len(self._versions)

    def __repr__(self) -> str:
        return f"MigrationSources(versions={list(self.version_names)})"
