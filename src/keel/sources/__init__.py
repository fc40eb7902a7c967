"""
Migration sources: in-memory script bundles and their loaders.
"""

from keel.sources.loader import (
    load_from_archive,
    load_from_filesystem,
    load_sources,
    save_to_filesystem,
)
from keel.sources.models import (
    Direction,
    MigrationSources,
    Script,
    ScriptInfo,
    ScriptKind,
    VersionBundle,
)

__all__ = [
    "Direction",
    "MigrationSources",
    "Script",
    "ScriptInfo",
    "ScriptKind",
    "VersionBundle",
    "load_from_archive",
    "load_from_filesystem",
    "load_sources",
    "save_to_filesystem",
]
