"""
Version scheduling.

Pure functions computing which versions an install or rollback run
processes, and in which order. Versions are opaque strings ordered
lexicographically.
"""

from collections.abc import Iterable


def install_schedule(
    current_version: str | None,
    available_versions: Iterable[str],
    target_version: str | None = None,
) -> list[str]:
    """
    Versions to install, oldest first.

    Args:
        current_version: Highest installed version, or None if nothing is installed
        available_versions: Versions defined by the migration sources
        target_version: Optional upper bound (inclusive); need not be an available version

    Returns:
        Versions greater than ``current_version`` and not greater than ``target_version``
    """
    schedule = sorted(set(available_versions))
    if current_version is not None:
        schedule = [v for v in schedule if v > current_version]
    if target_version is not None:
        schedule = [v for v in schedule if v <= target_version]
    return schedule


def rollback_schedule(
    current_version: str | None,
    available_versions: Iterable[str],
    target_version: str | None = None,
) -> list[str]:
    """
    Versions to roll back, newest first.

    Args:
        current_version: Highest installed version, or None
        available_versions: Versions recorded as installed
        target_version: Optional lower bound (exclusive); the target itself stays installed

    Returns:
        Versions not greater than ``current_version`` and greater than ``target_version``
    """
    schedule = sorted(set(available_versions), reverse=True)
    if current_version is not None:
        schedule = [v for v in schedule if v <= current_version]
    if target_version is not None:
        schedule = [v for v in schedule if v > target_version]
    return schedule
