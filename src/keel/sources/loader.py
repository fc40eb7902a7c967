"""
Loading migration sources from a directory, a tar.gz archive or a URL.

Layout (directory or archive root)::

    <version>/install/<script>
    <version>/rollback/<script>

Script kind is resolved from the file extension: ``.sql`` is SQL, ``.py`` is
a script-coded migration, anything else is loaded as UNKNOWN and skipped at
execution time.
"""

import asyncio
import io
import tarfile
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

import aiohttp

from keel.core.cancellation import CancellationToken
from keel.exceptions import MigrationDataError, UnsupportedSourceError
from keel.sources.models import Direction, MigrationSources, Script, ScriptKind, VersionBundle
from keel.utils.logging import get_logger

logger = get_logger("keel.sources")

ARCHIVE_SUFFIXES = (".tar.gz", ".tgz")
HTTP_ARCHIVE_SCHEMES = {"http+tar+gz": "http", "https+tar+gz": "https"}
DOWNLOAD_TIMEOUT_SECONDS = 60.0
DIRECTION_NAMES = frozenset(d.value for d in Direction)


def _in_range(version: str, version_from: str | None, version_to: str | None) -> bool:
    if version_from is not None and version < version_from:
        return False
    if version_to is not None and version > version_to:
        return False
    return True


def load_from_filesystem(
    directory: str | Path,
    version_from: str | None = None,
    version_to: str | None = None,
    cancellation_token: CancellationToken | None = None,
) -> MigrationSources:
    """
    Load migration sources from a directory.

    Args:
        directory: Root directory holding one sub-directory per version
        version_from: Skip versions lower than this one
        version_to: Skip versions greater than this one
        cancellation_token: Checked before each file is read

    Returns:
        MigrationSources with every version found in range

    Raises:
        MigrationDataError: If the directory does not exist or a script is not valid UTF-8
        MigrationCancelledError: If cancellation was requested while loading
    """
    root = Path(directory)
    if not root.is_dir():
        raise MigrationDataError(f"Migration directory '{root}' is not exist", details={"path": str(root)})

    token = cancellation_token or CancellationToken()
    bundles = []
    for version_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        version = version_dir.name
        if not _in_range(version, version_from, version_to):
            logger.debug(f"Skip version '{version}': out of range")
            continue

        scripts: dict[Direction, list[Script]] = {}
        for direction in Direction:
            scripts[direction] = []
            direction_dir = version_dir / direction.value
            if not direction_dir.is_dir():
                continue
            for script_file in sorted(p for p in direction_dir.iterdir() if p.is_file()):
                token.raise_if_cancelled()
                scripts[direction].append(
                    Script(
                        name=script_file.name,
                        kind=ScriptKind.from_file_name(script_file.name),
                        source_path=str(script_file),
                        content=_decode(script_file.read_bytes(), str(script_file)),
                    )
                )

        bundles.append(VersionBundle(version, scripts[Direction.INSTALL], scripts[Direction.ROLLBACK]))

    logger.debug(f"Loaded {len(bundles)} version(s) from {root}")
    return MigrationSources(bundles)


def _decode(data: bytes, location: str) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MigrationDataError(
            f"Migration script '{location}' is not valid UTF-8: {e.reason} at byte {e.start}",
            details={"path": location},
        ) from e


def _is_script_path(parts: tuple[str, ...]) -> bool:
    return len(parts) == 3 and parts[1] in DIRECTION_NAMES


def load_from_archive(
    archive: str | Path | bytes,
    version_from: str | None = None,
    version_to: str | None = None,
    cancellation_token: CancellationToken | None = None,
    origin: str | None = None,
) -> MigrationSources:
    """
    Load migration sources from a gzip-compressed tar archive.

    A single top-level directory wrapping the versions (as produced by
    ``tar czf bundle.tgz migrations/``) is unwrapped automatically. Files that
    do not fit the ``<version>/<direction>/<script>`` layout are skipped with
    a warning.

    Args:
        archive: Archive path, or the archive content as bytes
        version_from: Skip versions lower than this one
        version_to: Skip versions greater than this one
        cancellation_token: Checked before each member is read
        origin: Label used in script source paths (defaults to the archive path)

    Returns:
        MigrationSources with every version found in range

    Raises:
        MigrationDataError: If the archive cannot be read, a script is not
            valid UTF-8, or files are present but none fits the layout
    """
    token = cancellation_token or CancellationToken()
    try:
        if isinstance(archive, bytes):
            origin = origin or "<archive>"
            tar = tarfile.open(fileobj=io.BytesIO(archive), mode="r:gz")
        else:
            origin = origin or str(archive)
            tar = tarfile.open(archive, mode="r:gz")
    except (tarfile.TarError, OSError) as e:
        raise MigrationDataError(
            f"Cannot read migration archive '{origin}': {e}", details={"archive": origin}
        ) from e

    with tar:
        members = [m for m in tar.getmembers() if m.isfile()]
        paths = [PurePosixPath(m.name.removeprefix("./")) for m in members]

        # Unwrap a single directory holding every script; shallower files are ignored
        prefix_len = 0
        wrapped = [p for p in paths if _is_script_path(p.parts[1:])]
        if (
            wrapped
            and len({p.parts[0] for p in wrapped}) == 1
            and not any(_is_script_path(p.parts) for p in paths)
        ):
            prefix_len = 1

        matched = 0
        collected: dict[str, dict[Direction, list[Script]]] = {}
        for member, path in zip(members, paths):
            parts = path.parts[prefix_len:]
            if not _is_script_path(parts):
                logger.warning(f"Skip archive member '{member.name}': not <version>/<direction>/<script>")
                continue
            matched += 1
            version, direction_name, script_name = parts
            if not _in_range(version, version_from, version_to):
                continue

            token.raise_if_cancelled()
            extracted = tar.extractfile(member)
            if extracted is None:
                continue
            source_path = f"{origin}!/{path}"
            by_direction = collected.setdefault(version, {Direction.INSTALL: [], Direction.ROLLBACK: []})
            by_direction[Direction(direction_name)].append(
                Script(
                    name=script_name,
                    kind=ScriptKind.from_file_name(script_name),
                    source_path=source_path,
                    content=_decode(extracted.read(), source_path),
                )
            )

    if members and not matched:
        raise MigrationDataError(
            f"Migration archive '{origin}' holds no <version>/<direction>/<script> files",
            details={"archive": origin},
        )

    return MigrationSources(
        VersionBundle(version, scripts[Direction.INSTALL], scripts[Direction.ROLLBACK])
        for version, scripts in sorted(collected.items())
    )


async def download_archive(url: str, timeout: float = DOWNLOAD_TIMEOUT_SECONDS) -> bytes:
    """
    Download an archive over HTTP(S).

    Raises:
        MigrationDataError: If the server answers with an error status or
            cannot be reached
    """
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    try:
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.get(url) as response:
                if response.status >= 400:
                    raise MigrationDataError(
                        f"Cannot download migration archive '{url}': HTTP {response.status}",
                        details={"url": url, "status": response.status},
                    )
                return await response.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise MigrationDataError(
            f"Cannot download migration archive '{url}': {str(e) or type(e).__name__}", details={"url": url}
        ) from e


async def load_sources(
    uri: str | Path,
    version_from: str | None = None,
    version_to: str | None = None,
    cancellation_token: CancellationToken | None = None,
) -> MigrationSources:
    """
    Load migration sources from a path or URL.

    Supported forms:
        - plain path or ``file:`` URL to a directory or a ``.tar.gz`` / ``.tgz`` archive
        - ``http+tar+gz://host/bundle.tgz`` and ``https+tar+gz://host/bundle.tgz``

    Raises:
        UnsupportedSourceError: For any other URL scheme
    """
    uri_text = str(uri)
    parsed = urlparse(uri_text)
    scheme = parsed.scheme.lower()

    # Single-letter schemes are Windows drive letters
    if scheme in ("", "file") or len(scheme) == 1:
        path = Path(unquote(parsed.path)) if scheme == "file" else Path(uri_text)
        if path.is_file() and path.name.endswith(ARCHIVE_SUFFIXES):
            return load_from_archive(path, version_from, version_to, cancellation_token)
        return load_from_filesystem(path, version_from, version_to, cancellation_token)

    if scheme in HTTP_ARCHIVE_SCHEMES:
        url = parsed._replace(scheme=HTTP_ARCHIVE_SCHEMES[scheme]).geturl()
        logger.info(f"Downloading migration archive {url}")
        content = await download_archive(url)
        return load_from_archive(content, version_from, version_to, cancellation_token, origin=url)

    raise UnsupportedSourceError(uri_text)


def save_to_filesystem(sources: MigrationSources, directory: str | Path) -> None:
    """
    Write migration sources into an existing directory using the standard layout.

    Raises:
        MigrationDataError: If the target directory does not exist
    """
    root = Path(directory)
    if not root.is_dir():
        raise MigrationDataError(
            f"Target directory '{root}' not exist. You must provide empty directory.",
            details={"path": str(root)},
        )

    for version in sources.version_names:
        bundle = sources.get_version_bundle(version)
        for direction in Direction:
            direction_dir = root / version / direction.value
            direction_dir.mkdir(parents=True)
            for script in bundle.scripts(direction):
                (direction_dir / script.name).write_text(script.content, encoding="utf-8")
