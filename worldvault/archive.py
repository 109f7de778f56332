# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault Archive - tar.gz and zip handling.

Backups and restores shell out to the system ``tar`` so multi-gigabyte
worlds are streamed by a native process instead of through the event
loop. Symlinks are stored as symlinks. Pack archives are zip files and
are unpacked with ``zipfile`` in the default executor.
"""

import asyncio
import posixpath
import zipfile
from pathlib import Path
from typing import Iterable, List

import structlog

from worldvault.exceptions import ArchiveError

logger = structlog.get_logger()

# Restores overwrite in place and never restore ownership, permissions or
# mtimes; the target filesystem may refuse utime on existing entries.
EXTRACT_FLAGS = ("--overwrite", "--no-same-permissions", "--no-same-owner", "--touch")


async def _run_tar(args: List[str], operation: str) -> None:
    process = await asyncio.create_subprocess_exec(
        "tar",
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()

    if process.returncode != 0:
        output = stderr.decode(errors="replace").strip() or stdout.decode(errors="replace").strip()
        logger.error(
            "tar_failed",
            operation=operation,
            exit_code=process.returncode,
            stderr=output,
        )
        raise ArchiveError(
            f"tar {operation} failed with exit code {process.returncode}: "
            f"{output or 'no error output'}",
            details={"exit_code": process.returncode, "operation": operation},
        )


def split_directory(directory: Path) -> tuple[Path, str]:
    """Split a directory into (parent, basename) for ``tar -C``."""
    resolved = Path(directory)
    return resolved.parent, resolved.name


async def create_archive(
    directory: Path,
    destination: Path,
    excludes: Iterable[str] = (),
) -> int:
    """
    Archive ``directory`` into a gzip-compressed tarball.

    Members are stored relative to the directory's parent, so the
    archive root is the directory's own name and extracting into the
    same parent recreates it.

    Args:
        directory: Directory to archive
        destination: Output ``.tar.gz`` path
        excludes: Sub-paths of ``directory`` to leave out

    Returns:
        Archive size in bytes
    """
    parent, name = split_directory(directory)
    if not Path(directory).is_dir():
        raise ArchiveError(
            f"Directory does not exist: {directory}",
            details={"directory": str(directory)},
        )

    args = ["-czf", str(destination)]
    args.extend(f"--exclude={name}/{sub}" for sub in excludes)
    args.extend(["-C", str(parent), name])

    await _run_tar(args, "create")

    size = destination.stat().st_size
    logger.info(
        "archive_created",
        directory=str(directory),
        archive=str(destination),
        size=size,
    )
    return size


async def extract_archive(archive: Path, target_parent: Path) -> None:
    """Extract a tar.gz into ``target_parent``, creating it if needed."""
    target_parent.mkdir(parents=True, exist_ok=True)
    await _run_tar(["-xzf", str(archive), "-C", str(target_parent), *EXTRACT_FLAGS], "extract")
    logger.info("archive_extracted", archive=str(archive), target=str(target_parent))


def _safe_member_path(destination: Path, member: str) -> Path:
    normalized = posixpath.normpath(member.replace("\\", "/"))
    if normalized.startswith("/") or normalized == ".." or normalized.startswith("../"):
        raise ArchiveError(
            f"Archive entry escapes destination: {member}",
            details={"member": member},
        )
    return destination / normalized


def _extract_zip_sync(archive: Path, destination: Path) -> int:
    try:
        with zipfile.ZipFile(archive) as zf:
            members = zf.infolist()
            for info in members:
                _safe_member_path(destination, info.filename)
            zf.extractall(destination)
            return len(members)
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"Failed to extract archive: {e}", details={"archive": str(archive)}) from e


async def extract_zip(archive: Path, destination: Path) -> int:
    """
    Extract a zip archive into ``destination``.

    Every entry is checked before anything is written; an entry that
    would land outside ``destination`` fails the whole extraction.

    Returns:
        Number of entries
    """
    destination.mkdir(parents=True, exist_ok=True)
    loop = asyncio.get_running_loop()
    count = await loop.run_in_executor(None, _extract_zip_sync, archive, destination)
    logger.debug("zip_extracted", archive=str(archive), entries=count)
    return count
