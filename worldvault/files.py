# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault Files - Filesystem gateway sandboxed to managed roots.

Every caller-supplied path is resolved against the configured managed
roots before it touches the disk. Reads are always allowed; writes,
deletes and directory creation additionally require maintenance mode,
which is owned by the external lifecycle controller and only read here.
"""

import asyncio
import os
import posixpath
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Sequence

import aiofiles
import structlog

from worldvault.config import WorldVaultConfig
from worldvault.errors import explain_maintenance_required, explain_path_outside_roots
from worldvault.exceptions import (
    MaintenanceRequiredError,
    NotFoundError,
    PathOutsideRootsError,
    ValidationError,
)

logger = structlog.get_logger()

MaintenanceFlag = Callable[[], bool]


@dataclass(frozen=True)
class ManagedPath:
    """A caller path resolved under one managed root."""

    absolute: str
    root: str
    parent: str | None  # None when the path is the root itself


def _compute_parent(root: str, absolute: str) -> str | None:
    if absolute == root:
        return None
    candidate = posixpath.dirname(absolute)
    if len(candidate) < len(root) or not candidate.startswith(root):
        return root
    return candidate


def resolve_managed_path(
    roots: Sequence[str],
    raw_path: str | None,
    allow_root_fallback: bool = True,
) -> ManagedPath:
    """
    Resolve ``raw_path`` to an absolute path under one of ``roots``.

    A relative path is treated as relative to "/". ".." segments are
    collapsed before the containment check, so they cannot climb out.

    Args:
        roots: Normalized managed roots, first one is the fallback
        raw_path: Caller-supplied path
        allow_root_fallback: Use the first root when no path is given

    Raises:
        ValidationError: If no path is given and fallback is disabled
        PathOutsideRootsError: If the path is under no managed root
    """
    candidate = raw_path.strip() if raw_path and raw_path.strip() else None
    if candidate is None:
        if not allow_root_fallback or not roots:
            raise ValidationError("Path is required")
        candidate = roots[0]

    absolute = posixpath.normpath("/" + candidate.lstrip("/"))

    for root in roots:
        if root == "/" or absolute == root or absolute.startswith(f"{root}/"):
            return ManagedPath(
                absolute=absolute,
                root=root,
                parent=_compute_parent(root, absolute),
            )

    raise PathOutsideRootsError(
        explain_path_outside_roots(absolute, tuple(roots)),
        details={"path": absolute},
    )


def ensure_maintenance_mode(maintenance_mode: MaintenanceFlag) -> None:
    """
    Raises:
        MaintenanceRequiredError: If the external flag is not set
    """
    if not maintenance_mode():
        raise MaintenanceRequiredError(explain_maintenance_required())


def _describe_entry(entry: os.DirEntry) -> Dict[str, Any]:
    try:
        stats = entry.stat()
    except OSError:
        # Broken symlinks and races with deletion
        stats = None

    if entry.is_dir(follow_symlinks=False):
        entry_type = "directory"
    elif entry.is_symlink():
        entry_type = "symlink"
    else:
        entry_type = "file"

    return {
        "name": entry.name,
        "path": entry.path,
        "type": entry_type,
        "size": stats.st_size if stats is not None and entry_type == "file" else None,
        "modified": int(stats.st_mtime * 1000) if stats is not None else None,
    }


def _scan(directory: str) -> List[Dict[str, Any]]:
    with os.scandir(directory) as it:
        entries = [_describe_entry(e) for e in it]
    # Directories first, then by name
    entries.sort(key=lambda e: (e["type"] != "directory", e["name"]))
    return entries


async def list_directory(config: WorldVaultConfig, raw_path: str | None = None) -> Dict[str, Any]:
    """
    List a directory under a managed root.

    Falls back to the first managed root when no path is given.

    Returns:
        ``{root, path, parent, entries: [{name, path, type, size, modified}]}``
    """
    target = resolve_managed_path(config.managed_roots, raw_path, allow_root_fallback=True)
    loop = asyncio.get_running_loop()
    try:
        entries = await loop.run_in_executor(None, _scan, target.absolute)
    except FileNotFoundError as e:
        raise NotFoundError(
            f"Directory not found: {target.absolute}", details={"path": target.absolute}
        ) from e
    except NotADirectoryError as e:
        raise ValidationError(
            f"Not a directory: {target.absolute}", details={"path": target.absolute}
        ) from e

    return {
        "root": target.root,
        "path": target.absolute,
        "parent": target.parent,
        "entries": entries,
    }


async def read_file(config: WorldVaultConfig, raw_path: str | None) -> bytes:
    """Read a whole file under a managed root."""
    target = resolve_managed_path(config.managed_roots, raw_path, allow_root_fallback=False)
    try:
        async with aiofiles.open(target.absolute, "rb") as f:
            return await f.read()
    except FileNotFoundError as e:
        raise NotFoundError("File not found", details={"path": target.absolute}) from e
    except IsADirectoryError as e:
        raise ValidationError(
            f"Not a file: {target.absolute}", details={"path": target.absolute}
        ) from e


async def write_file(
    config: WorldVaultConfig,
    maintenance_mode: MaintenanceFlag,
    raw_path: str | None,
    data: bytes,
) -> Dict[str, Any]:
    """Write a file, creating parent directories. Requires maintenance mode."""
    ensure_maintenance_mode(maintenance_mode)
    target = resolve_managed_path(config.managed_roots, raw_path, allow_root_fallback=False)

    Path(target.absolute).parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(target.absolute, "wb") as f:
        await f.write(data)

    logger.info("managed_file_written", path=target.absolute, size=len(data))
    return {"success": True, "path": target.absolute}


async def delete_path(
    config: WorldVaultConfig,
    maintenance_mode: MaintenanceFlag,
    raw_path: str | None,
) -> Dict[str, Any]:
    """
    Recursively delete a file or directory. Requires maintenance mode.

    A missing path is not an error. Managed roots themselves cannot be
    deleted.
    """
    ensure_maintenance_mode(maintenance_mode)
    target = resolve_managed_path(config.managed_roots, raw_path, allow_root_fallback=False)

    if target.parent is None:
        raise ValidationError(
            f"Refusing to delete managed root: {target.absolute}",
            details={"path": target.absolute},
        )

    path = Path(target.absolute)
    if path.is_dir() and not path.is_symlink():
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, shutil.rmtree, path)
    else:
        path.unlink(missing_ok=True)

    logger.info("managed_path_deleted", path=target.absolute)
    return {"success": True, "path": target.absolute}


async def create_directory(
    config: WorldVaultConfig,
    maintenance_mode: MaintenanceFlag,
    raw_path: str | None,
) -> Dict[str, Any]:
    """Create a directory and any missing parents. Requires maintenance mode."""
    ensure_maintenance_mode(maintenance_mode)
    if not raw_path or not raw_path.strip():
        raise ValidationError("Directory path is required")
    target = resolve_managed_path(config.managed_roots, raw_path, allow_root_fallback=False)

    Path(target.absolute).mkdir(parents=True, exist_ok=True)

    logger.info("managed_directory_created", path=target.absolute)
    return {"success": True, "path": target.absolute}
