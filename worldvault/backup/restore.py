# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault Restore - Bring a backup back onto disk and list backups.

A restore is synchronous for the caller but is also recorded as a
``restore`` job, so it shows up when polled afterwards. The archive is
downloaded through the chunked transfer engine and extracted with tar
into the parent of the target directory.
"""

from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, List

import structlog

from worldvault.archive import extract_archive
from worldvault.config import WorldVaultConfig
from worldvault.core import VaultState
from worldvault.exceptions import NotFoundError
from worldvault.files import resolve_managed_path
from worldvault.jobs import Job, JobKind, JobStatus, failure_patch, generate_job_id
from worldvault.storage.keys import (
    BACKUP_PREFIX,
    directory_basename,
    key_matches_directory,
    parse_backup_key,
    validate_backup_key,
)
from worldvault.storage.transfer import download_object

logger = structlog.get_logger()


async def restore(
    config: WorldVaultConfig,
    state: VaultState,
    directory: str,
    backup_key: str | None,
) -> Dict[str, Any]:
    """
    Restore ``backup_key`` over ``directory``.

    The key is validated before any network call. The archive root is
    the directory's own name, so it is extracted into the directory's
    parent, overwriting existing entries.

    Returns:
        ``{success, restored_from, restored_to, size, note, job_id}``

    Raises:
        ValidationError: Invalid key (400)
        PathOutsideRootsError: Directory outside managed roots (403)
        NotFoundError: No such backup (404)
        WorldVaultError: Download or extraction failure
    """
    key = validate_backup_key(backup_key)
    target = resolve_managed_path(config.managed_roots, directory, allow_root_fallback=False)
    jobs = state["jobs"]

    job_id = generate_job_id("restore")
    await jobs.create(job_id, JobKind.RESTORE, directory=target.absolute, progress={"phase": "queued"})
    state["restore_count"] += 1
    state["active_restores"] += 1

    temp_path = config.temp_dir / f"restore_{job_id}.tar.gz"
    parent = Path(target.absolute).parent

    logger.info("restore_started", job_id=job_id, key=key, directory=target.absolute)

    try:

        def mark_running(job: Job) -> None:
            job.status = JobStatus.RUNNING
            job.progress = {"phase": "downloading", "note": key}

        await jobs.mutate(job_id, mark_running)

        try:
            size = await state["object_store"].head_size(key)
        except NotFoundError as e:
            raise NotFoundError(f"Backup not found: {key}", details={"backup_key": key}) from e

        async def report_parts(completed: int, total: int) -> None:
            def patch(job: Job) -> None:
                job.progress = {
                    "phase": "downloading",
                    "currentIndex": completed,
                    "totalFiles": total,
                    "note": key,
                }

            await jobs.mutate(job_id, patch)

        download = await download_object(
            state["object_store"], key, temp_path, config, size=size, on_progress=report_parts
        )
        if not download.size_matches:
            logger.warning(
                "restore_size_mismatch",
                job_id=job_id,
                expected=download.expected_size,
                actual=download.actual_size,
            )

        def mark_extracting(job: Job) -> None:
            job.progress = {"phase": "extracting", "note": str(parent)}

        await jobs.mutate(job_id, mark_extracting)
        await extract_archive(temp_path, parent)

        result = {
            "success": True,
            "restored_from": key,
            "restored_to": target.absolute,
            "size": download.actual_size,
            "note": "complete restore",
        }

        def mark_success(job: Job) -> None:
            job.status = JobStatus.SUCCESS
            job.result = dict(result)
            job.progress = {"phase": "completed"}

        await jobs.mutate(job_id, mark_success)
        logger.info("restore_completed", job_id=job_id, key=key, size=download.actual_size)
        return {**result, "job_id": job_id}

    except Exception as e:
        state["last_error"] = str(e)
        await jobs.mutate(job_id, failure_patch(e, prefix="Restore failed: "))
        logger.error(
            "restore_failed",
            job_id=job_id,
            key=key,
            error=str(e),
            error_type=e.__class__.__name__,
        )
        raise

    finally:
        state["active_restores"] -= 1
        try:
            temp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("temp_cleanup_failed", job_id=job_id, path=str(temp_path), error=str(e))


async def get_restore_status(state: VaultState, job_id: str) -> Dict[str, Any] | None:
    """Full record of a restore job, or None if unknown."""
    job = await state["jobs"].get(job_id)
    if job is None or job.kind != JobKind.RESTORE:
        return None
    return job.to_dict()


def _timestamp(last_modified: datetime | None, key: str) -> datetime | None:
    if last_modified is not None:
        if last_modified.tzinfo is None:
            return last_modified.replace(tzinfo=UTC)
        return last_modified
    info = parse_backup_key(key)
    return info.created_at if info else None


async def list_backups(
    config: WorldVaultConfig,
    state: VaultState,
    directory: str,
) -> Dict[str, Any]:
    """
    List backups of ``directory``, newest first.

    Objects are matched on the ``_<dirName>.tar.gz`` suffix. Order is by
    timestamp descending when every entry has one, otherwise by key,
    which the key scheme already makes newest-first.

    Returns:
        ``{success, directory, backups: [{path, size, timestamp}]}``
    """
    target = resolve_managed_path(config.managed_roots, directory, allow_root_fallback=False)
    dir_name = directory_basename(target.absolute)

    objects = await state["object_store"].list(BACKUP_PREFIX)
    matching = sorted(
        (o for o in objects if key_matches_directory(o.key, dir_name)),
        key=lambda o: o.key,
    )

    stamped = [(o, _timestamp(o.last_modified, o.key)) for o in matching]
    if stamped and all(ts is not None for _, ts in stamped):
        stamped.sort(key=lambda pair: pair[1], reverse=True)

    backups: List[Dict[str, Any]] = [
        {
            "path": o.key,
            "size": o.size,
            "timestamp": ts.isoformat() if ts is not None else "unknown",
        }
        for o, ts in stamped
    ]

    logger.info("backups_listed", directory=target.absolute, count=len(backups))
    return {"success": True, "directory": target.absolute, "backups": backups}
