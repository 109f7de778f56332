# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault Backup Manager - Archive a server directory to object storage.

A backup archives the directory with tar, names it with the newest-first
key scheme, and uploads it in one streaming request. It runs either as a
background job polled by id or inline for callers that want to wait.
"""

import re
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict

import structlog

from worldvault.archive import create_archive
from worldvault.config import WorldVaultConfig
from worldvault.core import VaultState, launch_background
from worldvault.exceptions import ValidationError
from worldvault.files import resolve_managed_path
from worldvault.jobs import Job, JobKind, JobStatus, failure_patch, generate_job_id
from worldvault.storage.keys import directory_basename, format_hour_stamp, generate_backup_key
from worldvault.storage.transfer import upload_file

logger = structlog.get_logger()

BACKUP_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def _remove_temp_file(path: Path, job_id: str) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("temp_cleanup_failed", job_id=job_id, path=str(path), error=str(e))


async def _archive_and_upload(
    config: WorldVaultConfig,
    state: VaultState,
    directory: str,
    job_id: str,
) -> Dict[str, Any]:
    """
    Archive ``directory`` and upload it under a fresh backup key.

    The temp archive is removed whatever happens.
    """
    now = datetime.now(UTC)
    dir_name = directory_basename(directory)
    key = generate_backup_key(dir_name, now)
    temp_path = config.temp_dir / f"backup_{format_hour_stamp(now)}_{job_id}.tar.gz"

    logger.info("backup_archiving", job_id=job_id, directory=directory, key=key)

    try:
        size = await create_archive(Path(directory), temp_path, config.backup_excludes)
        # Content deduplication would go here: hash temp_path and reuse a
        # prior key with the same digest instead of uploading.
        await upload_file(state["object_store"], key, temp_path)
    finally:
        _remove_temp_file(temp_path, job_id)

    return {"backup_path": key, "size": size, "note": "complete backup"}


def _status_payload(job: Job) -> Dict[str, Any]:
    return {
        "id": job.id,
        "directory": job.directory,
        "status": job.status.value,
        "startedAt": job.started_at,
        "completedAt": job.completed_at,
        "result": job.result,
        "error": job.error,
    }


async def run_backup(config: WorldVaultConfig, state: VaultState, job_id: str) -> None:
    """
    Execute a registered backup job to completion.

    Never raises; failures are recorded on the job.
    """
    jobs = state["jobs"]

    def mark_running(job: Job) -> None:
        job.status = JobStatus.RUNNING
        job.progress = {"phase": "archiving"}

    job = await jobs.mutate(job_id, mark_running)

    try:
        result = await _archive_and_upload(config, state, job.directory, job_id)
    except Exception as e:
        state["last_error"] = str(e)
        await jobs.mutate(job_id, failure_patch(e, prefix="Backup failed: "))
        logger.error("backup_job_failed", job_id=job_id, directory=job.directory, error=str(e))
        return

    def mark_success(job: Job) -> None:
        job.status = JobStatus.SUCCESS
        job.result = result
        job.progress = {"phase": "completed"}

    await jobs.mutate(job_id, mark_success)
    logger.info("backup_job_completed", job_id=job_id, key=result["backup_path"], size=result["size"])


async def start_backup(
    config: WorldVaultConfig,
    state: VaultState,
    directory: str,
    backup_id: str | None = None,
) -> Dict[str, Any]:
    """
    Register a backup job and run it in the background.

    Idempotent on ``backup_id``: a second call with a known id returns
    the existing job's state with ``started`` set to False and starts
    nothing.

    Returns:
        ``{id, started, directory, status, startedAt}``

    Raises:
        ValidationError: ``backup_id`` is not a safe identifier
    """
    if backup_id and not BACKUP_ID_PATTERN.fullmatch(backup_id):
        raise ValidationError(f"Invalid backup id: {backup_id}", details={"backup_id": backup_id})
    target = resolve_managed_path(config.managed_roots, directory, allow_root_fallback=False)
    job_id = backup_id or generate_job_id("backup")

    async with state["start_lock"]:
        existing = await state["jobs"].get(job_id)
        if existing is not None:
            return {
                "id": existing.id,
                "started": False,
                "directory": existing.directory,
                "status": existing.status.value,
                "startedAt": existing.started_at,
                "completedAt": existing.completed_at,
            }

        job = await state["jobs"].create(
            job_id,
            JobKind.BACKUP,
            directory=target.absolute,
            progress={"phase": "queued"},
        )
    state["backup_count"] += 1
    logger.info("backup_job_created", job_id=job_id, directory=target.absolute)

    launch_background(state, run_backup(config, state, job_id), job_id)

    return {
        "id": job.id,
        "started": True,
        "directory": job.directory,
        "status": job.status.value,
        "startedAt": job.started_at,
    }


async def backup_now(config: WorldVaultConfig, state: VaultState, directory: str) -> Dict[str, Any]:
    """
    Back up ``directory`` inline and return once the upload finishes.

    Returns:
        ``{success, backup_path, size, note}``
    """
    target = resolve_managed_path(config.managed_roots, directory, allow_root_fallback=False)
    run_id = generate_job_id("backup")
    state["backup_count"] += 1

    try:
        result = await _archive_and_upload(config, state, target.absolute, run_id)
    except Exception as e:
        state["last_error"] = str(e)
        logger.error("backup_failed", directory=target.absolute, error=str(e))
        raise

    logger.info("backup_completed", directory=target.absolute, key=result["backup_path"])
    return {"success": True, **result}


async def get_backup_status(state: VaultState, job_id: str) -> Dict[str, Any]:
    """
    Poll a backup job.

    Returns:
        The job's poll payload, or ``{id, status: "not_found"}``
    """
    job = await state["jobs"].get(job_id)
    if job is None or job.kind != JobKind.BACKUP:
        return {"id": job_id, "status": "not_found"}
    return _status_payload(job)
