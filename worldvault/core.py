# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault Core - Runtime state shared by every operation.

Operations are plain functions taking ``(config, state)``. The state
holds the object store, the job repository, the outbound HTTP client,
the maintenance flag reader, and the counters reported by ``/status``.
Everything runs on one event loop, so the counters need no locking.
Starting a job checks the registry and then creates a record across
awaits; ``start_lock`` serializes that check-and-create.
"""

import asyncio
from typing import Any, Coroutine, Dict, Set, TypedDict

import httpx
import structlog

from worldvault.config import WorldVaultConfig
from worldvault.env import maintenance_mode_from_env
from worldvault.files import MaintenanceFlag
from worldvault.jobs import InMemoryJobRepository, JobRepository
from worldvault.storage.client import ObjectStore, S3ObjectStore

logger = structlog.get_logger()


class VaultState(TypedDict):
    """Runtime state for backup, restore and install operations."""

    object_store: ObjectStore
    jobs: JobRepository
    http_client: httpx.AsyncClient
    owns_http_client: bool
    maintenance_mode: MaintenanceFlag
    background_tasks: Set[asyncio.Task]
    start_lock: asyncio.Lock
    request_count: int
    backup_count: int
    restore_count: int
    active_restores: int
    install_count: int
    active_install_id: str | None
    last_error: str | None


async def initialize_state(
    config: WorldVaultConfig,
    *,
    object_store: ObjectStore | None = None,
    jobs: JobRepository | None = None,
    http_client: httpx.AsyncClient | None = None,
    maintenance_mode: MaintenanceFlag | None = None,
) -> VaultState:
    """
    Initialize runtime state.

    Every collaborator can be injected; defaults are an aiobotocore
    store, an in-memory job repository, a fresh httpx client and the
    MAINTENANCE_MODE environment flag.

    Args:
        config: worldvault configuration
        object_store: Object store for backup archives
        jobs: Job repository
        http_client: Client for modpack provider requests
        maintenance_mode: Zero-argument callable reading the external flag

    Returns:
        Initialized VaultState dictionary
    """
    config.temp_dir.mkdir(parents=True, exist_ok=True)

    owns_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.read_timeout, connect=config.connect_timeout),
            follow_redirects=True,
            headers={"User-Agent": "worldvault"},
        )

    state = VaultState(
        object_store=object_store or S3ObjectStore(config),
        jobs=jobs or InMemoryJobRepository(),
        http_client=http_client,
        owns_http_client=owns_client,
        maintenance_mode=maintenance_mode or maintenance_mode_from_env,
        background_tasks=set(),
        start_lock=asyncio.Lock(),
        request_count=0,
        backup_count=0,
        restore_count=0,
        active_restores=0,
        install_count=0,
        active_install_id=None,
        last_error=None,
    )

    logger.info(
        "worldvault_initialized",
        bucket=config.bucket,
        managed_roots=list(config.managed_roots),
        data_dir=str(config.data_dir),
    )
    return state


def launch_background(state: VaultState, coro: Coroutine[Any, Any, Any], job_id: str) -> asyncio.Task:
    """
    Run ``coro`` as a background task owned by ``job_id``.

    The task is kept referenced until it finishes. Jobs cannot be
    cancelled; callers poll the job record instead.
    """
    task = asyncio.create_task(coro, name=f"worldvault-{job_id}")
    state["background_tasks"].add(task)

    def _done(finished: asyncio.Task) -> None:
        state["background_tasks"].discard(finished)
        if not finished.cancelled() and finished.exception() is not None:
            logger.error(
                "background_task_crashed",
                job_id=job_id,
                error=str(finished.exception()),
            )

    task.add_done_callback(_done)
    return task


async def shutdown_state(state: VaultState, drain_timeout: float = 30.0) -> None:
    """
    Wait briefly for running jobs, then release resources.

    Jobs still running after ``drain_timeout`` seconds are left alone
    and logged.
    """
    pending = set(state["background_tasks"])
    if pending:
        logger.info("waiting_for_background_jobs", count=len(pending))
        _, still_running = await asyncio.wait(pending, timeout=drain_timeout)
        if still_running:
            logger.warning("background_jobs_still_running", count=len(still_running))

    if state["owns_http_client"]:
        await state["http_client"].aclose()

    logger.info("worldvault_shutdown")


def get_stats(state: VaultState) -> Dict[str, Any]:
    """Counters for status reporting."""
    return {
        "requests": state["request_count"],
        "backups": state["backup_count"],
        "restores": state["restore_count"],
        "active_restores": state["active_restores"],
        "installs": state["install_count"],
        "active_install_id": state["active_install_id"],
        "background_jobs": len(state["background_tasks"]),
        "last_error": state["last_error"],
    }


def log_status(state: VaultState) -> None:
    """Emit one status line with the current counters."""
    logger.info("file_server_status", **get_stats(state))
