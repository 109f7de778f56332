# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault FastAPI Integration - Admin routes for a game-server sidecar.

This module provides:
- Backup, restore and backup listing endpoints
- Modpack install endpoints with job polling
- A filesystem gateway sandboxed to the managed roots
- Lifespan management with a periodic status log

Authentication is left to the host application (e.g. a reverse proxy
or a dependency on the included router).
"""

import asyncio
import contextlib
import functools
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from worldvault.backup.manager import backup_now, get_backup_status, start_backup
from worldvault.backup.restore import get_restore_status, list_backups, restore
from worldvault.config import WorldVaultConfig
from worldvault.core import VaultState, get_stats, initialize_state, log_status, shutdown_state
from worldvault.exceptions import NotFoundError, WorldVaultError
from worldvault.files import create_directory, delete_path, list_directory, read_file, write_file
from worldvault.modpack.installer import (
    get_install_status,
    start_curseforge_install,
    start_modrinth_install,
)

logger = structlog.get_logger()

NO_STORE = {"Cache-Control": "no-store"}


class ModrinthInstallRequest(BaseModel):
    url: str
    packVersion: str | None = None


class CurseforgeInstallRequest(BaseModel):
    projectId: int
    fileId: int


class DirectoryRequest(BaseModel):
    path: str | None = None


def error_response(error: WorldVaultError, status_code: int | None = None) -> JSONResponse:
    """Render ``{"error": message}`` with the exception's HTTP status."""
    return JSONResponse({"error": error.message}, status_code=status_code or error.http_status)


def _handled(state: VaultState) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """
    Count the request and turn WorldVaultError into a JSON error response.

    Applied per route: these routes may be registered from a lifespan,
    after the app's exception handlers are fixed.
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            state["request_count"] += 1
            try:
                return await func(*args, **kwargs)
            except WorldVaultError as e:
                logger.warning(
                    "request_failed",
                    route=func.__name__,
                    error=e.message,
                    error_type=e.__class__.__name__,
                    status=e.http_status,
                )
                return error_response(e)

        return wrapper

    return decorator


def register_worldvault_routes(
    app: FastAPI,
    config: WorldVaultConfig,
    state: VaultState,
    prefix: str = "/admin/worldvault",
) -> None:
    """
    Register worldvault endpoints on a FastAPI app.

    Args:
        app: FastAPI application
        config: worldvault configuration
        state: Runtime state
        prefix: URL prefix for endpoints (default: /admin/worldvault)
    """
    handled = _handled(state)

    @app.post(f"{prefix}/backup")
    @handled
    async def trigger_backup(directory: str, backup_id: str | None = None) -> Any:
        """
        Back up a directory.

        With ``backup_id`` the backup runs in the background and is
        polled via /backup-status; without it the call waits for the
        upload to finish.
        """
        if backup_id:
            return await start_backup(config, state, directory, backup_id)
        return await backup_now(config, state, directory)

    @app.get(f"{prefix}/backup-status")
    @handled
    async def backup_status(id: str) -> Any:
        return await get_backup_status(state, id)

    @app.post(f"{prefix}/restore")
    @handled
    async def restore_backup(directory: str, backup_key: str | None = None) -> Any:
        """
        Restore a backup over a directory.

        Invalid keys give 400, paths outside the managed roots 403,
        unknown backups 404, and any other failure 500.
        """
        try:
            return await restore(config, state, directory, backup_key)
        except WorldVaultError as e:
            if e.http_status in (400, 403, 404):
                raise
            return JSONResponse({"error": f"Restore failed: {e.message}"}, status_code=500)

    @app.get(f"{prefix}/restore/status/{{job_id}}")
    @handled
    async def restore_status(job_id: str) -> Any:
        record = await get_restore_status(state, job_id)
        if record is None:
            raise NotFoundError(f"Unknown restore job: {job_id}")
        return record

    @app.get(f"{prefix}/backups")
    @handled
    async def backups(directory: str) -> Any:
        return await list_backups(config, state, directory)

    @app.post(f"{prefix}/modpack/install/modrinth")
    @handled
    async def install_modrinth(payload: ModrinthInstallRequest) -> Any:
        return await start_modrinth_install(config, state, payload.url, payload.packVersion)

    @app.post(f"{prefix}/modpack/install/curseforge")
    @handled
    async def install_curseforge(payload: CurseforgeInstallRequest) -> Any:
        return await start_curseforge_install(config, state, payload.projectId, payload.fileId)

    @app.get(f"{prefix}/modpack/status/{{job_id}}")
    @handled
    async def modpack_status(job_id: str) -> Any:
        record = await get_install_status(state, job_id)
        if record is None:
            raise NotFoundError("Job not found")
        return record

    @app.get(f"{prefix}/fs/list")
    @handled
    async def fs_list(path: str | None = None) -> Any:
        listing = await list_directory(config, path)
        return JSONResponse(listing, headers=NO_STORE)

    @app.get(f"{prefix}/fs/file")
    @handled
    async def fs_read(path: str | None = None) -> Any:
        data = await read_file(config, path)
        return Response(content=data, media_type="application/octet-stream", headers=NO_STORE)

    @app.put(f"{prefix}/fs/file")
    @handled
    async def fs_write(request: Request, path: str | None = None) -> Any:
        body = await request.body()
        return await write_file(config, state["maintenance_mode"], path, body)

    @app.delete(f"{prefix}/fs/file")
    @handled
    async def fs_delete(path: str | None = None) -> Any:
        return await delete_path(config, state["maintenance_mode"], path)

    @app.post(f"{prefix}/fs/directory")
    @handled
    async def fs_mkdir(payload: DirectoryRequest) -> Any:
        return await create_directory(config, state["maintenance_mode"], payload.path)

    @app.get(f"{prefix}/status")
    @handled
    async def status() -> Any:
        return {
            **get_stats(state),
            "maintenance_mode": state["maintenance_mode"](),
            "bucket": config.bucket,
            "managed_roots": list(config.managed_roots),
        }


async def _status_logger(state: VaultState, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        log_status(state)


@asynccontextmanager
async def worldvault_lifespan(
    app: FastAPI,
    config: WorldVaultConfig,
    prefix: str = "/admin/worldvault",
    **state_options: Any,
):
    """
    Lifespan context manager for FastAPI.

        app = FastAPI(lifespan=lambda app: worldvault_lifespan(app, config))

    Args:
        app: FastAPI application
        config: worldvault configuration
        prefix: URL prefix for endpoints
        **state_options: Passed to initialize_state (object_store, jobs, ...)
    """
    logger.info("worldvault_lifespan_starting")

    state = await initialize_state(config, **state_options)
    app.state.worldvault_state = state
    app.state.worldvault_config = config

    register_worldvault_routes(app, config, state, prefix)

    status_task = None
    if config.status_log_interval > 0:
        status_task = asyncio.create_task(_status_logger(state, config.status_log_interval))
        logger.info("status_logger_started", interval=config.status_log_interval)

    logger.info("worldvault_lifespan_started")

    try:
        yield
    finally:
        logger.info("worldvault_lifespan_stopping")
        if status_task is not None:
            status_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await status_task
        await shutdown_state(state)
        logger.info("worldvault_lifespan_stopped")


def get_worldvault_state(app: FastAPI) -> VaultState:
    """
    Get worldvault state from a FastAPI app.

    Raises:
        RuntimeError: If worldvault is not initialized
    """
    state = getattr(app.state, "worldvault_state", None)
    if not state:
        raise RuntimeError("worldvault not initialized. Use worldvault_lifespan first.")
    return state


def get_worldvault_config(app: FastAPI) -> WorldVaultConfig:
    """
    Get worldvault config from a FastAPI app.

    Raises:
        RuntimeError: If worldvault is not initialized
    """
    config = getattr(app.state, "worldvault_config", None)
    if not config:
        raise RuntimeError("worldvault not initialized. Use worldvault_lifespan first.")
    return config
