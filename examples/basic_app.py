# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI sidecar with worldvault mounted.

This example runs next to a game server container: it backs the world
directory up to an S3-compatible bucket, restores it on request, and
installs modpacks while the server is in maintenance mode.

Run with:
    uvicorn examples.basic_app:app --reload

Environment variables:
    DATA_BUCKET_NAME: Bucket for backup archives
    AWS_ENDPOINT_URL: S3-compatible endpoint (R2, MinIO, ...)
    AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY: Bucket credentials
    FILE_MANAGER_ROOTS: Comma-separated managed roots (default: /data)
    CURSEFORGE_API_KEY: Enables CurseForge installs
    MAINTENANCE_MODE: "true" while the game server is stopped
"""

import os

import structlog
from fastapi import FastAPI

from worldvault.builder import (
    build_config,
    create_empty_config,
    exclude_from_backups,
    with_bucket,
    with_managed_roots,
    with_server_layout,
)
from worldvault.env import create_config_from_env
from worldvault.exceptions import ConfigurationError
from worldvault.integrations.fastapi import worldvault_lifespan

logger = structlog.get_logger()


def create_worldvault_config():
    """
    Load configuration from the environment, falling back to a local
    development layout when no bucket is configured.
    """
    try:
        return create_config_from_env()
    except ConfigurationError as e:
        logger.warning("using_development_config", error=e.message)

    data_dir = os.getenv("WORLDVAULT_DATA_DIR", "./data")
    config = create_empty_config()
    config = with_bucket(config, "dev-world-backups")
    config = with_server_layout(config, data_dir)
    config = with_managed_roots(config, [os.path.abspath(data_dir)])
    config = exclude_from_backups(config, "crash-reports")
    return build_config(config)


worldvault_config = create_worldvault_config()

app = FastAPI(
    title="Game Server Sidecar",
    description="Example sidecar exposing worldvault admin endpoints",
    version="1.0.0",
    lifespan=lambda app: worldvault_lifespan(app, worldvault_config),
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Game server sidecar",
        "docs": "/docs",
        "worldvault_status": "/admin/worldvault/status",
    }


# ============================================================================
# worldvault Admin Endpoints (registered by worldvault_lifespan)
# ============================================================================
#
# POST   /admin/worldvault/backup?directory=&backup_id=
# GET    /admin/worldvault/backup-status?id=
# POST   /admin/worldvault/restore?directory=&backup_key=
# GET    /admin/worldvault/restore/status/{job_id}
# GET    /admin/worldvault/backups?directory=
# POST   /admin/worldvault/modpack/install/modrinth   {"url", "packVersion"}
# POST   /admin/worldvault/modpack/install/curseforge {"projectId", "fileId"}
# GET    /admin/worldvault/modpack/status/{job_id}
# GET    /admin/worldvault/fs/list?path=
# GET    /admin/worldvault/fs/file?path=
# PUT    /admin/worldvault/fs/file?path=
# DELETE /admin/worldvault/fs/file?path=
# POST   /admin/worldvault/fs/directory {"path"}
# GET    /admin/worldvault/status
#
# Put these behind your own authentication (reverse proxy or network policy).


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
