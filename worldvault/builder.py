# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault Builder - Functional builder pattern for configuration.

This module provides pure functions for building WorldVaultConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict, Iterable

from worldvault.config import (
    CURSEFORGE_API_URL,
    DEFAULT_BACKUP_EXCLUDES,
    DEFAULT_DOWNLOAD_CHUNK_SIZE,
    DEFAULT_LARGE_FILE_THRESHOLD,
    DEFAULT_MANAGED_ROOTS,
    DEFAULT_MAX_CONCURRENT_DOWNLOADS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY,
    MODRINTH_API_URL,
    WorldVaultConfig,
)


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary with default values.
    """
    import tempfile

    return {
        "bucket": "",
        "endpoint_url": None,
        "region": "auto",
        "access_key_id": None,
        "secret_access_key": None,
        "managed_roots": DEFAULT_MANAGED_ROOTS,
        "data_dir": Path("/data"),
        "mods_dir": Path("/data/mods"),
        "temp_dir": Path(tempfile.gettempdir()),
        "backup_excludes": DEFAULT_BACKUP_EXCLUDES,
        "large_file_threshold": DEFAULT_LARGE_FILE_THRESHOLD,
        "download_chunk_size": DEFAULT_DOWNLOAD_CHUNK_SIZE,
        "max_concurrent_downloads": DEFAULT_MAX_CONCURRENT_DOWNLOADS,
        "max_retries": DEFAULT_MAX_RETRIES,
        "retry_base_delay": DEFAULT_RETRY_BASE_DELAY,
        "connect_timeout": 60.0,
        "read_timeout": 1800.0,
        "curseforge_api_key": None,
        "modrinth_api_url": MODRINTH_API_URL,
        "curseforge_api_url": CURSEFORGE_API_URL,
        "status_log_interval": 60,
    }


def with_bucket(config: ConfigDict, bucket_name: str) -> ConfigDict:
    """Set the bucket that stores backup archives."""
    return {**config, "bucket": bucket_name}


def with_endpoint(config: ConfigDict, endpoint_url: str | None, region: str | None = None) -> ConfigDict:
    """
    Point the client at an S3-compatible endpoint.

    Args:
        config: Current configuration dictionary
        endpoint_url: Endpoint URL, e.g. an R2 or MinIO URL
        region: Optional region override
    """
    updated = {**config, "endpoint_url": endpoint_url}
    if region:
        updated["region"] = region
    return updated


def with_credentials(config: ConfigDict, access_key_id: str | None, secret_access_key: str | None) -> ConfigDict:
    """Set static access credentials."""
    return {
        **config,
        "access_key_id": access_key_id,
        "secret_access_key": secret_access_key,
    }


def with_managed_roots(config: ConfigDict, roots: Iterable[str]) -> ConfigDict:
    """Replace the managed roots exposed by the filesystem gateway."""
    return {**config, "managed_roots": tuple(roots)}


def with_server_layout(
    config: ConfigDict,
    data_dir: Path | str,
    mods_dir: Path | str | None = None,
) -> ConfigDict:
    """
    Set the server data directory and its mods directory.

    The mods directory defaults to ``<data_dir>/mods``.
    """
    data_path = Path(data_dir)
    return {
        **config,
        "data_dir": data_path,
        "mods_dir": Path(mods_dir) if mods_dir else data_path / "mods",
    }


def with_temp_dir(config: ConfigDict, temp_dir: Path | str) -> ConfigDict:
    """Set the scratch directory for archives and pack downloads."""
    return {**config, "temp_dir": Path(temp_dir)}


def exclude_from_backups(config: ConfigDict, sub_path: str) -> ConfigDict:
    """Add a sub-path that backups leave out, if not already present."""
    excludes = tuple(config.get("backup_excludes", ()))
    if sub_path in excludes:
        return config
    return {**config, "backup_excludes": excludes + (sub_path,)}


def with_transfer_tuning(
    config: ConfigDict,
    *,
    large_file_threshold: int | None = None,
    download_chunk_size: int | None = None,
    max_concurrent_downloads: int | None = None,
    max_retries: int | None = None,
    retry_base_delay: float | None = None,
) -> ConfigDict:
    """
    Adjust the chunked transfer engine.

    Only the arguments that are given are changed.
    """
    updates = {
        "large_file_threshold": large_file_threshold,
        "download_chunk_size": download_chunk_size,
        "max_concurrent_downloads": max_concurrent_downloads,
        "max_retries": max_retries,
        "retry_base_delay": retry_base_delay,
    }
    return {**config, **{k: v for k, v in updates.items() if v is not None}}


def with_curseforge_key(config: ConfigDict, api_key: str | None) -> ConfigDict:
    """Set the CurseForge API key."""
    return {**config, "curseforge_api_key": api_key}


def build_config(config_dict: ConfigDict) -> WorldVaultConfig:
    """
    Build an immutable WorldVaultConfig from a configuration dictionary.

    Raises:
        ConfigurationError: If any field is invalid
    """
    return WorldVaultConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose builder functions left to right.

    Example:
        build = pipe(
            lambda c: with_bucket(c, "world-backups"),
            lambda c: with_managed_roots(c, ["/data"]),
        )
        config = build_config(build(create_empty_config()))
    """

    def composed(config: ConfigDict) -> ConfigDict:
        for func in funcs:
            config = func(config)
        return config

    return composed


def create_config(
    bucket: str,
    *,
    endpoint_url: str | None = None,
    region: str | None = None,
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    managed_roots: Iterable[str] | None = None,
    data_dir: str | Path | None = None,
    mods_dir: str | Path | None = None,
    temp_dir: str | Path | None = None,
    curseforge_api_key: str | None = None,
    **kwargs: Any,
) -> WorldVaultConfig:
    """
    Create worldvault configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.

    Args:
        bucket: Bucket name (required)
        endpoint_url: S3-compatible endpoint URL
        region: Region name (default: "auto")
        access_key_id: Static access key
        secret_access_key: Static secret key
        managed_roots: Path prefixes the filesystem gateway may touch
        data_dir: Server data directory (default: "/data")
        mods_dir: Mods directory (default: "<data_dir>/mods")
        temp_dir: Scratch directory (default: system temp dir)
        curseforge_api_key: Key for CurseForge installs
        **kwargs: Additional configuration options

    Returns:
        Validated, immutable WorldVaultConfig instance

    Example:
        config = create_config(
            "world-backups",
            endpoint_url="https://<account>.r2.cloudflarestorage.com",
            managed_roots=["/data"],
        )
    """
    config_dict = with_bucket(create_empty_config(), bucket)

    if endpoint_url or region:
        config_dict = with_endpoint(config_dict, endpoint_url, region)

    if access_key_id or secret_access_key:
        config_dict = with_credentials(config_dict, access_key_id, secret_access_key)

    if managed_roots is not None:
        config_dict = with_managed_roots(config_dict, managed_roots)

    if data_dir:
        config_dict = with_server_layout(config_dict, data_dir, mods_dir)
    elif mods_dir:
        config_dict = {**config_dict, "mods_dir": Path(mods_dir)}

    if temp_dir:
        config_dict = with_temp_dir(config_dict, temp_dir)

    if curseforge_api_key:
        config_dict = with_curseforge_key(config_dict, curseforge_api_key)

    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)
