# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

The process is configured once from environment-style credentials, and
the maintenance flag is owned by the external lifecycle controller: it
is read here, never written.
"""

from __future__ import annotations

import os
from typing import List

from worldvault.builder import create_config
from worldvault.config import MIB, WorldVaultConfig
from worldvault.errors import explain_invalid_int_env, explain_missing_bucket_env
from worldvault.exceptions import ConfigurationError


def _parse_positive_int(name: str, value: str | None) -> int | None:
    if not value:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_int_env(name, value)) from exc
    if number < 1:
        raise ConfigurationError(explain_invalid_int_env(name, value))
    return number


def _parse_roots(value: str | None) -> List[str] | None:
    if not value:
        return None
    return [r.strip() for r in value.split(",") if r.strip()]


def maintenance_mode_from_env() -> bool:
    """
    Return True when MAINTENANCE_MODE is "true" (case-insensitive).

    Read on every call so a flag flipped by the lifecycle controller is
    seen by the next request.
    """
    return os.getenv("MAINTENANCE_MODE", "").strip().lower() == "true"


def create_config_from_env() -> WorldVaultConfig:
    """
    Create a WorldVaultConfig from environment variables.

    Required:
        - DATA_BUCKET_NAME (or S3_BUCKET): bucket for backup archives

    Optional environment variables:
        - AWS_ENDPOINT_URL: S3-compatible endpoint
        - AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY: static credentials
        - AWS_REGION: region (default: auto)
        - FILE_MANAGER_ROOTS: comma-separated managed roots (default: /data)
        - WORLDVAULT_DATA_DIR: server data directory (default: /data)
        - WORLDVAULT_MODS_DIR: mods directory (default: <data dir>/mods)
        - WORLDVAULT_TEMP_DIR: scratch directory
        - WORLDVAULT_LARGE_FILE_THRESHOLD_MB: chunked download threshold
        - WORLDVAULT_CHUNK_SIZE_MB: chunk size for ranged downloads
        - WORLDVAULT_MAX_CONCURRENT_DOWNLOADS: parts per batch
        - CURSEFORGE_API_KEY: enables CurseForge installs
        - STATUS_LOG_INTERVAL_SECONDS: status log cadence (default: 60)
    """
    bucket = os.getenv("DATA_BUCKET_NAME") or os.getenv("S3_BUCKET")
    if not bucket:
        raise ConfigurationError(explain_missing_bucket_env())

    options: dict = {}

    threshold_mb = _parse_positive_int(
        "WORLDVAULT_LARGE_FILE_THRESHOLD_MB", os.getenv("WORLDVAULT_LARGE_FILE_THRESHOLD_MB")
    )
    if threshold_mb:
        options["large_file_threshold"] = threshold_mb * MIB

    chunk_mb = _parse_positive_int("WORLDVAULT_CHUNK_SIZE_MB", os.getenv("WORLDVAULT_CHUNK_SIZE_MB"))
    if chunk_mb:
        options["download_chunk_size"] = chunk_mb * MIB

    concurrency = _parse_positive_int(
        "WORLDVAULT_MAX_CONCURRENT_DOWNLOADS", os.getenv("WORLDVAULT_MAX_CONCURRENT_DOWNLOADS")
    )
    if concurrency:
        options["max_concurrent_downloads"] = concurrency

    interval = os.getenv("STATUS_LOG_INTERVAL_SECONDS")
    if interval == "0":
        options["status_log_interval"] = 0
    else:
        parsed_interval = _parse_positive_int("STATUS_LOG_INTERVAL_SECONDS", interval)
        if parsed_interval:
            options["status_log_interval"] = parsed_interval

    return create_config(
        bucket,
        endpoint_url=os.getenv("AWS_ENDPOINT_URL"),
        region=os.getenv("AWS_REGION"),
        access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
        secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        managed_roots=_parse_roots(os.getenv("FILE_MANAGER_ROOTS")),
        data_dir=os.getenv("WORLDVAULT_DATA_DIR"),
        mods_dir=os.getenv("WORLDVAULT_MODS_DIR"),
        temp_dir=os.getenv("WORLDVAULT_TEMP_DIR"),
        curseforge_api_key=os.getenv("CURSEFORGE_API_KEY"),
        **options,
    )
