# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Configuration, builder and environment tests.
"""

from pathlib import Path

import pytest

from worldvault.builder import (
    build_config,
    create_config,
    create_empty_config,
    exclude_from_backups,
    pipe,
    with_bucket,
    with_managed_roots,
    with_server_layout,
    with_transfer_tuning,
)
from worldvault.config import MIB, WorldVaultConfig, normalize_root
from worldvault.env import create_config_from_env, maintenance_mode_from_env
from worldvault.exceptions import ConfigurationError

ENV_VARS = (
    "DATA_BUCKET_NAME",
    "S3_BUCKET",
    "AWS_ENDPOINT_URL",
    "AWS_REGION",
    "FILE_MANAGER_ROOTS",
    "WORLDVAULT_DATA_DIR",
    "WORLDVAULT_MODS_DIR",
    "WORLDVAULT_TEMP_DIR",
    "WORLDVAULT_LARGE_FILE_THRESHOLD_MB",
    "WORLDVAULT_CHUNK_SIZE_MB",
    "WORLDVAULT_MAX_CONCURRENT_DOWNLOADS",
    "CURSEFORGE_API_KEY",
    "STATUS_LOG_INTERVAL_SECONDS",
    "MAINTENANCE_MODE",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_create_config_defaults():
    config = create_config("world-backups")

    assert config.managed_roots == ("/data",)
    assert config.data_dir == Path("/data")
    assert config.mods_dir == Path("/data/mods")
    assert config.large_file_threshold == 100 * MIB
    assert config.download_chunk_size == 50 * MIB
    assert config.max_concurrent_downloads == 5
    assert config.max_retries == 3
    assert config.backup_excludes == ("logs", "cache")


def test_config_is_frozen():
    config = create_config("world-backups")

    with pytest.raises(AttributeError):
        config.bucket = "other"  # type: ignore[misc]


def test_normalize_root():
    assert normalize_root("data/") == "/data"
    assert normalize_root("/srv//configs/") == "/srv/configs"
    assert normalize_root("/") == "/"
    assert normalize_root("   ") == ""


def test_validation_collects_every_error():
    with pytest.raises(ConfigurationError) as exc_info:
        WorldVaultConfig(
            bucket="Bad_Bucket",
            managed_roots=("/data",),
            data_dir=Path("/elsewhere"),
            mods_dir=Path("/elsewhere/mods"),
            download_chunk_size=0,
            max_retries=0,
        )

    errors = exc_info.value.details["errors"]
    assert len(errors) == 4
    assert any("bucket" in e for e in errors)
    assert any("not under any managed root" in e for e in errors)


def test_mods_dir_must_be_inside_data_dir():
    with pytest.raises(ConfigurationError):
        create_config("world-backups", data_dir="/data/server", mods_dir="/data/mods")


def test_with_updates_revalidates():
    config = create_config("world-backups")

    assert config.with_updates(max_retries=5).max_retries == 5
    with pytest.raises(ConfigurationError):
        config.with_updates(max_concurrent_downloads=0)


def test_builder_pipeline():
    build = pipe(
        lambda c: with_bucket(c, "world-backups"),
        lambda c: with_managed_roots(c, ["/srv"]),
        lambda c: with_server_layout(c, "/srv/mc"),
        lambda c: exclude_from_backups(c, "crash-reports"),
        lambda c: exclude_from_backups(c, "crash-reports"),
        lambda c: with_transfer_tuning(c, download_chunk_size=8 * MIB),
    )

    config = build_config(build(create_empty_config()))

    assert config.mods_dir == Path("/srv/mc/mods")
    assert config.backup_excludes == ("logs", "cache", "crash-reports")
    assert config.download_chunk_size == 8 * MIB
    assert config.max_retries == 3


def test_config_from_env(clean_env):
    clean_env.setenv("DATA_BUCKET_NAME", "world-backups")
    clean_env.setenv("AWS_ENDPOINT_URL", "https://r2.example.com")
    clean_env.setenv("FILE_MANAGER_ROOTS", "/data, /srv/configs ,")
    clean_env.setenv("WORLDVAULT_CHUNK_SIZE_MB", "8")
    clean_env.setenv("CURSEFORGE_API_KEY", "cf-key")
    clean_env.setenv("STATUS_LOG_INTERVAL_SECONDS", "0")

    config = create_config_from_env()

    assert config.bucket == "world-backups"
    assert config.endpoint_url == "https://r2.example.com"
    assert config.managed_roots == ("/data", "/srv/configs")
    assert config.download_chunk_size == 8 * MIB
    assert config.curseforge_api_key == "cf-key"
    assert config.status_log_interval == 0


def test_config_from_env_requires_bucket(clean_env):
    with pytest.raises(ConfigurationError) as exc_info:
        create_config_from_env()

    assert "DATA_BUCKET_NAME" in exc_info.value.message


def test_config_from_env_rejects_bad_numbers(clean_env):
    clean_env.setenv("DATA_BUCKET_NAME", "world-backups")
    clean_env.setenv("WORLDVAULT_MAX_CONCURRENT_DOWNLOADS", "lots")

    with pytest.raises(ConfigurationError):
        create_config_from_env()


@pytest.mark.parametrize(
    "value,expected",
    [("true", True), ("TRUE", True), (" True ", True), ("false", False), ("1", False), ("", False)],
)
def test_maintenance_mode_from_env(clean_env, value, expected):
    clean_env.setenv("MAINTENANCE_MODE", value)
    assert maintenance_mode_from_env() is expected
