# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so background
jobs never observe settings changing underneath them.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple
import posixpath
import re
import tempfile

MIB = 1024 * 1024

# Transfer engine defaults
DEFAULT_LARGE_FILE_THRESHOLD = 100 * MIB  # Objects at or above this use ranged parts
DEFAULT_DOWNLOAD_CHUNK_SIZE = 50 * MIB  # Bytes per part
DEFAULT_MAX_CONCURRENT_DOWNLOADS = 5  # Parts in flight per batch
DEFAULT_MAX_RETRIES = 3  # Attempts per part
DEFAULT_RETRY_BASE_DELAY = 1.0  # Seconds, doubled per attempt

DEFAULT_MANAGED_ROOTS: Tuple[str, ...] = ("/data",)
DEFAULT_BACKUP_EXCLUDES: Tuple[str, ...] = ("logs", "cache")

MODRINTH_API_URL = "https://api.modrinth.com/v2"
CURSEFORGE_API_URL = "https://api.curseforge.com/v1"


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate a bucket name according to S3 rules.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens
    - Must start and end with letter or number
    - No consecutive periods
    - Not formatted as IP address
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    if re.match(r"^\d+\.\d+\.\d+\.\d+$", bucket):
        return False

    return True


def normalize_root(root: str) -> str:
    """
    Normalize a managed root to an absolute path without a trailing slash.

    "/" stays "/"; "data/" becomes "/data".
    """
    candidate = root.strip()
    if not candidate:
        return ""
    normalized = posixpath.normpath("/" + candidate.lstrip("/"))
    return normalized


def _is_within(path: str, root: str) -> bool:
    return root == "/" or path == root or path.startswith(f"{root}/")


@dataclass(frozen=True)
class WorldVaultConfig:
    """
    Immutable configuration for backup, restore and modpack installs.

    Managed roots are normalized on creation; every other field is
    validated and all problems are reported together.
    """

    # Required: bucket holding backup archives
    bucket: str

    # S3-compatible endpoint (None uses the AWS default endpoint)
    endpoint_url: str | None = None

    # Region passed to the client ("auto" suits R2-style stores)
    region: str = "auto"

    # Static credentials (None falls back to the default credential chain)
    access_key_id: str | None = None
    secret_access_key: str | None = None

    # Path prefixes the filesystem gateway may touch
    managed_roots: Tuple[str, ...] = DEFAULT_MANAGED_ROOTS

    # Server data directory (overrides and manifest files land here)
    data_dir: Path = field(default_factory=lambda: Path("/data"))

    # Mods directory, wiped before every modpack install
    mods_dir: Path = field(default_factory=lambda: Path("/data/mods"))

    # Scratch space for archives and pack downloads
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    # Sub-paths of a backed-up directory left out of the archive
    backup_excludes: Tuple[str, ...] = DEFAULT_BACKUP_EXCLUDES

    # Transfer engine tuning
    large_file_threshold: int = DEFAULT_LARGE_FILE_THRESHOLD
    download_chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE
    max_concurrent_downloads: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY

    # Transport timeouts in seconds; multi-gigabyte transfers run for a long time
    connect_timeout: float = 60.0
    read_timeout: float = 1800.0

    # Modpack providers
    curseforge_api_key: str | None = None
    modrinth_api_url: str = MODRINTH_API_URL
    curseforge_api_url: str = CURSEFORGE_API_URL

    # Seconds between status log lines (0 disables)
    status_log_interval: int = 60

    def __post_init__(self) -> None:
        """Normalize paths and validate configuration after creation."""
        errors: List[str] = []

        roots = tuple(r for r in (normalize_root(r) for r in self.managed_roots) if r)
        object.__setattr__(self, "managed_roots", roots)
        object.__setattr__(self, "data_dir", Path(self.data_dir))
        object.__setattr__(self, "mods_dir", Path(self.mods_dir))
        object.__setattr__(self, "temp_dir", Path(self.temp_dir))
        object.__setattr__(self, "backup_excludes", tuple(self.backup_excludes))

        if not _validate_bucket_name(self.bucket):
            errors.append(f"Invalid bucket name: {self.bucket}")

        if not roots:
            errors.append("managed_roots must contain at least one path")

        if not self.data_dir.is_absolute():
            errors.append(f"data_dir must be absolute, got {self.data_dir}")
        elif roots and not any(_is_within(self.data_dir.as_posix(), r) for r in roots):
            errors.append(f"data_dir {self.data_dir} is not under any managed root")

        if not self.mods_dir.is_absolute():
            errors.append(f"mods_dir must be absolute, got {self.mods_dir}")
        elif self.mods_dir == self.data_dir or not _is_within(
            self.mods_dir.as_posix(), self.data_dir.as_posix()
        ):
            errors.append(f"mods_dir {self.mods_dir} must be nested under data_dir {self.data_dir}")

        for exclude in self.backup_excludes:
            if not exclude or exclude.startswith("/") or ".." in exclude.split("/"):
                errors.append(f"Invalid backup exclude: {exclude!r}")

        if self.large_file_threshold < 1:
            errors.append(f"large_file_threshold must be >= 1, got {self.large_file_threshold}")

        if self.download_chunk_size < 1:
            errors.append(f"download_chunk_size must be >= 1, got {self.download_chunk_size}")

        if self.max_concurrent_downloads < 1:
            errors.append(
                f"max_concurrent_downloads must be >= 1, got {self.max_concurrent_downloads}"
            )

        if self.max_retries < 1:
            errors.append(f"max_retries must be >= 1, got {self.max_retries}")

        if self.retry_base_delay < 0:
            errors.append(f"retry_base_delay must be >= 0, got {self.retry_base_delay}")

        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            errors.append("connect_timeout and read_timeout must be positive")

        if self.status_log_interval < 0:
            errors.append(f"status_log_interval must be >= 0, got {self.status_log_interval}")

        if errors:
            from worldvault.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "WorldVaultConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return WorldVaultConfig(**current)
