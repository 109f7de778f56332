# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup key scheme - newest-first object keys.

Object stores only list keys in ascending lexicographic order. Backup
keys therefore start with a fixed-width countdown from a far-future
epoch, so an ascending listing returns the newest backups first:

    backups/<reverseEpochSeconds>_<YYYYMMDDHH>_<dirName>.tar.gz
"""

import posixpath
import re
from dataclasses import dataclass
from datetime import datetime, UTC

from worldvault.exceptions import ValidationError

BACKUP_PREFIX = "backups/"
BACKUP_SUFFIX = ".tar.gz"

# Fixed far-future epoch; keys stay sortable until this date
MAX_EPOCH_SECONDS = int(datetime(2125, 1, 1, tzinfo=UTC).timestamp())
REVERSE_EPOCH_WIDTH = len(str(MAX_EPOCH_SECONDS))

_KEY_PATTERN = re.compile(
    rf"^{re.escape(BACKUP_PREFIX)}(?P<reverse>\d{{{REVERSE_EPOCH_WIDTH}}})_"
    rf"(?P<hour>\d{{10}})_(?P<dir>.+){re.escape(BACKUP_SUFFIX)}$"
)


@dataclass(frozen=True)
class BackupKeyInfo:
    """Fields recovered from a backup key."""

    key: str
    reverse_epoch: int
    created_at: datetime
    hour_stamp: str
    dir_name: str


def _as_utc(at: datetime) -> datetime:
    if at.tzinfo is None:
        return at.replace(tzinfo=UTC)
    return at.astimezone(UTC)


def format_hour_stamp(at: datetime) -> str:
    """Format a timestamp as YYYYMMDDHH in UTC."""
    return _as_utc(at).strftime("%Y%m%d%H")


def reverse_epoch(at: datetime) -> str:
    """Zero-padded seconds remaining until MAX_EPOCH_SECONDS."""
    now_seconds = int(_as_utc(at).timestamp())
    return str(MAX_EPOCH_SECONDS - now_seconds).zfill(REVERSE_EPOCH_WIDTH)


def directory_basename(directory: str) -> str:
    """Last path segment of a directory, or "backup" for the root."""
    segments = [s for s in directory.split("/") if s]
    return segments[-1] if segments else "backup"


def generate_backup_key(dir_name: str, at: datetime | None = None) -> str:
    """
    Build the object key for a new backup of ``dir_name``.

    For the same directory, a later ``at`` always yields a key that sorts
    before an earlier one.
    """
    moment = at or datetime.now(UTC)
    return f"{BACKUP_PREFIX}{reverse_epoch(moment)}_{format_hour_stamp(moment)}_{dir_name}{BACKUP_SUFFIX}"


def parse_backup_key(key: str) -> BackupKeyInfo | None:
    """Parse a key produced by generate_backup_key; None for foreign keys."""
    match = _KEY_PATTERN.match(key)
    if not match:
        return None
    reverse = int(match.group("reverse"))
    return BackupKeyInfo(
        key=key,
        reverse_epoch=reverse,
        created_at=datetime.fromtimestamp(MAX_EPOCH_SECONDS - reverse, UTC),
        hour_stamp=match.group("hour"),
        dir_name=match.group("dir"),
    )


def key_matches_directory(key: str, dir_name: str) -> bool:
    """True if ``key`` is a backup of a directory named ``dir_name``."""
    return key.startswith(BACKUP_PREFIX) and key.endswith(f"_{dir_name}{BACKUP_SUFFIX}")


def validate_backup_key(key: str | None) -> str:
    """
    Check that a caller-supplied key stays inside the backups namespace.

    Raises:
        ValidationError: If the key is empty, outside ``backups/`` or
            contains parent-directory segments
    """
    if not key or not key.strip():
        raise ValidationError("Backup key is required")

    candidate = key.strip()
    segments = candidate.replace("\\", "/").split("/")
    if ".." in segments or not candidate.startswith(BACKUP_PREFIX):
        raise ValidationError(
            f"Invalid backup filename: {candidate}",
            details={"backup_key": candidate},
        )
    if posixpath.normpath(candidate) != candidate:
        raise ValidationError(
            f"Invalid backup filename: {candidate}",
            details={"backup_key": candidate},
        )
    return candidate
