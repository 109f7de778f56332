# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Storage - Object store client, backup key scheme and transfer engine.
"""

from worldvault.storage.client import ObjectInfo, ObjectStore, S3ObjectStore
from worldvault.storage.keys import generate_backup_key, parse_backup_key, validate_backup_key
from worldvault.storage.transfer import download_object, upload_file

__all__ = [
    "ObjectInfo",
    "ObjectStore",
    "S3ObjectStore",
    "generate_backup_key",
    "parse_backup_key",
    "validate_backup_key",
    "download_object",
    "upload_file",
]
