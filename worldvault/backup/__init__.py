# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Backup, restore and listing of world archives.
"""

from worldvault.backup.manager import (
    backup_now,
    get_backup_status,
    run_backup,
    start_backup,
)

from worldvault.backup.restore import (
    get_restore_status,
    list_backups,
    restore,
)

__all__ = [
    # Manager
    "backup_now",
    "get_backup_status",
    "run_backup",
    "start_backup",
    # Restore
    "get_restore_status",
    "list_backups",
    "restore",
]
