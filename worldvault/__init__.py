# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault - World backups and modpack installs for game-server sidecars.

Backs server directories up to S3-compatible storage as timestamped
tar.gz archives, restores them with a chunked, retrying downloader,
installs Modrinth and CurseForge modpacks as polled background jobs,
and exposes a filesystem gateway sandboxed to a set of managed roots.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from worldvault.builder import create_config

# Core functions
from worldvault.core import (
    initialize_state,
    shutdown_state,
    get_stats,
)

# Environment-based configuration
from worldvault.env import create_config_from_env, maintenance_mode_from_env

__all__ = [
    # Version
    "__version__",
    # Configuration creation (primary user-facing APIs)
    "create_config",
    "create_config_from_env",
    "maintenance_mode_from_env",
    # Core state functions
    "initialize_state",
    "shutdown_state",
    "get_stats",
]
