# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Modpack Engine - Modrinth and CurseForge pack installs.
"""

from worldvault.modpack.installer import (
    get_install_status,
    start_curseforge_install,
    start_modrinth_install,
    verify_hashes,
)

from worldvault.modpack.profiles import (
    PROFILE_HINTS,
    Loader,
    recommend_profile,
)

__all__ = [
    # Installer
    "get_install_status",
    "start_curseforge_install",
    "start_modrinth_install",
    "verify_hashes",
    # Profiles
    "PROFILE_HINTS",
    "Loader",
    "recommend_profile",
]
