# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Server profiles a finished install can suggest.

Profile ids follow ``<loader>-<major>-<minor>-<patch>``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class Loader(str, Enum):
    """Server runtimes a pack can target."""

    PAPER = "PAPER"
    FORGE = "FORGE"
    FABRIC = "FABRIC"
    NEOFORGE = "NEOFORGE"


@dataclass(frozen=True)
class ProfileHint:
    profile_id: str
    loader: Loader
    minecraft_version: str


PROFILE_HINTS: Tuple[ProfileHint, ...] = (
    ProfileHint("paper-1-21-10", Loader.PAPER, "1.21.10"),
    ProfileHint("paper-1-21-8", Loader.PAPER, "1.21.8"),
    ProfileHint("paper-1-21-7", Loader.PAPER, "1.21.7"),
    ProfileHint("paper-1-20-6", Loader.PAPER, "1.20.6"),
    ProfileHint("paper-1-19-4", Loader.PAPER, "1.19.4"),
    ProfileHint("forge-1-20-1", Loader.FORGE, "1.20.1"),
    ProfileHint("forge-1-19-2", Loader.FORGE, "1.19.2"),
    ProfileHint("forge-1-18-2", Loader.FORGE, "1.18.2"),
    ProfileHint("forge-1-16-5", Loader.FORGE, "1.16.5"),
    ProfileHint("neoforge-1-21-1", Loader.NEOFORGE, "1.21.1"),
    ProfileHint("neoforge-1-20-4", Loader.NEOFORGE, "1.20.4"),
    ProfileHint("neoforge-1-20-1", Loader.NEOFORGE, "1.20.1"),
    ProfileHint("fabric-1-21-1", Loader.FABRIC, "1.21.1"),
    ProfileHint("fabric-1-20-1", Loader.FABRIC, "1.20.1"),
    ProfileHint("fabric-1-19-2", Loader.FABRIC, "1.19.2"),
    ProfileHint("fabric-1-18-2", Loader.FABRIC, "1.18.2"),
)


def recommend_profile(loader: Loader | None, minecraft_version: str | None) -> str | None:
    """Exact-match lookup; None when either input is missing or unknown."""
    if loader is None or not minecraft_version:
        return None
    for hint in PROFILE_HINTS:
        if hint.loader == loader and hint.minecraft_version == minecraft_version:
            return hint.profile_id
    return None
