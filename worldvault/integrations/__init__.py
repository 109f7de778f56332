# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI admin routes and lifespan.
"""

from worldvault.integrations.fastapi import (
    get_worldvault_config,
    get_worldvault_state,
    register_worldvault_routes,
    worldvault_lifespan,
)

__all__ = [
    "get_worldvault_config",
    "get_worldvault_state",
    "register_worldvault_routes",
    "worldvault_lifespan",
]
