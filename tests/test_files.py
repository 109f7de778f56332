# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Filesystem gateway tests.

Every path must stay inside a managed root, and every mutation must be
refused unless maintenance mode is on.
"""

from pathlib import Path

import pytest

from worldvault.exceptions import (
    MaintenanceRequiredError,
    NotFoundError,
    PathOutsideRootsError,
    ValidationError,
)
from worldvault.files import (
    create_directory,
    delete_path,
    list_directory,
    read_file,
    resolve_managed_path,
    write_file,
)

ROOTS = ("/data", "/srv/configs")


# ============================================================================
# Path resolution
# ============================================================================


def test_resolve_path_under_root():
    resolved = resolve_managed_path(ROOTS, "/data/world/level.dat")

    assert resolved.absolute == "/data/world/level.dat"
    assert resolved.root == "/data"
    assert resolved.parent == "/data/world"


def test_relative_paths_are_anchored_at_filesystem_root():
    assert resolve_managed_path(ROOTS, "srv/configs/server.properties").root == "/srv/configs"


def test_parent_segments_cannot_escape():
    with pytest.raises(PathOutsideRootsError):
        resolve_managed_path(ROOTS, "/data/../etc/passwd")

    with pytest.raises(PathOutsideRootsError):
        resolve_managed_path(ROOTS, "/database")


def test_collapsed_parent_segments_inside_root_are_allowed():
    assert resolve_managed_path(ROOTS, "/data/world/../mods").absolute == "/data/mods"


def test_missing_path_falls_back_to_first_root():
    resolved = resolve_managed_path(ROOTS, None)

    assert resolved.absolute == "/data"
    assert resolved.parent is None


def test_missing_path_without_fallback():
    with pytest.raises(ValidationError):
        resolve_managed_path(ROOTS, "  ", allow_root_fallback=False)


def test_slash_root_contains_everything():
    assert resolve_managed_path(("/",), "/etc/hosts").root == "/"


# ============================================================================
# Operations
# ============================================================================


@pytest.mark.asyncio
async def test_list_directory_orders_directories_first(test_config, server_root: Path):
    data = server_root / "data"
    (data / "server.properties").write_text("motd=hi")
    (data / "world").mkdir()

    listing = await list_directory(test_config, str(data))

    names = [e["name"] for e in listing["entries"]]
    assert names == ["mods", "world", "server.properties"]
    props = listing["entries"][-1]
    assert props["type"] == "file"
    assert props["size"] == len("motd=hi")
    assert listing["entries"][0]["size"] is None
    assert listing["parent"] == str(server_root)
    assert listing["root"] == str(server_root)


@pytest.mark.asyncio
async def test_list_directory_defaults_to_first_root(test_config, server_root: Path):
    listing = await list_directory(test_config)

    assert listing["path"] == str(server_root)
    assert listing["parent"] is None


@pytest.mark.asyncio
async def test_list_missing_directory(test_config, server_root: Path):
    with pytest.raises(NotFoundError):
        await list_directory(test_config, str(server_root / "nope"))


@pytest.mark.asyncio
async def test_list_outside_roots(test_config):
    with pytest.raises(PathOutsideRootsError):
        await list_directory(test_config, "/etc")


@pytest.mark.asyncio
async def test_read_file(test_config, server_root: Path):
    target = server_root / "data" / "ops.json"
    target.write_bytes(b"[]")

    assert await read_file(test_config, str(target)) == b"[]"

    with pytest.raises(NotFoundError):
        await read_file(test_config, str(server_root / "data" / "missing.json"))


@pytest.mark.asyncio
async def test_write_requires_maintenance(test_config, server_root: Path, maintenance):
    maintenance.enabled = False
    target = server_root / "data" / "whitelist.json"

    with pytest.raises(MaintenanceRequiredError):
        await write_file(test_config, maintenance, str(target), b"[]")

    assert not target.exists()


@pytest.mark.asyncio
async def test_write_creates_parents(test_config, server_root: Path, maintenance):
    target = server_root / "data" / "config" / "nested" / "mod.toml"

    result = await write_file(test_config, maintenance, str(target), b"enabled = true")

    assert result == {"success": True, "path": str(target)}
    assert target.read_bytes() == b"enabled = true"


@pytest.mark.asyncio
async def test_delete_directory_recursively(test_config, server_root: Path, maintenance):
    world = server_root / "data" / "world"
    (world / "region").mkdir(parents=True)
    (world / "region" / "r.0.0.mca").write_bytes(b"\0" * 8)

    await delete_path(test_config, maintenance, str(world))

    assert not world.exists()


@pytest.mark.asyncio
async def test_delete_missing_path_is_not_an_error(test_config, server_root: Path, maintenance):
    result = await delete_path(test_config, maintenance, str(server_root / "data" / "ghost"))
    assert result["success"] is True


@pytest.mark.asyncio
async def test_delete_refuses_managed_root(test_config, server_root: Path, maintenance):
    with pytest.raises(ValidationError):
        await delete_path(test_config, maintenance, str(server_root))

    assert server_root.exists()


@pytest.mark.asyncio
async def test_delete_requires_maintenance(test_config, server_root: Path, maintenance):
    maintenance.enabled = False
    with pytest.raises(MaintenanceRequiredError):
        await delete_path(test_config, maintenance, str(server_root / "data" / "mods"))

    assert (server_root / "data" / "mods").exists()


@pytest.mark.asyncio
async def test_create_directory(test_config, server_root: Path, maintenance):
    target = server_root / "data" / "plugins" / "cfg"

    await create_directory(test_config, maintenance, str(target))
    assert target.is_dir()

    with pytest.raises(ValidationError):
        await create_directory(test_config, maintenance, "")
