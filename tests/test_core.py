# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Runtime state, background tasks and archive helper tests.
"""

import asyncio
import io
import zipfile
from pathlib import Path

import pytest

from worldvault.archive import extract_zip
from worldvault.core import get_stats, launch_background, log_status, shutdown_state
from worldvault.exceptions import ArchiveError


@pytest.mark.asyncio
async def test_initial_stats(test_state):
    stats = get_stats(test_state)

    assert stats == {
        "requests": 0,
        "backups": 0,
        "restores": 0,
        "active_restores": 0,
        "installs": 0,
        "active_install_id": None,
        "background_jobs": 0,
        "last_error": None,
    }
    log_status(test_state)


@pytest.mark.asyncio
async def test_background_tasks_are_tracked_until_done(test_state):
    release = asyncio.Event()

    async def work():
        await release.wait()

    task = launch_background(test_state, work(), "backup-1")
    assert task in test_state["background_tasks"]
    assert get_stats(test_state)["background_jobs"] == 1

    release.set()
    await task
    await asyncio.sleep(0)
    assert test_state["background_tasks"] == set()


@pytest.mark.asyncio
async def test_crashing_background_task_is_discarded(test_state):
    async def boom():
        raise RuntimeError("unexpected")

    task = launch_background(test_state, boom(), "backup-2")
    with pytest.raises(RuntimeError):
        await task
    await asyncio.sleep(0)

    assert test_state["background_tasks"] == set()


@pytest.mark.asyncio
async def test_shutdown_leaves_slow_jobs_running(test_state):
    release = asyncio.Event()

    async def slow():
        await release.wait()

    task = launch_background(test_state, slow(), "backup-3")
    await shutdown_state(test_state, drain_timeout=0.01)

    assert not task.done()
    release.set()
    await task


def _zip_bytes(names) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name in names:
            zf.writestr(name, "x")
    return buffer.getvalue()


@pytest.mark.asyncio
async def test_extract_zip(temp_dir: Path):
    archive = temp_dir / "pack.zip"
    archive.write_bytes(_zip_bytes(["manifest.json", "overrides/config/a.toml"]))

    count = await extract_zip(archive, temp_dir / "out")

    assert count == 2
    assert (temp_dir / "out" / "overrides" / "config" / "a.toml").exists()


@pytest.mark.asyncio
async def test_extract_zip_rejects_escaping_entries(temp_dir: Path):
    archive = temp_dir / "evil.zip"
    archive.write_bytes(_zip_bytes(["manifest.json", "../../escape.txt"]))

    with pytest.raises(ArchiveError):
        await extract_zip(archive, temp_dir / "out")

    assert not (temp_dir / "escape.txt").exists()
    assert not (temp_dir / "out" / "manifest.json").exists()


@pytest.mark.asyncio
async def test_extract_zip_rejects_non_zip(temp_dir: Path):
    archive = temp_dir / "pack.zip"
    archive.write_bytes(b"not a zip")

    with pytest.raises(ArchiveError):
        await extract_zip(archive, temp_dir / "out")
