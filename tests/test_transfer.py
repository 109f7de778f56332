# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Chunked transfer engine tests.

The test config uses a 64-byte threshold, 16-byte parts, batches of two
and three attempts per part with no backoff delay.
"""

from pathlib import Path

import pytest

from worldvault.exceptions import RangeNotSatisfiableError, StorageError
from worldvault.storage import transfer
from worldvault.storage.transfer import (
    ARCHIVE_CONTENT_TYPE,
    TransferPart,
    download_object,
    download_range_with_retry,
    plan_parts,
    upload_file,
)

PAYLOAD = bytes(range(100))


def test_plan_parts_covers_object_exactly(temp_dir: Path):
    destination = temp_dir / "world.tar.gz"
    parts = plan_parts(100, 30, destination)

    assert [(p.start, p.end) for p in parts] == [(0, 29), (30, 59), (60, 89), (90, 99)]
    assert [p.part_number for p in parts] == [1, 2, 3, 4]
    assert sum(p.length for p in parts) == 100
    assert parts[0].temp_path == temp_dir / "world.tar.gz.part0"
    assert parts[3].temp_path == temp_dir / "world.tar.gz.part3"


def test_plan_parts_empty_object(temp_dir: Path):
    assert plan_parts(0, 16, temp_dir / "empty") == []


@pytest.mark.asyncio
async def test_upload_file_streams_and_returns_size(object_store, temp_dir: Path):
    source = temp_dir / "archive.tar.gz"
    source.write_bytes(PAYLOAD)

    size = await upload_file(object_store, "backups/x.tar.gz", source)

    assert size == 100
    assert object_store.data("backups/x.tar.gz") == PAYLOAD
    assert object_store.content_types["backups/x.tar.gz"] == ARCHIVE_CONTENT_TYPE


@pytest.mark.asyncio
async def test_small_object_uses_single_request(object_store, test_config, temp_dir: Path):
    object_store.add("backups/small.tar.gz", PAYLOAD[:40])
    destination = temp_dir / "small.tar.gz"

    result = await download_object(object_store, "backups/small.tar.gz", destination, test_config)

    assert not result.chunked
    assert result.parts == 1
    assert result.size_matches
    assert destination.read_bytes() == PAYLOAD[:40]
    assert object_store.range_calls == []


@pytest.mark.asyncio
async def test_large_object_is_downloaded_in_batched_parts(object_store, test_config, temp_dir: Path):
    object_store.add("backups/big.tar.gz", PAYLOAD)
    destination = temp_dir / "big.tar.gz"
    progress = []

    async def on_progress(completed: int, total: int) -> None:
        progress.append((completed, total))

    result = await download_object(
        object_store, "backups/big.tar.gz", destination, test_config, on_progress=on_progress
    )

    assert result.chunked
    assert result.parts == 7
    assert destination.read_bytes() == PAYLOAD
    assert progress == [(2, 7), (4, 7), (6, 7), (7, 7)]
    assert object_store.max_in_flight <= test_config.max_concurrent_downloads
    assert not list(temp_dir.glob("big.tar.gz.part*"))


@pytest.mark.asyncio
async def test_threshold_is_inclusive(object_store, test_config, temp_dir: Path):
    object_store.add("backups/edge.tar.gz", PAYLOAD[:64])

    result = await download_object(object_store, "backups/edge.tar.gz", temp_dir / "edge", test_config)

    assert result.chunked
    assert result.parts == 4
    assert (temp_dir / "edge").read_bytes() == PAYLOAD[:64]


@pytest.mark.asyncio
async def test_one_byte_below_threshold_is_single_shot(object_store, test_config, temp_dir: Path):
    object_store.add("backups/edge.tar.gz", PAYLOAD[:63])

    result = await download_object(object_store, "backups/edge.tar.gz", temp_dir / "edge", test_config)

    assert not result.chunked
    assert (temp_dir / "edge").read_bytes() == PAYLOAD[:63]


@pytest.mark.asyncio
async def test_transient_part_failure_is_retried(object_store, test_config, temp_dir: Path):
    object_store.add("backups/big.tar.gz", PAYLOAD)
    object_store.range_failures[16] = 2
    destination = temp_dir / "big.tar.gz"

    await download_object(object_store, "backups/big.tar.gz", destination, test_config)

    assert destination.read_bytes() == PAYLOAD
    assert object_store.range_calls.count((16, 31)) == 3
    # Other parts were fetched once each
    assert object_store.range_calls.count((0, 15)) == 1


@pytest.mark.asyncio
async def test_exhausted_part_fails_download_and_cleans_up(object_store, test_config, temp_dir: Path):
    object_store.add("backups/big.tar.gz", PAYLOAD)
    object_store.range_failures[16] = 3
    destination = temp_dir / "big.tar.gz"

    with pytest.raises(StorageError) as exc_info:
        await download_object(object_store, "backups/big.tar.gz", destination, test_config)

    assert "part 2/7 after 3 attempts" in exc_info.value.message
    assert not destination.exists()
    assert not list(temp_dir.glob("big.tar.gz.part*"))
    # The failing batch stopped the download before later batches ran
    assert (32, 47) not in object_store.range_calls


@pytest.mark.asyncio
async def test_unsatisfiable_range_is_not_retried(object_store, temp_dir: Path):
    object_store.add("backups/big.tar.gz", PAYLOAD)
    object_store.unsatisfiable_starts.add(0)
    part = TransferPart(part_number=1, start=0, end=15, temp_path=temp_dir / "p0")

    with pytest.raises(RangeNotSatisfiableError):
        await download_range_with_retry(object_store, "backups/big.tar.gz", part, 1, 5, 0)

    assert object_store.range_calls == [(0, 15)]


@pytest.mark.asyncio
async def test_retry_backoff_doubles(object_store, temp_dir: Path, monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr(transfer.asyncio, "sleep", fake_sleep)
    object_store.add("backups/big.tar.gz", PAYLOAD)
    object_store.range_failures[0] = 10
    part = TransferPart(part_number=1, start=0, end=15, temp_path=temp_dir / "p0")

    with pytest.raises(StorageError):
        await download_range_with_retry(object_store, "backups/big.tar.gz", part, 1, 3, 0.5)

    # No wait after the final attempt; the fake store's own yield counts as 0
    assert [d for d in delays if d] == [0.5, 1.0]


@pytest.mark.asyncio
async def test_size_mismatch_is_reported_not_raised(object_store, test_config, temp_dir: Path):
    object_store.add("backups/short.tar.gz", PAYLOAD[:10])
    destination = temp_dir / "short.tar.gz"

    result = await download_object(object_store, "backups/short.tar.gz", destination, test_config, size=20)

    assert not result.size_matches
    assert result.expected_size == 20
    assert result.actual_size == 10
