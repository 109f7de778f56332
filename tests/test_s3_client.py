# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3ObjectStore tests against a local moto server.

aiobotocore talks real HTTP, so moto runs as a threaded server rather
than as an in-process mock.
"""

import os
import shutil
from pathlib import Path

import pytest
import pytest_asyncio

from worldvault.backup import backup_now, restore
from worldvault.builder import create_config
from worldvault.core import initialize_state, shutdown_state
from worldvault.exceptions import NotFoundError, RangeNotSatisfiableError
from worldvault.jobs import InMemoryJobRepository
from worldvault.storage.client import S3ObjectStore

moto_server = pytest.importorskip("moto.server")


@pytest.fixture(scope="module")
def s3_endpoint():
    server = moto_server.ThreadedMotoServer(ip_address="127.0.0.1", port=0)
    server.start()
    host, port = server.get_host_and_port()
    yield f"http://{host}:{port}"
    server.stop()


@pytest.fixture
def s3_config(s3_endpoint, temp_dir: Path):
    root = temp_dir / "srv"
    (root / "data" / "mods").mkdir(parents=True)
    return create_config(
        "test-bucket",
        endpoint_url=s3_endpoint,
        region="us-east-1",
        access_key_id="testing",
        secret_access_key="testing",
        managed_roots=[str(root)],
        data_dir=root / "data",
        temp_dir=temp_dir / "scratch",
        large_file_threshold=256,
        download_chunk_size=100,
        retry_base_delay=0,
        status_log_interval=0,
    )


@pytest_asyncio.fixture
async def store(s3_config):
    store = S3ObjectStore(s3_config)
    async with store.client() as s3_client:
        try:
            await s3_client.create_bucket(Bucket=s3_config.bucket)
        except s3_client.exceptions.BucketAlreadyOwnedByYou:
            pass
    return store


@pytest.mark.asyncio
async def test_put_head_get(store):
    await store.put("backups/a.tar.gz", b"0123456789", "application/x-tar")

    assert await store.head_size("backups/a.tar.gz") == 10
    assert await store.get("backups/a.tar.gz") == b"0123456789"
    assert await store.get_range("backups/a.tar.gz", 2, 5) == b"2345"


@pytest.mark.asyncio
async def test_put_streams_open_file(store, temp_dir: Path):
    source = temp_dir / "archive.bin"
    source.write_bytes(b"x" * 1000)

    with open(source, "rb") as body:
        await store.put("backups/file.tar.gz", body, "application/x-tar")

    assert await store.head_size("backups/file.tar.gz") == 1000


@pytest.mark.asyncio
async def test_missing_object_is_not_found(store):
    with pytest.raises(NotFoundError):
        await store.head_size("backups/missing.tar.gz")

    with pytest.raises(NotFoundError):
        await store.get("backups/missing.tar.gz")


@pytest.mark.asyncio
async def test_unsatisfiable_range(store):
    await store.put("backups/tiny.tar.gz", b"abc", "application/x-tar")

    with pytest.raises(RangeNotSatisfiableError):
        await store.get_range("backups/tiny.tar.gz", 10, 20)


@pytest.mark.asyncio
async def test_list_by_prefix(store):
    await store.put("backups/list/1", b"a", "text/plain")
    await store.put("backups/list/2", b"bb", "text/plain")
    await store.put("other/3", b"ccc", "text/plain")

    objects = await store.list("backups/list/")

    assert [(o.key, o.size) for o in objects] == [("backups/list/1", 1), ("backups/list/2", 2)]
    assert all(o.last_modified is not None for o in objects)


@pytest.mark.asyncio
@pytest.mark.skipif(shutil.which("tar") is None, reason="tar binary required")
async def test_backup_and_chunked_restore_against_s3(s3_config, store):
    world = s3_config.data_dir / "world"
    world.mkdir()
    # Random bytes keep the archive above the 256-byte chunking threshold
    (world / "region.mca").write_bytes(os.urandom(4096))
    (world / "level.dat").write_bytes(b"original")

    state = await initialize_state(
        s3_config,
        object_store=store,
        jobs=InMemoryJobRepository(),
        maintenance_mode=lambda: True,
    )
    try:
        backup = await backup_now(s3_config, state, str(world))
        assert backup["size"] > s3_config.large_file_threshold

        (world / "level.dat").write_bytes(b"changed")
        result = await restore(s3_config, state, str(world), backup["backup_path"])

        assert result["size"] == backup["size"]
        assert (world / "level.dat").read_bytes() == b"original"
    finally:
        await shutdown_state(state)
