# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for worldvault tests.

Provides an in-memory object store with failure injection, a mock HTTP
server for modpack providers, and configuration/state helpers.
"""

import asyncio
import tempfile
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Tuple

import httpx
import pytest
import pytest_asyncio

from worldvault.builder import create_config
from worldvault.core import initialize_state, shutdown_state
from worldvault.exceptions import NotFoundError, RangeNotSatisfiableError, StorageError
from worldvault.jobs import InMemoryJobRepository, SqliteJobRepository, init_jobs_db
from worldvault.storage.client import ObjectInfo


class FakeObjectStore:
    """
    In-memory ObjectStore.

    ``range_failures`` maps a range start offset to the number of times
    that range should fail before succeeding.
    """

    def __init__(self) -> None:
        self.objects: Dict[str, Tuple[bytes, datetime | None]] = {}
        self.content_types: Dict[str, str] = {}
        self.calls: List[Tuple[str, str]] = []
        self.range_calls: List[Tuple[int, int]] = []
        self.range_failures: Dict[int, int] = {}
        self.unsatisfiable_starts: set = set()
        self.in_flight = 0
        self.max_in_flight = 0

    def add(self, key: str, data: bytes, last_modified: datetime | None = None) -> None:
        self.objects[key] = (data, last_modified)

    def data(self, key: str) -> bytes:
        return self.objects[key][0]

    def _lookup(self, key: str) -> bytes:
        if key not in self.objects:
            raise NotFoundError(f"Object not found: {key}")
        return self.objects[key][0]

    async def put(self, key: str, body: Any, content_type: str) -> None:
        self.calls.append(("put", key))
        data = body if isinstance(body, bytes) else body.read()
        self.objects[key] = (data, datetime.now(UTC))
        self.content_types[key] = content_type

    async def head_size(self, key: str) -> int:
        self.calls.append(("head", key))
        return len(self._lookup(key))

    async def get(self, key: str) -> bytes:
        self.calls.append(("get", key))
        return self._lookup(key)

    async def get_range(self, key: str, start: int, end: int) -> bytes:
        self.calls.append(("get_range", key))
        self.range_calls.append((start, end))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if start in self.unsatisfiable_starts:
                raise RangeNotSatisfiableError(f"Requested range not satisfiable for {key}")
            remaining = self.range_failures.get(start, 0)
            if remaining:
                self.range_failures[start] = remaining - 1
                raise StorageError(f"get_range failed for {key}: connection reset")
            return self._lookup(key)[start : end + 1]
        finally:
            self.in_flight -= 1

    async def list(self, prefix: str) -> List[ObjectInfo]:
        self.calls.append(("list", prefix))
        return [
            ObjectInfo(key=key, size=len(data), last_modified=modified)
            for key, (data, modified) in sorted(self.objects.items())
            if key.startswith(prefix)
        ]


class MaintenanceSwitch:
    """Stand-in for the external maintenance flag."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def __call__(self) -> bool:
        return self.enabled


class PackServer:
    """
    Routes for httpx.MockTransport keyed by full URL (query excluded).

    Values are httpx.Response objects or callables taking the request.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, Any] = {}
        self.requests: List[httpx.Request] = []

    def json(self, url: str, payload: Any, status_code: int = 200) -> None:
        self.routes[url] = lambda request: httpx.Response(status_code, json=payload)

    def content(self, url: str, data: bytes, status_code: int = 200) -> None:
        self.routes[url] = lambda request: httpx.Response(status_code, content=data)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        return route(request)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def server_root(temp_dir: Path) -> Path:
    """Managed root holding the server data directory."""
    root = temp_dir / "srv"
    (root / "data" / "mods").mkdir(parents=True)
    return root


@pytest.fixture
def test_config(temp_dir: Path, server_root: Path):
    """Configuration with tiny transfer thresholds and no retry delay."""
    return create_config(
        "test-bucket",
        managed_roots=[str(server_root)],
        data_dir=server_root / "data",
        temp_dir=temp_dir / "scratch",
        large_file_threshold=64,
        download_chunk_size=16,
        max_concurrent_downloads=2,
        max_retries=3,
        retry_base_delay=0,
        status_log_interval=0,
    )


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def maintenance() -> MaintenanceSwitch:
    return MaintenanceSwitch(enabled=True)


@pytest.fixture
def pack_server() -> PackServer:
    return PackServer()


@pytest_asyncio.fixture
async def test_state(test_config, object_store, maintenance, pack_server):
    """Initialized state wired to the fakes."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(pack_server.handler))
    state = await initialize_state(
        test_config,
        object_store=object_store,
        jobs=InMemoryJobRepository(),
        http_client=client,
        maintenance_mode=maintenance,
    )
    yield state
    await shutdown_state(state, drain_timeout=5)
    await client.aclose()


@pytest_asyncio.fixture
async def sqlite_state(test_state, temp_dir: Path):
    """test_state backed by an aiosqlite job repository."""
    db_path = temp_dir / "jobs.db"
    await init_jobs_db(db_path)
    test_state["jobs"] = SqliteJobRepository(db_path)
    return test_state


@pytest.fixture
def wait_for_job() -> Callable:
    """Return a coroutine function that polls a job until it is terminal."""

    async def _wait(state, job_id: str, timeout: float = 10.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            job = await state["jobs"].get(job_id)
            if job is not None and job.is_terminal:
                return job
            if loop.time() > deadline:
                raise AssertionError(f"Job {job_id} did not finish: {job}")
            await asyncio.sleep(0.01)

    return _wait
