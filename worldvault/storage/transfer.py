# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Chunked Transfer Engine - Reliable movement of large archives.

Uploads are always single-shot: the archive is streamed from disk and
the store handles large-object multiplexing itself.

Downloads probe the object size first. Objects below the configured
threshold are fetched in one request; larger ones are split into
fixed-size byte ranges that are downloaded in bounded batches, each
part retried independently with exponential backoff, then merged in
ascending part order. A transient failure therefore costs one part,
not a restart of a multi-gigabyte transfer.
"""

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List

import aiofiles
import structlog

from worldvault.config import WorldVaultConfig
from worldvault.exceptions import RangeNotSatisfiableError, StorageError, WorldVaultError
from worldvault.storage.client import ObjectStore

logger = structlog.get_logger()

ARCHIVE_CONTENT_TYPE = "application/x-tar"

# Awaited with (completed_parts, total_parts) after each batch
ProgressCallback = Callable[[int, int], Awaitable[None]]


@dataclass(frozen=True)
class TransferPart:
    """One byte range of a remote object, staged in its own temp file."""

    part_number: int  # 1-based
    start: int
    end: int  # inclusive
    temp_path: Path

    @property
    def length(self) -> int:
        return self.end - self.start + 1


@dataclass
class DownloadResult:
    """Outcome of download_object."""

    key: str
    destination: Path
    expected_size: int
    actual_size: int
    chunked: bool
    parts: int

    @property
    def size_matches(self) -> bool:
        return self.expected_size == self.actual_size


def plan_parts(size: int, chunk_size: int, destination: Path) -> List[TransferPart]:
    """
    Partition ``[0, size)`` into chunk-sized parts.

    The last part may be shorter. Part ``i`` (0-based) is staged at
    ``<destination>.part<i>``.
    """
    if size <= 0:
        return []
    count = -(-size // chunk_size)
    parts: List[TransferPart] = []
    for index in range(count):
        start = index * chunk_size
        end = min(start + chunk_size, size) - 1
        parts.append(
            TransferPart(
                part_number=index + 1,
                start=start,
                end=end,
                temp_path=destination.with_name(f"{destination.name}.part{index}"),
            )
        )
    return parts


async def upload_file(
    store: ObjectStore,
    key: str,
    path: Path,
    content_type: str = ARCHIVE_CONTENT_TYPE,
) -> int:
    """
    Stream a local file to the object store in one request.

    Returns:
        Number of bytes uploaded
    """
    size = path.stat().st_size
    started = time.monotonic()

    logger.info("upload_started", key=key, path=str(path), size=size)

    with open(path, "rb") as body:
        await store.put(key, body, content_type)

    logger.info(
        "upload_completed",
        key=key,
        size=size,
        duration=round(time.monotonic() - started, 2),
    )
    return size


async def download_range_with_retry(
    store: ObjectStore,
    key: str,
    part: TransferPart,
    total_parts: int,
    max_retries: int,
    base_delay: float,
) -> bytes:
    """
    Download one part, retrying transport failures.

    Waits ``base_delay * 2**(attempt - 1)`` seconds between attempts and
    not after the last one. A short or long body is only logged: the
    store already accepted the range.

    Raises:
        RangeNotSatisfiableError: Immediately, the range will not become valid
        StorageError: After ``max_retries`` failed attempts, naming the part
    """
    last_error: Exception | None = None

    for attempt in range(1, max_retries + 1):
        try:
            data = await store.get_range(key, part.start, part.end)
        except RangeNotSatisfiableError:
            raise
        except (StorageError, OSError, asyncio.TimeoutError) as e:
            last_error = e
            logger.warning(
                "part_download_failed",
                key=key,
                part_number=part.part_number,
                total_parts=total_parts,
                attempt=attempt,
                max_retries=max_retries,
                error=str(e),
            )
            if attempt < max_retries:
                await asyncio.sleep(base_delay * 2 ** (attempt - 1))
            continue

        if len(data) != part.length:
            logger.warning(
                "part_size_mismatch",
                key=key,
                part_number=part.part_number,
                total_parts=total_parts,
                expected=part.length,
                actual=len(data),
            )
        else:
            logger.debug(
                "part_downloaded",
                key=key,
                part_number=part.part_number,
                total_parts=total_parts,
                attempt=attempt,
                size=len(data),
            )
        return data

    raise StorageError(
        f"Failed to download part {part.part_number}/{total_parts} "
        f"after {max_retries} attempts: {last_error}",
        details={
            "key": key,
            "part_number": part.part_number,
            "total_parts": total_parts,
            "attempts": max_retries,
        },
    )


async def _download_part(
    store: ObjectStore,
    key: str,
    part: TransferPart,
    total_parts: int,
    config: WorldVaultConfig,
) -> None:
    data = await download_range_with_retry(
        store,
        key,
        part,
        total_parts,
        config.max_retries,
        config.retry_base_delay,
    )
    async with aiofiles.open(part.temp_path, "wb") as f:
        await f.write(data)


def _remove_part_files(parts: List[TransferPart]) -> None:
    for part in parts:
        try:
            part.temp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("part_cleanup_failed", path=str(part.temp_path), error=str(e))


async def _reconstruct(destination: Path, parts: List[TransferPart]) -> None:
    """Concatenate part files into ``destination`` in ascending order."""
    try:
        async with aiofiles.open(destination, "wb") as out:
            for part in parts:
                async with aiofiles.open(part.temp_path, "rb") as f:
                    data = await f.read()
                await out.write(data)
                part.temp_path.unlink(missing_ok=True)
    except OSError as e:
        raise WorldVaultError(
            f"Failed to reconstruct {destination.name} from {len(parts)} parts: {e}",
            details={"destination": str(destination)},
        ) from e


async def download_large_object(
    store: ObjectStore,
    key: str,
    destination: Path,
    size: int,
    config: WorldVaultConfig,
    on_progress: ProgressCallback | None = None,
) -> int:
    """
    Download ``key`` as ranged parts and merge them into ``destination``.

    Parts run in batches of ``max_concurrent_downloads``; a batch starts
    only after every part of the previous batch has settled. Any part
    that exhausts its retries fails the whole download and all staged
    part files are removed.

    Returns:
        Number of parts
    """
    parts = plan_parts(size, config.download_chunk_size, destination)
    total = len(parts)
    batch_size = config.max_concurrent_downloads
    total_batches = -(-total // batch_size)
    started = time.monotonic()

    logger.info(
        "chunked_download_started",
        key=key,
        size=size,
        chunk_size=config.download_chunk_size,
        total_parts=total,
        max_concurrent=batch_size,
        total_batches=total_batches,
    )

    completed = 0
    try:
        for batch_index, offset in enumerate(range(0, total, batch_size), start=1):
            batch = parts[offset : offset + batch_size]
            results = await asyncio.gather(
                *(_download_part(store, key, part, total, config) for part in batch),
                return_exceptions=True,
            )
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                raise failures[0]

            completed += len(batch)
            logger.info(
                "download_batch_completed",
                key=key,
                batch=batch_index,
                total_batches=total_batches,
                completed_parts=completed,
                total_parts=total,
            )
            if on_progress:
                await on_progress(completed, total)

        await _reconstruct(destination, parts)
    except BaseException:
        _remove_part_files(parts)
        raise

    elapsed = time.monotonic() - started
    logger.info(
        "chunked_download_completed",
        key=key,
        total_parts=total,
        duration=round(elapsed, 2),
        mb_per_second=round((size / (1024 * 1024)) / elapsed, 2) if elapsed > 0 else None,
    )
    return total


async def download_object(
    store: ObjectStore,
    key: str,
    destination: Path,
    config: WorldVaultConfig,
    size: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> DownloadResult:
    """
    Download ``key`` to ``destination``, choosing single-shot or chunked.

    Args:
        store: Object store
        key: Object key
        destination: Local file to create or overwrite
        config: Supplies threshold, chunk size, concurrency and retry settings
        size: Size from an earlier probe; probed with HEAD when omitted
        on_progress: Optional callback for chunked downloads

    Returns:
        DownloadResult. A size mismatch is logged, not raised; callers
        validate the archive itself (e.g. by extracting it).
    """
    expected = size if size is not None else await store.head_size(key)
    chunked = expected >= config.large_file_threshold
    parts = 1

    if chunked:
        parts = await download_large_object(store, key, destination, expected, config, on_progress)
    else:
        logger.info("single_download_started", key=key, size=expected)
        data = await store.get(key)
        async with aiofiles.open(destination, "wb") as f:
            await f.write(data)

    actual = destination.stat().st_size
    if actual != expected:
        logger.warning(
            "download_size_mismatch",
            key=key,
            expected=expected,
            actual=actual,
        )

    return DownloadResult(
        key=key,
        destination=destination,
        expected_size=expected,
        actual_size=actual,
        chunked=chunked,
        parts=parts,
    )
