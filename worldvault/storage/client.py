# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Object Store Client - Thin contract over an S3-compatible API.

The contract is deliberately small (put, head, full get, ranged get,
list) so the transfer engine and the orchestrators can be exercised
against an in-memory store. ``S3ObjectStore`` is the production
implementation on top of aiobotocore; it holds only a session and
creates a client per operation, so one instance is safe to share
across concurrent jobs.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, BinaryIO, List, Protocol

import structlog
from aiobotocore.config import AioConfig
from aiobotocore.session import get_session
from botocore.exceptions import ClientError

from worldvault.config import WorldVaultConfig
from worldvault.exceptions import NotFoundError, RangeNotSatisfiableError, StorageError

logger = structlog.get_logger()

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_RANGE_CODES = {"416", "InvalidRange"}


@dataclass(frozen=True)
class ObjectInfo:
    """One entry of a bucket listing."""

    key: str
    size: int
    last_modified: datetime | None


class ObjectStore(Protocol):
    """Operations the transfer engine and orchestrators rely on."""

    async def put(self, key: str, body: BinaryIO | bytes, content_type: str) -> None:
        ...

    async def head_size(self, key: str) -> int:
        ...

    async def get(self, key: str) -> bytes:
        ...

    async def get_range(self, key: str, start: int, end: int) -> bytes:
        ...

    async def list(self, prefix: str) -> List[ObjectInfo]:
        ...


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _status_code(error: ClientError) -> int | None:
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


class S3ObjectStore:
    """
    aiobotocore-backed object store.

    Every failure surfaces as StorageError; a missing object on HEAD or
    GET raises NotFoundError and an unsatisfiable range raises
    RangeNotSatisfiableError so callers can tell them apart.
    """

    def __init__(self, config: WorldVaultConfig, session: Any | None = None) -> None:
        self._config = config
        self._session = session or get_session()
        self._client_config = AioConfig(
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
            s3={"addressing_style": "path"},
        )

    @property
    def bucket(self) -> str:
        return self._config.bucket

    @asynccontextmanager
    async def client(self) -> AsyncIterator[Any]:
        async with self._session.create_client(
            "s3",
            endpoint_url=self._config.endpoint_url,
            region_name=self._config.region,
            aws_access_key_id=self._config.access_key_id,
            aws_secret_access_key=self._config.secret_access_key,
            config=self._client_config,
        ) as s3_client:
            yield s3_client

    def _translate(self, error: Exception, operation: str, key: str) -> Exception:
        details = {"operation": operation, "key": key, "bucket": self.bucket}
        if isinstance(error, ClientError):
            code = _error_code(error)
            status = _status_code(error)
            details["code"] = code
            details["status"] = status
            if code in _NOT_FOUND_CODES or status == 404:
                return NotFoundError(f"Object not found: {key}", details=details)
            if code in _RANGE_CODES or status == 416:
                return RangeNotSatisfiableError(
                    f"Requested range not satisfiable for {key}", details=details
                )
        return StorageError(f"{operation} failed for {key}: {error}", details=details)

    async def put(self, key: str, body: BinaryIO | bytes, content_type: str) -> None:
        """
        Upload an object in a single request.

        ``body`` may be bytes or an open binary file; files are streamed
        by the HTTP layer rather than read into memory.
        """
        try:
            async with self.client() as s3_client:
                await s3_client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=body,
                    ContentType=content_type,
                )
        except Exception as e:
            raise self._translate(e, "put", key) from e

        logger.debug("object_uploaded", key=key, content_type=content_type)

    async def head_size(self, key: str) -> int:
        """Return the object's size in bytes."""
        try:
            async with self.client() as s3_client:
                response = await s3_client.head_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            raise self._translate(e, "head", key) from e
        return int(response.get("ContentLength", 0))

    async def get(self, key: str) -> bytes:
        """Fetch a whole object."""
        try:
            async with self.client() as s3_client:
                response = await s3_client.get_object(Bucket=self.bucket, Key=key)
                async with response["Body"] as stream:
                    return await stream.read()
        except Exception as e:
            raise self._translate(e, "get", key) from e

    async def get_range(self, key: str, start: int, end: int) -> bytes:
        """Fetch bytes ``start`` through ``end`` inclusive."""
        try:
            async with self.client() as s3_client:
                response = await s3_client.get_object(
                    Bucket=self.bucket,
                    Key=key,
                    Range=f"bytes={start}-{end}",
                )
                async with response["Body"] as stream:
                    return await stream.read()
        except Exception as e:
            raise self._translate(e, "get_range", key) from e

    async def list(self, prefix: str) -> List[ObjectInfo]:
        """List every object under ``prefix`` in key order."""
        objects: List[ObjectInfo] = []
        try:
            async with self.client() as s3_client:
                paginator = s3_client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                    for obj in page.get("Contents", []):
                        objects.append(
                            ObjectInfo(
                                key=obj["Key"],
                                size=int(obj.get("Size", 0)),
                                last_modified=obj.get("LastModified"),
                            )
                        )
        except Exception as e:
            raise self._translate(e, "list", prefix) from e
        return objects
