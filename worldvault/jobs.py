# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
worldvault Jobs - Records for background backup, restore and install work.

A job is created when work is triggered and mutated only by the task
that owns it. HTTP pollers only read. Two state machines apply, both
strictly forward-moving and terminal once reached:

    backup / restore:  pending -> running -> success | failed
    package-install:   pending -> downloading -> installing -> completed | failed

Any non-terminal state may also move straight to failed.
"""

import copy
import json
import secrets
import string
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Protocol

import aiosqlite
import structlog

from worldvault.exceptions import InvalidJobTransitionError, NotFoundError

logger = structlog.get_logger()

_BASE36 = string.digits + string.ascii_lowercase


class JobKind(str, Enum):
    """What a job does."""

    BACKUP = "backup"
    RESTORE = "restore"
    PACKAGE_INSTALL = "package-install"


class JobStatus(str, Enum):
    """Union of the backup and install status vocabularies."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    DOWNLOADING = "downloading"
    INSTALLING = "installing"
    COMPLETED = "completed"
    FAILED = "failed"


_ARCHIVE_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.SUCCESS, JobStatus.FAILED},
    JobStatus.SUCCESS: set(),
    JobStatus.FAILED: set(),
}

_INSTALL_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.DOWNLOADING, JobStatus.FAILED},
    JobStatus.DOWNLOADING: {JobStatus.INSTALLING, JobStatus.FAILED},
    JobStatus.INSTALLING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

TRANSITIONS = {
    JobKind.BACKUP: _ARCHIVE_TRANSITIONS,
    JobKind.RESTORE: _ARCHIVE_TRANSITIONS,
    JobKind.PACKAGE_INSTALL: _INSTALL_TRANSITIONS,
}

TERMINAL_STATUSES = {JobStatus.SUCCESS, JobStatus.COMPLETED, JobStatus.FAILED}


def now_ms() -> int:
    """Wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_job_id(source: str) -> str:
    """Build an id of the form ``{source}-{base36 ms}-{6 random base36 chars}``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{source}-{_to_base36(now_ms())}-{suffix}"


@dataclass
class Job:
    """One unit of background work and its observable progress."""

    id: str
    kind: JobKind
    status: JobStatus = JobStatus.PENDING
    started_at: int = field(default_factory=now_ms)
    updated_at: int | None = None
    completed_at: int | None = None
    # Advisory only: phase, currentFile, currentIndex, totalFiles, note
    progress: Dict[str, Any] = field(default_factory=dict)
    result: Dict[str, Any] | None = None
    error: str | None = None
    error_type: str | None = None
    directory: str | None = None
    source: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation with camelCase timestamps."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "startedAt": self.started_at,
            "updatedAt": self.updated_at,
            "completedAt": self.completed_at,
            "progress": dict(self.progress),
            "result": self.result,
            "error": self.error,
            "errorType": self.error_type,
            "directory": self.directory,
            "source": self.source,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Job":
        data = dict(record)
        data["kind"] = JobKind(data["kind"])
        data["status"] = JobStatus(data["status"])
        return cls(**data)


def apply_mutation(job: Job, patch: Callable[[Job], None]) -> Job:
    """
    Apply ``patch`` to a copy of ``job`` and check the state machine.

    Returns:
        The patched copy, with ``updated_at`` refreshed and
        ``completed_at`` set when a terminal state is first reached

    Raises:
        InvalidJobTransitionError: If the job is already terminal or the
            status moves somewhere its state machine does not allow
    """
    if job.is_terminal:
        raise InvalidJobTransitionError(
            f"Job {job.id} is already {job.status.value}",
            details={"job_id": job.id, "status": job.status.value},
        )

    updated = copy.deepcopy(job)
    patch(updated)
    updated.status = JobStatus(updated.status)

    if updated.status != job.status:
        allowed = TRANSITIONS[job.kind].get(job.status, set())
        if updated.status not in allowed:
            raise InvalidJobTransitionError(
                f"Job {job.id} cannot move from {job.status.value} to {updated.status.value}",
                details={
                    "job_id": job.id,
                    "kind": job.kind.value,
                    "from": job.status.value,
                    "to": updated.status.value,
                },
            )

    updated.updated_at = now_ms()
    if updated.is_terminal and updated.completed_at is None:
        updated.completed_at = updated.updated_at
    return updated


class JobRepository(Protocol):
    """Storage for job records."""

    async def create(self, job_id: str, kind: JobKind, **fields: Any) -> Job:
        ...

    async def get(self, job_id: str) -> Job | None:
        ...

    async def mutate(self, job_id: str, patch: Callable[[Job], None]) -> Job:
        ...

    async def list(self, kind: JobKind | None = None) -> List[Job]:
        ...


class InMemoryJobRepository:
    """
    Process-lifetime job store.

    History is lost on restart; callers treat an unknown id as
    "unknown", never as "failed".
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}

    async def create(self, job_id: str, kind: JobKind, **fields: Any) -> Job:
        """Register a pending job; an existing id returns the stored record unchanged."""
        existing = self._jobs.get(job_id)
        if existing is not None:
            return existing
        job = Job(id=job_id, kind=kind, **fields)
        self._jobs[job_id] = job
        logger.debug("job_created", job_id=job_id, kind=kind.value)
        return job

    async def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    async def mutate(self, job_id: str, patch: Callable[[Job], None]) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}", details={"job_id": job_id})
        updated = apply_mutation(job, patch)
        self._jobs[job_id] = updated
        return updated

    async def list(self, kind: JobKind | None = None) -> List[Job]:
        jobs = [j for j in self._jobs.values() if kind is None or j.kind == kind]
        return sorted(jobs, key=lambda j: j.started_at)


async def init_jobs_db(db_path: Path) -> None:
    """
    Initialize the jobs table. This is idempotent.

    Args:
        db_path: Path to the SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at INTEGER NOT NULL,
                record TEXT NOT NULL
            )
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_jobs_started_at
            ON jobs(started_at)
        """)
        await db.commit()

    logger.info("jobs_db_initialized", db_path=str(db_path))


def _serialize(job: Job) -> str:
    record = asdict(job)
    record["kind"] = job.kind.value
    record["status"] = job.status.value
    return json.dumps(record)


class SqliteJobRepository:
    """
    Job store persisted in SQLite, one JSON row per job.

    Lets job history survive a process restart. Call ``init_jobs_db``
    before first use.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    async def _load(self, db: aiosqlite.Connection, job_id: str) -> Job | None:
        cursor = await db.execute("SELECT record FROM jobs WHERE id = ?", (job_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return Job.from_record(json.loads(row[0]))

    async def _store(self, db: aiosqlite.Connection, job: Job) -> None:
        await db.execute(
            """
            INSERT INTO jobs (id, kind, status, started_at, record)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET status = excluded.status, record = excluded.record
            """,
            (job.id, job.kind.value, job.status.value, job.started_at, _serialize(job)),
        )

    async def create(self, job_id: str, kind: JobKind, **fields: Any) -> Job:
        async with aiosqlite.connect(self.db_path) as db:
            existing = await self._load(db, job_id)
            if existing is not None:
                return existing
            job = Job(id=job_id, kind=kind, **fields)
            await self._store(db, job)
            await db.commit()

        logger.debug("job_created", job_id=job_id, kind=kind.value, store="sqlite")
        return job

    async def get(self, job_id: str) -> Job | None:
        async with aiosqlite.connect(self.db_path) as db:
            return await self._load(db, job_id)

    async def mutate(self, job_id: str, patch: Callable[[Job], None]) -> Job:
        async with aiosqlite.connect(self.db_path) as db:
            job = await self._load(db, job_id)
            if job is None:
                raise NotFoundError(f"Job not found: {job_id}", details={"job_id": job_id})
            updated = apply_mutation(job, patch)
            await self._store(db, updated)
            await db.commit()
        return updated

    async def list(self, kind: JobKind | None = None) -> List[Job]:
        async with aiosqlite.connect(self.db_path) as db:
            if kind is None:
                cursor = await db.execute("SELECT record FROM jobs ORDER BY started_at")
            else:
                cursor = await db.execute(
                    "SELECT record FROM jobs WHERE kind = ? ORDER BY started_at",
                    (kind.value,),
                )
            rows = await cursor.fetchall()
        return [Job.from_record(json.loads(row[0])) for row in rows]


def error_message(error: BaseException) -> str:
    """Message stored on a failed job, without the details suffix."""
    message = getattr(error, "message", None)
    return message if isinstance(message, str) else (str(error) or error.__class__.__name__)


def failure_patch(error: BaseException, prefix: str = "") -> Callable[[Job], None]:
    """Build a mutate patch that moves a job to failed with ``error`` recorded."""
    message = f"{prefix}{error_message(error)}"

    def patch(job: Job) -> None:
        job.status = JobStatus.FAILED
        job.error = message
        job.error_type = error.__class__.__name__
        job.progress = {"phase": "failed", "note": message}

    return patch
