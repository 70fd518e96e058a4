"""
Job State Store
===============
Per-job durable record store. The single source of truth pollers read.

Contract:
    - put(job_id, record) replaces the whole record (last-write-wins).
      There is no partial-field merge.
    - get(job_id) returns the record, or None when the id is unknown.
      It never raises for a missing id.

Concurrency:
    - Exactly one writer (the orchestrator run) per job id.
    - Readers get last-write-wins snapshots, so no locking is needed.

Backends:
    - InMemoryJobStore: process-local dict (default, tests).
    - FileJobStore: one JSON document per job; each put writes a temp file
      and swaps it in with os.replace, so a reader never sees a half-written
      record.
"""
import asyncio
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, Optional

from app.core.config import JOB_STORE_DIR
from app.models.job_record import JobRecord

logger = logging.getLogger(__name__)

# Ids are uuid hex from the API layer; anything else can't be a file we wrote.
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")


class JobStore(ABC):
    """Async get/put interface shared by all backends."""

    @abstractmethod
    async def get(self, job_id: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    async def put(self, job_id: str, record: JobRecord) -> None:
        ...


class InMemoryJobStore(JobStore):
    """Process-local store. Records are copied in and out so callers can't alias them."""

    def __init__(self) -> None:
        self._records: Dict[str, JobRecord] = {}

    async def get(self, job_id: str) -> Optional[JobRecord]:
        record = self._records.get(job_id)
        return record.model_copy(deep=True) if record else None

    async def put(self, job_id: str, record: JobRecord) -> None:
        self._records[job_id] = record.model_copy(deep=True)
        logger.debug("Stored job %s (status=%s, stage=%s)", job_id, record.status.value, record.stage.value)

    def __len__(self) -> int:
        return len(self._records)


def atomic_write_text(path: str, data: str) -> None:
    """Write `data` to `path` via a temp file in the same directory + os.replace."""
    directory = os.path.dirname(path)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class FileJobStore(JobStore):
    """
    One `<job_id>.json` file per job under `root_dir`.

    Parameters
    ----------
    root_dir : str
        Directory holding the job documents (created if missing).
    """

    def __init__(self, root_dir: str) -> None:
        self.root_dir = os.path.abspath(root_dir)
        os.makedirs(self.root_dir, exist_ok=True)

    def _path_for(self, job_id: str) -> Optional[str]:
        if not _SAFE_ID_RE.match(job_id or ""):
            return None
        return os.path.join(self.root_dir, f"{job_id}.json")

    def _read(self, path: str) -> Optional[JobRecord]:
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return JobRecord.model_validate_json(f.read())

    async def get(self, job_id: str) -> Optional[JobRecord]:
        path = self._path_for(job_id)
        if path is None:
            return None
        return await asyncio.to_thread(self._read, path)

    async def put(self, job_id: str, record: JobRecord) -> None:
        path = self._path_for(job_id)
        if path is None:
            raise ValueError(f"Invalid job id: {job_id!r}")
        await asyncio.to_thread(atomic_write_text, path, record.model_dump_json(indent=2))
        logger.debug("Wrote job %s to %s", job_id, path)


def create_job_store(root_dir: str = JOB_STORE_DIR) -> JobStore:
    """Pick the backend from configuration (directory set → file store)."""
    if root_dir:
        logger.info("Using file job store at %s", root_dir)
        return FileJobStore(root_dir)
    logger.info("Using in-memory job store")
    return InMemoryJobStore()
