"""
Checkpoint Store
================
Memoised step results for resumable pipeline runs.

A step result is saved once the step finishes. If the same job is run
again (process restart, redelivery), the orchestrator replays the saved
payload instead of repeating the step's external side effects.

Payloads are plain JSON-compatible dicts keyed by (job_id, step_name).

In-memory checkpoints die with the process, so they are discarded as soon
as the job's terminal record is stored. File checkpoints are kept.
"""
import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, Optional, Tuple

from app.core.config import CHECKPOINT_DIR
from app.services.job_store import atomic_write_text

logger = logging.getLogger(__name__)

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_\-]")


class CheckpointStore:
    """In-memory checkpoints (default)."""

    def __init__(self) -> None:
        self._data: Dict[Tuple[str, str], Dict[str, Any]] = {}

    async def load(self, job_id: str, step: str) -> Optional[Dict[str, Any]]:
        payload = self._data.get((job_id, step))
        return json.loads(json.dumps(payload)) if payload is not None else None

    async def save(self, job_id: str, step: str, payload: Dict[str, Any]) -> None:
        # Round-trip through JSON so in-memory and on-disk behave the same
        self._data[(job_id, step)] = json.loads(json.dumps(payload))
        logger.debug("Checkpoint saved: %s/%s", job_id, step)

    async def discard(self, job_id: str) -> None:
        """Drop every step saved for `job_id` once its record is terminal."""
        for key in [k for k in self._data if k[0] == job_id]:
            del self._data[key]


class FileCheckpointStore(CheckpointStore):
    """Checkpoints as `<root>/<job_id>/<step>.json`."""

    def __init__(self, root_dir: str) -> None:
        super().__init__()
        self.root_dir = os.path.abspath(root_dir)
        os.makedirs(self.root_dir, exist_ok=True)

    def _path_for(self, job_id: str, step: str) -> str:
        job_dir = os.path.join(self.root_dir, _SAFE_KEY_RE.sub("_", job_id))
        return os.path.join(job_dir, f"{_SAFE_KEY_RE.sub('_', step)}.json")

    def _read(self, path: str) -> Optional[Dict[str, Any]]:
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, path: str, payload: Dict[str, Any]) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        atomic_write_text(path, json.dumps(payload, indent=2))

    async def load(self, job_id: str, step: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._read, self._path_for(job_id, step))

    async def save(self, job_id: str, step: str, payload: Dict[str, Any]) -> None:
        path = self._path_for(job_id, step)
        await asyncio.to_thread(self._write, path, payload)
        logger.debug("Checkpoint saved: %s", path)

    async def discard(self, job_id: str) -> None:
        # Kept on disk: a restarted process replays from these files.
        return None


def create_checkpoint_store(root_dir: str = CHECKPOINT_DIR) -> CheckpointStore:
    if root_dir:
        logger.info("Using file checkpoint store at %s", root_dir)
        return FileCheckpointStore(root_dir)
    return CheckpointStore()
