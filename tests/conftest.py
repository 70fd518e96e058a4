"""
Shared fakes for the pipeline tests.
No network: the fetcher and model are replaced by in-process fakes.
"""
import json
from typing import List, Optional

import pytest

from app.models.fetched_file import FetchedFile
from app.models.job_record import JobRecord
from app.services.job_store import InMemoryJobStore

REPO_URL = "https://github.com/acme/widget"


def valid_payload(**overrides) -> dict:
    payload = {
        "verdict_score": "B+",
        "summary": "Small, tidy TypeScript worker with clear module boundaries.",
        "tech_stack": ["TypeScript", "Hono"],
        "native_platform_fit": True,
        "security_risks": [
            {"severity": "high", "file": "src/index.ts", "description": "CORS allows every origin."},
            {"severity": "medium", "file": "src/api.ts", "description": "No input length limit.", "line_number": 12},
            {"severity": "low", "file": "README.md", "description": "Token example in docs.", "snippet": "TOKEN=abc"},
        ],
    }
    payload.update(overrides)
    return payload


class FakeFetcher:
    """Returns canned files or raises a canned error; records calls."""

    def __init__(self, files: Optional[List[FetchedFile]] = None, error: Optional[Exception] = None) -> None:
        self.files = files or []
        self.error = error
        self.calls: List[str] = []

    async def fetch(self, repo_url: str, token: Optional[str] = None) -> List[FetchedFile]:
        self.calls.append(repo_url)
        if self.error is not None:
            raise self.error
        return list(self.files)


class FakeModel:
    """Replays responses in order (the last one repeats); records each conversation."""

    def __init__(self, responses) -> None:
        self.responses = list(responses)
        self.calls: List[list] = []

    async def invoke(self, messages, max_output_tokens):
        self.calls.append(list(messages))
        response = self.responses[min(len(self.calls), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


class RecordingJobStore(InMemoryJobStore):
    """In-memory store that keeps every record written, in order."""

    def __init__(self) -> None:
        super().__init__()
        self.history: List[JobRecord] = []

    async def put(self, job_id, record):
        await super().put(job_id, record)
        self.history.append(record)


class FlakyJobStore(RecordingJobStore):
    """Raises on puts whose status is in `fail_on` (at most `times` times)."""

    def __init__(self, fail_on: set, times: int = 1) -> None:
        super().__init__()
        self.fail_on = fail_on
        self.remaining = times

    async def put(self, job_id, record):
        if record.status in self.fail_on and self.remaining > 0:
            self.remaining -= 1
            raise OSError("disk full")
        await super().put(job_id, record)


@pytest.fixture
def two_files():
    return [
        FetchedFile(path="README.md", content="# Widget\n" + "a" * 240),
        FetchedFile(path="src/index.ts", content="export default {}\n" + "b" * 231),
    ]


@pytest.fixture
def valid_json():
    return json.dumps(valid_payload())


@pytest.fixture
def store():
    return RecordingJobStore()

