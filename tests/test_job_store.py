"""
Job State Store Tests
=====================
get/put contract for both backends plus JobRecord invariants.
"""
import asyncio
import os

import pytest
from pydantic import ValidationError

from app.models.job_record import JobRecord, JobStage, JobStatus
from app.models.report import degraded_report
from app.services.checkpoint_store import CheckpointStore, FileCheckpointStore, create_checkpoint_store
from app.services.job_store import FileJobStore, InMemoryJobStore, create_job_store

from conftest import REPO_URL


@pytest.fixture(params=["memory", "file"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryJobStore()
    return FileJobStore(str(tmp_path / "jobs"))


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------
def test_missing_id_returns_none(any_store):
    assert asyncio.run(any_store.get("never-submitted")) is None


def test_put_then_get(any_store):
    record = JobRecord(job_id="abc123", repo_url=REPO_URL)
    asyncio.run(any_store.put("abc123", record))
    assert asyncio.run(any_store.get("abc123")) == record


def test_last_write_wins_full_replacement(any_store):
    base = JobRecord(job_id="abc123", repo_url=REPO_URL)
    processing = base.with_stage(JobStage.AI_ANALYSIS_STARTED, files_found=7)
    done = processing.completed(degraded_report(), files_found=7)

    async def write_all():
        await any_store.put("abc123", base)
        await any_store.put("abc123", processing)
        await any_store.put("abc123", done)
        return await any_store.get("abc123")

    stored = asyncio.run(write_all())
    assert stored.status == JobStatus.COMPLETED
    assert stored.stage == JobStage.NONE
    assert stored.files_found == 7
    assert stored.report == degraded_report()


def test_in_memory_store_does_not_alias_records():
    store = InMemoryJobStore()
    record = JobRecord(job_id="abc", repo_url=REPO_URL)
    asyncio.run(store.put("abc", record))

    fetched = asyncio.run(store.get("abc"))
    fetched.files_found = 99
    assert asyncio.run(store.get("abc")).files_found == 0


def test_file_store_writes_one_json_per_job(tmp_path):
    store = FileJobStore(str(tmp_path))
    asyncio.run(store.put("abc", JobRecord(job_id="abc", repo_url=REPO_URL)))

    assert sorted(os.listdir(tmp_path)) == ["abc.json"]


def test_file_store_unsafe_id_is_not_found(tmp_path):
    store = FileJobStore(str(tmp_path))
    assert asyncio.run(store.get("../../etc/passwd")) is None
    with pytest.raises(ValueError):
        asyncio.run(store.put("../evil", JobRecord(job_id="x", repo_url=REPO_URL)))


def test_factory_picks_backend(tmp_path):
    assert isinstance(create_job_store(""), InMemoryJobStore)
    assert isinstance(create_job_store(str(tmp_path)), FileJobStore)


# ---------------------------------------------------------------------------
# JobRecord invariants
# ---------------------------------------------------------------------------
def test_completed_requires_report():
    with pytest.raises(ValidationError):
        JobRecord(job_id="a", repo_url=REPO_URL, status=JobStatus.COMPLETED)


def test_failed_requires_message_and_no_report():
    with pytest.raises(ValidationError):
        JobRecord(job_id="a", repo_url=REPO_URL, status=JobStatus.FAILED)
    with pytest.raises(ValidationError):
        JobRecord(
            job_id="a", repo_url=REPO_URL, status=JobStatus.FAILED,
            error_message="boom", report=degraded_report(),
        )


def test_processing_cannot_carry_report():
    with pytest.raises(ValidationError):
        JobRecord(job_id="a", repo_url=REPO_URL, status=JobStatus.PROCESSING, report=degraded_report())


def test_not_started_vs_started():
    queued = JobRecord(job_id="a", repo_url=REPO_URL)
    assert queued.is_started is False
    assert queued.with_stage(JobStage.FETCHING_REPO).is_started is True


def test_failed_clears_stage():
    record = JobRecord(job_id="a", repo_url=REPO_URL).with_stage(JobStage.ANALYZING_CODE, 3)
    failed = record.failed("Repository not found: acme/widget")
    assert failed.stage == JobStage.NONE
    assert failed.status.is_terminal


# ---------------------------------------------------------------------------
# Checkpoints
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("kind", ["memory", "file"])
def test_checkpoint_round_trip(kind, tmp_path):
    store = CheckpointStore() if kind == "memory" else FileCheckpointStore(str(tmp_path))

    async def scenario():
        assert await store.load("job1", "analyze-repository") is None
        await store.save("job1", "analyze-repository", {"files_found": 2, "error_message": None})
        return await store.load("job1", "analyze-repository")

    assert asyncio.run(scenario()) == {"files_found": 2, "error_message": None}


def test_checkpoint_factory(tmp_path):
    assert type(create_checkpoint_store("")) is CheckpointStore
    assert isinstance(create_checkpoint_store(str(tmp_path)), FileCheckpointStore)


def test_discard_drops_only_that_job_in_memory():
    store = CheckpointStore()

    async def scenario():
        await store.save("job1", "analyze-repository", {"files_found": 1})
        await store.save("job2", "analyze-repository", {"files_found": 2})
        await store.discard("job1")
        return await store.load("job1", "analyze-repository"), await store.load("job2", "analyze-repository")

    assert asyncio.run(scenario()) == (None, {"files_found": 2})


def test_discard_keeps_file_checkpoints(tmp_path):
    store = FileCheckpointStore(str(tmp_path))

    async def scenario():
        await store.save("job1", "analyze-repository", {"files_found": 1})
        await store.discard("job1")
        return await store.load("job1", "analyze-repository")

    assert asyncio.run(scenario()) == {"files_found": 1}
