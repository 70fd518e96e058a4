"""
POST /audit
===========
Accepts a GitHub repository URL, creates a queued job record and schedules
the audit pipeline in the background.

Returns {"job_id", "status": "queued"} straight away; fetch and model
latency are never on the request path. Malformed repository references are
rejected with 422 before any job exists.
"""
import logging
import uuid

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, field_validator

from app.agents.orchestrator import PipelineOrchestrator
from app.api.dependencies import get_job_store, get_orchestrator
from app.models.job_record import JobDescriptor, JobRecord, JobStatus
from app.services.job_store import JobStore
from app.utils.repo_reference import is_valid_repo_reference

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Audit"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------
class AuditRequest(BaseModel):
    repo_url: str

    @field_validator("repo_url")
    @classmethod
    def validate_github_url(cls, v: str) -> str:
        v = v.strip()
        if not is_valid_repo_reference(v):
            raise ValueError("Only GitHub repository URLs (https://github.com/<owner>/<repo>) are accepted")
        return v


class AuditAccepted(BaseModel):
    job_id: str
    status: JobStatus


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------
@router.post("/audit", response_model=AuditAccepted, status_code=202)
async def submit_audit(
    request: AuditRequest,
    background_tasks: BackgroundTasks,
    store: JobStore = Depends(get_job_store),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    job_id = uuid.uuid4().hex
    record = JobRecord(job_id=job_id, repo_url=request.repo_url)
    await store.put(job_id, record)

    background_tasks.add_task(
        orchestrator.run,
        JobDescriptor(job_id=job_id, repo_url=request.repo_url),
    )
    logger.info("[API] Queued audit %s for %s", job_id, request.repo_url)
    return AuditAccepted(job_id=job_id, status=record.status)
