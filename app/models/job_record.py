"""
Job Record Model
================
Pydantic model for the per-job record held by the Job State Store.

This record is the single source of truth external pollers read. It is
created by the API layer (status=queued) and mutated exclusively by the
PipelineOrchestrator for that job id.

Fields:
    job_id          — opaque identifier (uuid4 hex)
    repo_url        — repository reference as submitted
    status          — queued | processing | completed | failed
    stage           — progress marker, only meaningful while processing
    files_found     — number of files returned by the fetcher
    report          — final Report, set only on completed
    error_message   — human-readable failure, set only on failed
    created_at      — submission timestamp (UTC)
    updated_at      — timestamp of the last write (UTC)
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .report import Report


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobStage(str, Enum):
    NONE = "NONE"
    FETCHING_REPO = "FETCHING_REPO"
    AI_ANALYSIS_STARTED = "AI_ANALYSIS_STARTED"
    ANALYZING_CODE = "ANALYZING_CODE"
    GENERATING_REPORT = "GENERATING_REPORT"


class JobDescriptor(BaseModel):
    """What the API layer hands to the orchestrator."""
    job_id: str
    repo_url: str


class JobRecord(BaseModel):
    job_id: str
    repo_url: str
    status: JobStatus = JobStatus.QUEUED
    stage: JobStage = JobStage.NONE
    files_found: int = Field(default=0, ge=0)
    report: Optional[Report] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def check_terminal_fields(self) -> "JobRecord":
        if self.status == JobStatus.COMPLETED:
            if self.report is None or self.error_message is not None:
                raise ValueError("completed job requires a report and no error_message")
        elif self.status == JobStatus.FAILED:
            if self.error_message is None or self.report is not None:
                raise ValueError("failed job requires an error_message and no report")
        elif self.report is not None or self.error_message is not None:
            raise ValueError("report/error_message are only set on terminal jobs")
        return self

    @property
    def is_started(self) -> bool:
        return not (self.status == JobStatus.QUEUED and self.stage == JobStage.NONE)

    # -------------------------------------------------------------------
    # Transitions: each returns a fresh record for a full-record put()
    # -------------------------------------------------------------------
    def with_stage(self, stage: JobStage, files_found: Optional[int] = None) -> "JobRecord":
        return self.model_copy(update={
            "status": JobStatus.PROCESSING,
            "stage": stage,
            "files_found": self.files_found if files_found is None else files_found,
            "updated_at": utc_now(),
        })

    def completed(self, report: Report, files_found: int) -> "JobRecord":
        return self.model_copy(update={
            "status": JobStatus.COMPLETED,
            "stage": JobStage.NONE,
            "files_found": files_found,
            "report": report,
            "error_message": None,
            "updated_at": utc_now(),
        })

    def failed(self, error_message: str, files_found: int = 0) -> "JobRecord":
        return self.model_copy(update={
            "status": JobStatus.FAILED,
            "stage": JobStage.NONE,
            "files_found": files_found,
            "report": None,
            "error_message": error_message,
            "updated_at": utc_now(),
        })
