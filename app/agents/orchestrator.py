"""
Pipeline Orchestrator
=====================
Drives one audit job through fetch → synthesize → persist and keeps the
Job State Store current so pollers can follow along.

States:
    FETCHING            — stage=FETCHING_REPO written, fetcher called
    SYNTHESIZING        — stage=AI_ANALYSIS_STARTED (+ file count), then
                          ANALYZING_CODE, then the report synthesizer runs
    PERSISTING_SUCCESS  — stage=GENERATING_REPORT, then status=completed
    PERSISTING_FAILURE  — status=failed with the captured message
    DONE                — terminal; the orchestrator never retries a job

Failure mapping:
    - RepoFetchError / empty file list → PERSISTING_FAILURE with the
      adapter's message (no model call is made)
    - anything else raised anywhere    → PERSISTING_FAILURE with
      UNKNOWN_ERROR_MESSAGE
    A job never stays in queued/processing once run() returns.

Checkpointing:
    Fetch + synthesize are one memoised step (STEP_ANALYZE). Its outcome
    (file count + report, or the fetch error) is saved to the checkpoint
    store; a re-run of the same job id replays it without fetching or
    calling the model again. The file list itself is never checkpointed.
    Unknown errors are not checkpointed, so a re-run retries them.
    Once the terminal record is stored the checkpoint store is told to
    discard the job (in-memory entries go, file checkpoints stay).

Progress Writes:
    Stage updates are fire-and-forget: they are queued in order on a
    background task chain and the pipeline does not wait for them.
    The chain is drained before the terminal write, which is awaited,
    so a late stage update can never overwrite the final record.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from app.agents.report_synthesizer import ReportSynthesizer
from app.core.config import GITHUB_TOKEN
from app.core.constants import NO_FILES_MESSAGE, STEP_ANALYZE, UNKNOWN_ERROR_MESSAGE
from app.models.analysis_outcome import AnalysisOutcome
from app.models.fetched_file import FetchedFile
from app.models.job_record import JobDescriptor, JobRecord, JobStage
from app.services.checkpoint_store import CheckpointStore
from app.services.job_store import JobStore
from app.services.repo_fetcher import RepoFetchError

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    FETCHING = "FETCHING"
    SYNTHESIZING = "SYNTHESIZING"
    PERSISTING_SUCCESS = "PERSISTING_SUCCESS"
    PERSISTING_FAILURE = "PERSISTING_FAILURE"
    DONE = "DONE"


class RepoFetcher(Protocol):
    async def fetch(self, repo_url: str, token: Optional[str] = None) -> Sequence[FetchedFile]:
        ...


@dataclass
class PipelineRun:
    """Result of one orchestrator run."""
    record: JobRecord
    transitions: List[PipelineState] = field(default_factory=list)
    resumed: bool = False


class _ProgressWriter:
    """Ordered, fire-and-forget stage writes for a single job."""

    def __init__(self, store: JobStore, job_id: str) -> None:
        self._store = store
        self._job_id = job_id
        self._tail: Optional[asyncio.Task] = None

    def submit(self, record: JobRecord) -> None:
        previous = self._tail
        self._tail = asyncio.create_task(self._write(previous, record))

    async def _write(self, previous: Optional[asyncio.Task], record: JobRecord) -> None:
        if previous is not None:
            await previous
        try:
            await self._store.put(self._job_id, record)
        except Exception as exc:
            logger.warning(
                "Progress write failed for job %s (stage=%s): %s",
                self._job_id, record.stage.value, exc,
            )

    async def drain(self) -> None:
        if self._tail is not None:
            await self._tail


class PipelineOrchestrator:
    """
    Runs audit jobs. One instance serves many concurrent jobs; all per-job
    state lives in the _Run created by run().

    Parameters
    ----------
    job_store : JobStore
        Where job records are written.
    fetcher : RepoFetcher
        Repository content adapter (GitHubRepoFetcher in production).
    synthesizer : ReportSynthesizer
        Prompt + model + repair loop.
    checkpoints : CheckpointStore or None
        Step memoisation (in-memory if not provided).
    github_token : str
        Passed to the fetcher for private repositories.
    """

    def __init__(
        self,
        job_store: JobStore,
        fetcher: RepoFetcher,
        synthesizer: ReportSynthesizer,
        checkpoints: Optional[CheckpointStore] = None,
        github_token: Optional[str] = GITHUB_TOKEN,
    ) -> None:
        self.job_store = job_store
        self.fetcher = fetcher
        self.synthesizer = synthesizer
        self.checkpoints = checkpoints if checkpoints is not None else CheckpointStore()
        self.github_token = github_token

    async def run(self, job: JobDescriptor) -> PipelineRun:
        """Execute the pipeline for `job` until its record is terminal."""
        return await _Run(self, job).execute()


class _Run:
    """State for a single job's pass through the pipeline."""

    def __init__(self, orchestrator: PipelineOrchestrator, job: JobDescriptor) -> None:
        self.o = orchestrator
        self.job = job
        self.record = JobRecord(job_id=job.job_id, repo_url=job.repo_url)
        self.result = PipelineRun(record=self.record)
        self.progress = _ProgressWriter(orchestrator.job_store, job.job_id)
        self.terminal_stored = False

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _transition(self, state: PipelineState) -> None:
        logger.info("[job %s] -> %s", self.job.job_id, state.value)
        self.result.transitions.append(state)

    def _mark_stage(self, stage: JobStage, files_found: Optional[int] = None) -> None:
        self.record = self.record.with_stage(stage, files_found)
        self.progress.submit(self.record)

    async def _checkpointed(
        self,
        step: str,
        fn: Callable[[], Awaitable[AnalysisOutcome]],
    ) -> AnalysisOutcome:
        cached = await self.o.checkpoints.load(self.job.job_id, step)
        if cached is not None:
            logger.info("[job %s] Replaying checkpointed step '%s'", self.job.job_id, step)
            self.result.resumed = True
            return AnalysisOutcome.model_validate(cached)

        outcome = await fn()
        await self.o.checkpoints.save(self.job.job_id, step, outcome.model_dump(mode="json"))
        return outcome

    # -------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------
    async def _analyze(self) -> AnalysisOutcome:
        """Fetch + synthesize as one unit of work."""
        self._mark_stage(JobStage.FETCHING_REPO)
        try:
            files = list(await self.o.fetcher.fetch(self.job.repo_url, self.o.github_token))
        except RepoFetchError as exc:
            logger.warning("[job %s] Fetch failed (%d): %s", self.job.job_id, exc.status, exc.message)
            return AnalysisOutcome(files_found=0, error_message=exc.message)

        if not files:
            logger.warning("[job %s] Fetcher returned no files", self.job.job_id)
            return AnalysisOutcome(files_found=0, error_message=NO_FILES_MESSAGE)

        self._transition(PipelineState.SYNTHESIZING)
        self._mark_stage(JobStage.AI_ANALYSIS_STARTED, files_found=len(files))
        self._mark_stage(JobStage.ANALYZING_CODE)

        report = await self.o.synthesizer.synthesize(self.job.repo_url, files)
        return AnalysisOutcome(files_found=len(files), report=report)

    async def _persist(self, final: JobRecord) -> None:
        await self.progress.drain()
        await self.o.job_store.put(self.job.job_id, final)
        self.record = final
        self.terminal_stored = True

    async def _persist_failure(self, message: str, files_found: int = 0) -> None:
        self._transition(PipelineState.PERSISTING_FAILURE)
        final = self.record.failed(message, files_found)
        try:
            await self._persist(final)
        except Exception:
            # Nothing left to fall back to; the caller still gets the failed record.
            logger.exception("[job %s] Could not persist failure record", self.job.job_id)
            self.record = final

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------
    async def execute(self) -> PipelineRun:
        job_id = self.job.job_id
        try:
            existing = await self.o.job_store.get(job_id)
            if existing is not None:
                self.record = existing
                if existing.status.is_terminal:
                    logger.info("[job %s] Already %s, nothing to do", job_id, existing.status.value)
                    self.result.resumed = True
                    self.result.record = existing
                    self.result.transitions.append(PipelineState.DONE)
                    return self.result

            self._transition(PipelineState.FETCHING)
            outcome = await self._checkpointed(STEP_ANALYZE, self._analyze)

            if outcome.succeeded:
                self._transition(PipelineState.PERSISTING_SUCCESS)
                self._mark_stage(JobStage.GENERATING_REPORT, files_found=outcome.files_found)
                await self._persist(self.record.completed(outcome.report, outcome.files_found))
            else:
                await self._persist_failure(outcome.error_message, outcome.files_found)

        except Exception as exc:
            logger.error("[job %s] Pipeline error: %s", job_id, exc, exc_info=True)
            await self._persist_failure(UNKNOWN_ERROR_MESSAGE, self.record.files_found)

        if self.terminal_stored:
            await self.o.checkpoints.discard(job_id)

        self._transition(PipelineState.DONE)
        self.result.record = self.record
        logger.info(
            "[job %s] Finished: status=%s files=%d",
            job_id, self.record.status.value, self.record.files_found,
        )
        return self.result
