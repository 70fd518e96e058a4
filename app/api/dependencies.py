"""
API Dependencies
================
Process-wide singletons injected into the routers with FastAPI's Depends.

The job store handed to the routers and the one the orchestrator writes to
must be the same object; tests override both through
app.dependency_overrides. close_llm_client() runs from the app lifespan.
"""
from functools import lru_cache

from app.agents.orchestrator import PipelineOrchestrator
from app.agents.report_synthesizer import ReportSynthesizer
from app.llm.client import LLMClient
from app.services.checkpoint_store import create_checkpoint_store
from app.services.job_store import JobStore, create_job_store
from app.services.repo_fetcher import GitHubRepoFetcher


@lru_cache(maxsize=1)
def get_job_store() -> JobStore:
    return create_job_store()


@lru_cache(maxsize=1)
def get_llm_client() -> LLMClient:
    return LLMClient()


@lru_cache(maxsize=1)
def get_orchestrator() -> PipelineOrchestrator:
    return PipelineOrchestrator(
        job_store=get_job_store(),
        fetcher=GitHubRepoFetcher(),
        synthesizer=ReportSynthesizer(model=get_llm_client()),
        checkpoints=create_checkpoint_store(),
    )


async def close_llm_client() -> None:
    """Close the shared model client's connection pool if it was ever created."""
    if get_llm_client.cache_info().currsize:
        await get_llm_client().close()
