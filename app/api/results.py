"""
GET /results/{job_id}
Returns the job record verbatim, including the progress stage while the
pipeline runs. A queued record with stage NONE means "not started yet".
Unknown ids get 404 with {"job_id", "status": "not_found"}.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.dependencies import get_job_store
from app.models.job_record import JobRecord
from app.services.job_store import JobStore

router = APIRouter(tags=["Audit"])


@router.get("/results/{job_id}", response_model=JobRecord)
async def get_results(job_id: str, store: JobStore = Depends(get_job_store)):
    record = await store.get(job_id)
    if record is None:
        return JSONResponse(status_code=404, content={"job_id": job_id, "status": "not_found"})
    return record
