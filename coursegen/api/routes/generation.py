import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from coursegen.api.deps import get_runtime
from coursegen.api.models import GenerationRequest, JobCreateResponse, JobListResponse, JobSnapshotResponse
from coursegen.jobs.models import JobStatus
from coursegen.services.runtime import CourseGenRuntime

router = APIRouter()
logger = logging.getLogger("coursegen.api.routes.generation")


@router.post("", response_model=JobCreateResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_generation(  # noqa: B008
  request: GenerationRequest,
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> JobCreateResponse:
  """Enqueue a course generation job, or return the job already running for this roadmap."""
  try:
    job_id = await runtime.queue.submit(request.course_id, request.roadmap_id, request.to_params())
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

  job = await runtime.tracker.snapshot(job_id)
  return JobCreateResponse(job_id=job.job_id, status=job.status, session_id=job.session_id)


@router.get("", response_model=JobListResponse)
async def list_generation_jobs(  # noqa: B008
  status_filter: JobStatus | None = Query(default=None, alias="status"),  # noqa: B008
  limit: int = Query(default=20, ge=1, le=100),  # noqa: B008
  offset: int = Query(default=0, ge=0),  # noqa: B008
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> JobListResponse:
  """List jobs newest first for operators."""
  jobs, total = await runtime.tracker.list_jobs(limit=limit, offset=offset, status=status_filter)
  return JobListResponse(items=[JobSnapshotResponse.from_job(job) for job in jobs], total=total, limit=limit, offset=offset)


@router.get("/{job_id}", response_model=JobSnapshotResponse)
async def get_generation_job(  # noqa: B008
  job_id: str,
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> JobSnapshotResponse:
  """Fetch the current snapshot of a generation job."""
  return JobSnapshotResponse.from_job(await runtime.tracker.snapshot(job_id))


@router.post("/{job_id}/cancel", response_model=JobSnapshotResponse, status_code=status.HTTP_202_ACCEPTED)
async def cancel_generation_job(  # noqa: B008
  job_id: str,
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> JobSnapshotResponse:
  """Request cooperative cancellation; the job stops at its next step boundary."""
  job = await runtime.queue.cancel(job_id)
  logger.info("Cancel requested via API job_id=%s", job_id)
  return JobSnapshotResponse.from_job(job)
