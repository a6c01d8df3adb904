"""Storage interfaces for generation jobs."""

from __future__ import annotations

from typing import Any, Protocol

from coursegen.jobs.models import ErrorLogEntry, GenerationJob, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: GenerationJob) -> None:
    """Persist a new job; raise DuplicateJobError when the roadmap already has an active job."""

  async def get_job(self, job_id: str) -> GenerationJob | None:
    """Fetch a job by identifier."""

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    current_step: str | None = None,
    progress_percentage: int | None = None,
    current_section_index: int | None = None,
    current_subtopic_index: int | None = None,
    estimated_minutes_remaining: int | None = None,
    error_log: list[ErrorLogEntry] | None = None,
    retry_count: int | None = None,
    session_id: str | None = None,
    final_payload: dict[str, Any] | None = None,
    failure_reason: str | None = None,
    started_at: str | None = None,
    completed_at: str | None = None,
  ) -> GenerationJob | None:
    """Apply partial updates to a job."""

  async def find_active_by_roadmap(self, roadmap_id: str) -> GenerationJob | None:
    """Return the pending or processing job for a roadmap, if any."""

  async def list_jobs(self, limit: int, offset: int, status: JobStatus | None = None) -> tuple[list[GenerationJob], int]:
    """Return a page of jobs (newest first) and the total count."""
