"""Persistent progress state machine for generation jobs."""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Any, Protocol

from coursegen.errors import InvalidTransitionError, NotFoundError
from coursegen.jobs.models import ErrorLogEntry, GenerationJob, JobStatus, now_iso
from coursegen.notifications.events import EventType, ProgressEvent, build_progress_event
from coursegen.storage.jobs_repo import JobsRepository
from coursegen.utils.ids import generate_job_id


class EventPublisher(Protocol):
  """Push channel used to announce job transitions."""

  def publish(self, session_id: str, event: ProgressEvent) -> int:
    """Deliver an event to a session."""


class ProgressTracker:
  """Own every status transition of a job and emit one event per persisted change."""

  def __init__(self, *, jobs_repo: JobsRepository, publisher: EventPublisher | None = None, max_retries: int = 3, minutes_per_subtopic: int = 8, logger: logging.Logger | None = None) -> None:
    self._jobs_repo = jobs_repo
    self._publisher = publisher
    self._max_retries = max_retries
    self._minutes_per_subtopic = minutes_per_subtopic
    self._logger = logger or logging.getLogger(__name__)
    self._roadmap_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

  @property
  def max_retries(self) -> int:
    return self._max_retries

  def _roadmap_lock(self, roadmap_id: str) -> asyncio.Lock:
    lock = self._roadmap_locks.get(roadmap_id)
    if lock is None:
      lock = asyncio.Lock()
      self._roadmap_locks[roadmap_id] = lock
    return lock

  async def find_active(self, roadmap_id: str) -> GenerationJob | None:
    return await self._jobs_repo.find_active_by_roadmap(roadmap_id)

  async def create(self, course_id: str, roadmap_id: str, total_sections: int, total_subtopics: int, *, session_id: str | None = None, request: dict[str, Any] | None = None) -> str:
    """Create a pending job; raise DuplicateJobError if the roadmap already has one in flight."""
    job_id = generate_job_id()
    timestamp = now_iso()
    # Sessions default to the job id so clients can subscribe without negotiating a key.
    record = GenerationJob(
      job_id=job_id,
      course_id=course_id,
      roadmap_id=roadmap_id,
      status="pending",
      created_at=timestamp,
      updated_at=timestamp,
      request=dict(request or {}),
      current_step="queued",
      total_sections=total_sections,
      total_subtopics=total_subtopics,
      estimated_minutes_remaining=total_subtopics * self._minutes_per_subtopic,
      max_retries=self._max_retries,
      session_id=session_id or job_id,
    )

    # Serialize check-and-create per roadmap; unrelated roadmaps never contend.
    async with self._roadmap_lock(roadmap_id):
      await self._jobs_repo.create_job(record)

    self._logger.info("Created job job_id=%s course_id=%s roadmap_id=%s sections=%d subtopics=%d", job_id, course_id, roadmap_id, total_sections, total_subtopics)
    return job_id

  async def snapshot(self, job_id: str) -> GenerationJob:
    """Return the persisted job state."""
    job = await self._jobs_repo.get_job(job_id)
    if job is None:
      raise NotFoundError("Job", job_id)
    return job

  async def claim(self, job_id: str) -> GenerationJob:
    """Move a pending job to processing on behalf of the worker that dequeued it."""
    job = await self.snapshot(job_id)
    # Only pending jobs may start; a cancelled or recovered-as-failed job stays put.
    if job.status != "pending":
      raise InvalidTransitionError(f"Job {job_id} cannot be claimed from status '{job.status}'.")

    return await self._update(job, "started", status="processing", current_step="started", started_at=now_iso())

  async def advance(self, job_id: str, step: str, percentage: int, section_index: int | None = None, subtopic_index: int | None = None, *, estimated_minutes_remaining: int | None = None) -> GenerationJob:
    """Record step progress; percentages never move backwards and terminal jobs never change."""
    job = await self.snapshot(job_id)
    if job.is_terminal:
      raise InvalidTransitionError(f"Job {job_id} is {job.status}; progress can no longer advance.")
    if not 0 <= percentage <= 100:
      raise InvalidTransitionError(f"Progress percentage must be between 0 and 100, got {percentage}.")
    if percentage < job.progress_percentage:
      raise InvalidTransitionError(f"Progress for job {job_id} cannot decrease from {job.progress_percentage} to {percentage}.")

    return await self._update(job, "progress", current_step=step, progress_percentage=percentage, current_section_index=section_index, current_subtopic_index=subtopic_index, estimated_minutes_remaining=estimated_minutes_remaining)

  async def record_error(self, job_id: str, step: str, message: str) -> GenerationJob:
    """Append an error and count a retry; exceeding max retries fails the job."""
    job = await self.snapshot(job_id)
    if job.is_terminal:
      self._logger.warning("Ignoring error for terminal job job_id=%s status=%s step=%s", job_id, job.status, step)
      return job

    error_log = [*job.error_log, ErrorLogEntry(step=step, error=message, timestamp=now_iso())]
    attempts = job.retry_count + 1
    if attempts > job.max_retries:
      # Keep the stored count at the bound; the error log still records the final attempt.
      self._logger.error("Job exceeded max retries job_id=%s step=%s retries=%d", job_id, step, job.max_retries)
      return await self._update(job, "failed", status="failed", current_step=step, error_log=error_log, retry_count=job.max_retries, failure_reason=message, estimated_minutes_remaining=0, completed_at=now_iso())

    self._logger.warning("Step failed job_id=%s step=%s retry=%d/%d error=%s", job_id, step, attempts, job.max_retries, message)
    return await self._update(job, "error", current_step=step, error_log=error_log, retry_count=attempts)

  async def complete(self, job_id: str, final_payload: dict[str, Any]) -> GenerationJob:
    job = await self.snapshot(job_id)
    if job.is_terminal:
      return job
    self._logger.info("Job completed job_id=%s", job_id)
    return await self._update(job, "completed", status="completed", current_step="completed", progress_percentage=100, final_payload=final_payload, estimated_minutes_remaining=0, completed_at=now_iso())

  async def fail(self, job_id: str, reason: str, *, step: str | None = None) -> GenerationJob:
    """Fail a job; passing the interrupted step also records it in the error log."""
    job = await self.snapshot(job_id)
    if job.is_terminal:
      return job
    self._logger.error("Job failed job_id=%s reason=%s", job_id, reason)
    fields: dict[str, Any] = {}
    if step is not None:
      fields.update(current_step=step, error_log=[*job.error_log, ErrorLogEntry(step=step, error=reason, timestamp=now_iso())])
    return await self._update(job, "failed", status="failed", failure_reason=reason, estimated_minutes_remaining=0, completed_at=now_iso(), **fields)

  async def cancel(self, job_id: str) -> GenerationJob:
    job = await self.snapshot(job_id)
    if job.is_terminal:
      return job
    self._logger.info("Job cancelled job_id=%s step=%s", job_id, job.current_step)
    return await self._update(job, "cancelled", status="cancelled", current_step="cancelled", estimated_minutes_remaining=0, completed_at=now_iso())

  async def list_jobs(self, *, limit: int = 20, offset: int = 0, status: JobStatus | None = None) -> tuple[list[GenerationJob], int]:
    return await self._jobs_repo.list_jobs(limit, offset, status)

  async def list_unfinished(self, *, page_size: int = 100) -> list[GenerationJob]:
    """Return every pending or processing job, oldest first."""
    jobs: list[GenerationJob] = []
    statuses: tuple[JobStatus, ...] = ("pending", "processing")
    for status in statuses:
      offset = 0
      while True:
        page, total = await self._jobs_repo.list_jobs(page_size, offset, status)
        jobs.extend(page)
        offset += len(page)
        if not page or offset >= total:
          break
    jobs.sort(key=lambda job: job.created_at)
    return jobs

  async def _update(self, job: GenerationJob, event_type: EventType, **fields: Any) -> GenerationJob:
    record = await self._jobs_repo.update_job(job.job_id, **fields)
    if record is None:
      raise NotFoundError("Job", job.job_id)

    # Publish after persisting so the snapshot read path is never behind the push channel.
    if self._publisher is not None and record.session_id:
      self._publisher.publish(record.session_id, build_progress_event(record, event_type))
    return record
