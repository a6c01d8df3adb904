"""In-process job repository used for local runs and tests."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from coursegen.errors import DuplicateJobError
from coursegen.jobs.models import GenerationJob, JobStatus, now_iso


class InMemoryJobsRepository:
  """Keep jobs in a dict; every method runs without suspension points so updates are atomic on the event loop."""

  def __init__(self) -> None:
    self._jobs: dict[str, GenerationJob] = {}
    self._active_by_roadmap: dict[str, str] = {}

  async def create_job(self, record: GenerationJob) -> None:
    existing_id = self._active_by_roadmap.get(record.roadmap_id)
    if existing_id is not None and self._jobs[existing_id].is_active:
      raise DuplicateJobError(record.roadmap_id, existing_id)

    self._jobs[record.job_id] = replace(record, error_log=list(record.error_log))
    if record.is_active:
      self._active_by_roadmap[record.roadmap_id] = record.job_id

  async def get_job(self, job_id: str) -> GenerationJob | None:
    record = self._jobs.get(job_id)
    if record is None:
      return None
    return replace(record, error_log=list(record.error_log))

  async def update_job(self, job_id: str, **fields: Any) -> GenerationJob | None:
    record = self._jobs.get(job_id)

    # Bail out when the job id is unknown.
    if record is None:
      return None

    changes = {key: value for key, value in fields.items() if value is not None}
    if "error_log" in changes:
      changes["error_log"] = list(changes["error_log"])
    updated = replace(record, **changes, updated_at=now_iso())
    self._jobs[job_id] = updated

    # Release the roadmap slot once the job leaves the active states.
    if not updated.is_active and self._active_by_roadmap.get(updated.roadmap_id) == job_id:
      del self._active_by_roadmap[updated.roadmap_id]

    return replace(updated, error_log=list(updated.error_log))

  async def find_active_by_roadmap(self, roadmap_id: str) -> GenerationJob | None:
    job_id = self._active_by_roadmap.get(roadmap_id)
    if job_id is None:
      return None
    return await self.get_job(job_id)

  async def list_jobs(self, limit: int, offset: int, status: JobStatus | None = None) -> tuple[list[GenerationJob], int]:
    records = [record for record in self._jobs.values() if status is None or record.status == status]
    records.sort(key=lambda record: record.created_at, reverse=True)
    page = records[offset : offset + limit]
    return [replace(record, error_log=list(record.error_log)) for record in page], len(records)
