"""Postgres-backed repository for generation jobs using SQLAlchemy."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursegen.core.database import get_session_factory
from coursegen.errors import DuplicateJobError
from coursegen.jobs.models import ACTIVE_STATUSES, ErrorLogEntry, GenerationJob, JobStatus, now_iso
from coursegen.schema.jobs import GenerationJobRow


class PostgresJobsRepository:
  """Persist generation jobs to Postgres."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: GenerationJob) -> None:
    async with self._session_factory() as session:
      existing = await self._find_active(session, record.roadmap_id)
      if existing is not None:
        raise DuplicateJobError(record.roadmap_id, existing.job_id)

      session.add(self._record_to_row(record))
      try:
        await session.commit()
      except IntegrityError as exc:
        # The partial unique index catches submissions that raced past the lookup.
        await session.rollback()
        winner = await self._find_active(session, record.roadmap_id)
        if winner is None:
          raise
        raise DuplicateJobError(record.roadmap_id, winner.job_id) from exc

  async def get_job(self, job_id: str) -> GenerationJob | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJobRow, job_id)
      if row is None:
        return None
      return self._row_to_record(row)

  async def update_job(self, job_id: str, **fields: Any) -> GenerationJob | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJobRow, job_id, with_for_update=True)
      if row is None:
        return None
      for key, value in fields.items():
        if value is None:
          continue
        if key == "error_log":
          row.error_log = [entry.as_dict() for entry in value]
        else:
          setattr(row, key, value)
      row.updated_at = now_iso()
      await session.commit()
      await session.refresh(row)
      return self._row_to_record(row)

  async def find_active_by_roadmap(self, roadmap_id: str) -> GenerationJob | None:
    async with self._session_factory() as session:
      row = await self._find_active(session, roadmap_id)
      return self._row_to_record(row) if row is not None else None

  async def list_jobs(self, limit: int, offset: int, status: JobStatus | None = None) -> tuple[list[GenerationJob], int]:
    async with self._session_factory() as session:
      stmt = select(GenerationJobRow)
      count_stmt = select(func.count()).select_from(GenerationJobRow)
      if status is not None:
        stmt = stmt.where(GenerationJobRow.status == status)
        count_stmt = count_stmt.where(GenerationJobRow.status == status)
      rows = (await session.execute(stmt.order_by(GenerationJobRow.created_at.desc()).limit(limit).offset(offset))).scalars().all()
      total = (await session.execute(count_stmt)).scalar_one()
      return [self._row_to_record(row) for row in rows], int(total)

  async def _find_active(self, session: AsyncSession, roadmap_id: str) -> GenerationJobRow | None:
    stmt = select(GenerationJobRow).where(GenerationJobRow.roadmap_id == roadmap_id, GenerationJobRow.status.in_(sorted(ACTIVE_STATUSES))).limit(1)
    return (await session.execute(stmt)).scalar_one_or_none()

  @staticmethod
  def _record_to_row(record: GenerationJob) -> GenerationJobRow:
    return GenerationJobRow(
      job_id=record.job_id,
      course_id=record.course_id,
      roadmap_id=record.roadmap_id,
      status=record.status,
      request_json=record.request,
      current_step=record.current_step,
      progress_percentage=record.progress_percentage,
      current_section_index=record.current_section_index,
      current_subtopic_index=record.current_subtopic_index,
      total_sections=record.total_sections,
      total_subtopics=record.total_subtopics,
      estimated_minutes_remaining=record.estimated_minutes_remaining,
      error_log=[entry.as_dict() for entry in record.error_log],
      retry_count=record.retry_count,
      max_retries=record.max_retries,
      session_id=record.session_id,
      final_payload=record.final_payload,
      failure_reason=record.failure_reason,
      created_at=record.created_at,
      updated_at=record.updated_at,
      started_at=record.started_at,
      completed_at=record.completed_at,
    )

  @staticmethod
  def _row_to_record(row: GenerationJobRow) -> GenerationJob:
    return GenerationJob(
      job_id=row.job_id,
      course_id=row.course_id,
      roadmap_id=row.roadmap_id,
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      request=dict(row.request_json or {}),
      current_step=row.current_step,
      progress_percentage=row.progress_percentage,
      current_section_index=row.current_section_index,
      current_subtopic_index=row.current_subtopic_index,
      total_sections=row.total_sections,
      total_subtopics=row.total_subtopics,
      estimated_minutes_remaining=row.estimated_minutes_remaining,
      error_log=[ErrorLogEntry.from_dict(entry) for entry in row.error_log or []],
      retry_count=row.retry_count,
      max_retries=row.max_retries,
      session_id=row.session_id,
      final_payload=row.final_payload,
      failure_reason=row.failure_reason,
      started_at=row.started_at,
      completed_at=row.completed_at,
    )
