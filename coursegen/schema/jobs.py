from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from coursegen.core.database import Base


class GenerationJobRow(Base):
  __tablename__ = "course_generation_jobs"
  __table_args__ = (
    # At most one pending/processing job per roadmap.
    Index("ux_generation_jobs_active_roadmap", "roadmap_id", unique=True, postgresql_where=text("status IN ('pending', 'processing')")),
    Index("ix_generation_jobs_status_created", "status", "created_at"),
  )

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  course_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  roadmap_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  request_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  current_step: Mapped[str | None] = mapped_column(String, nullable=True)
  progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  current_section_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
  current_subtopic_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
  total_sections: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  total_subtopics: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  estimated_minutes_remaining: Mapped[int | None] = mapped_column(Integer, nullable=True)
  error_log: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
  session_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  final_payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False)
  updated_at: Mapped[str] = mapped_column(String, nullable=False)
  started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
