from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, StrictStr

from coursegen.jobs.models import GenerationJob, JobStatus
from coursegen.pipeline.contracts import CamelModel, GenerationParams
from coursegen.rag.models import ContentType, SearchHit, VectorEmbedding


class GenerationRequest(GenerationParams):
  """Request payload for submitting a course generation job."""

  course_id: StrictStr = Field(min_length=1, description="Course the generated material belongs to.", examples=["course-123"])
  roadmap_id: StrictStr = Field(min_length=1, description="Roadmap being generated; at most one active job per roadmap.", examples=["roadmap-1"])

  def to_params(self) -> GenerationParams:
    return GenerationParams.model_validate(self.model_dump(exclude={"course_id", "roadmap_id"}))


class JobCreateResponse(CamelModel):
  """Response returned after enqueueing (or coalescing) a generation job."""

  job_id: str
  status: JobStatus
  session_id: str | None = None


class ErrorLogItem(CamelModel):
  step: str
  error: str
  timestamp: str


class JobSnapshotResponse(CamelModel):
  """Current state of a generation job."""

  job_id: str
  course_id: str
  roadmap_id: str
  status: JobStatus
  current_step: str | None = None
  progress_percentage: int
  current_section_index: int | None = None
  current_subtopic_index: int | None = None
  total_sections: int
  total_subtopics: int
  estimated_minutes_remaining: int | None = None
  error_log: list[ErrorLogItem] = Field(default_factory=list)
  retry_count: int
  max_retries: int
  session_id: str | None = None
  final_payload: dict[str, Any] | None = None
  failure_reason: str | None = None
  created_at: str
  updated_at: str
  started_at: str | None = None
  completed_at: str | None = None

  @classmethod
  def from_job(cls, job: GenerationJob) -> JobSnapshotResponse:
    return cls(
      job_id=job.job_id,
      course_id=job.course_id,
      roadmap_id=job.roadmap_id,
      status=job.status,
      current_step=job.current_step,
      progress_percentage=job.progress_percentage,
      current_section_index=job.current_section_index,
      current_subtopic_index=job.current_subtopic_index,
      total_sections=job.total_sections,
      total_subtopics=job.total_subtopics,
      estimated_minutes_remaining=job.estimated_minutes_remaining,
      error_log=[ErrorLogItem(step=entry.step, error=entry.error, timestamp=entry.timestamp) for entry in job.error_log],
      retry_count=job.retry_count,
      max_retries=job.max_retries,
      session_id=job.session_id,
      final_payload=job.final_payload,
      failure_reason=job.failure_reason,
      created_at=job.created_at,
      updated_at=job.updated_at,
      started_at=job.started_at,
      completed_at=job.completed_at,
    )


class JobListResponse(CamelModel):
  items: list[JobSnapshotResponse]
  total: int
  limit: int
  offset: int


class SearchRequest(CamelModel):
  """Semantic search over one course's active content."""

  course_id: StrictStr = Field(min_length=1)
  query: StrictStr = Field(min_length=1)
  limit: int = Field(default=5, ge=1, le=50)
  content_type: ContentType | None = None


class SearchResultItem(CamelModel):
  id: str
  content: str
  title: str | None = None
  description: str | None = None
  content_type: ContentType
  similarity_score: float
  metadata: dict[str, Any] = Field(default_factory=dict)

  @classmethod
  def from_hit(cls, hit: SearchHit) -> SearchResultItem:
    return cls(id=hit.id, content=hit.content, title=hit.title, description=hit.description, content_type=hit.content_type, similarity_score=hit.similarity_score, metadata=hit.metadata)


class SearchResponse(CamelModel):
  results: list[SearchResultItem]


class ContextRequest(CamelModel):
  course_id: StrictStr = Field(min_length=1)
  question: StrictStr = Field(min_length=1)
  max_results: int = Field(default=3, ge=1, le=20)


class ContextResponse(CamelModel):
  course_id: str
  context: str


class AskRequest(ContextRequest):
  """Question for the course tutor."""


class AskResponse(CamelModel):
  answer: str
  context: str
  sources: list[SearchResultItem]


class ContentStoreRequest(CamelModel):
  """Store one piece of course content for retrieval."""

  course_id: StrictStr = Field(min_length=1)
  content_type: ContentType
  content_text: StrictStr = Field(min_length=1)
  content_id: StrictStr | None = None
  title: StrictStr | None = None
  description: StrictStr | None = None
  metadata: dict[str, Any] = Field(default_factory=dict)


class ContentBatchItem(CamelModel):
  content_type: ContentType
  content_text: StrictStr = Field(min_length=1)
  content_id: StrictStr | None = None
  title: StrictStr | None = None
  description: StrictStr | None = None
  metadata: dict[str, Any] = Field(default_factory=dict)


class ContentBatchRequest(CamelModel):
  course_id: StrictStr = Field(min_length=1)
  items: list[ContentBatchItem] = Field(min_length=1, max_length=100)


class ContentUpdateRequest(CamelModel):
  """Replace the text (and vector) of an existing embedding."""

  content_text: StrictStr = Field(min_length=1)
  title: StrictStr | None = None
  description: StrictStr | None = None
  metadata: dict[str, Any] | None = None


class EmbeddingResponse(CamelModel):
  """Stored embedding without its raw vector."""

  id: str
  course_id: str
  content_id: str | None = None
  content_type: ContentType
  content_text: str
  title: str | None = None
  description: str | None = None
  metadata: dict[str, Any] = Field(default_factory=dict)
  dimension: int
  is_active: bool
  created_at: datetime
  updated_at: datetime

  @classmethod
  def from_row(cls, row: VectorEmbedding) -> EmbeddingResponse:
    return cls(
      id=row.id,
      course_id=row.course_id,
      content_id=row.content_id,
      content_type=row.content_type,
      content_text=row.content_text,
      title=row.title,
      description=row.description,
      metadata=row.metadata,
      dimension=row.dimension,
      is_active=row.is_active,
      created_at=row.created_at,
      updated_at=row.updated_at,
    )


class EmbeddingBatchResponse(CamelModel):
  items: list[EmbeddingResponse]


class EmbeddingListResponse(CamelModel):
  items: list[EmbeddingResponse]
  total: int
  page: int
  limit: int
