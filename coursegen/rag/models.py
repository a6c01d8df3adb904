"""Domain models for stored content embeddings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

ContentType = Literal["course", "topic", "subtopic", "quiz", "flashcard", "transcript", "notes"]

CONTENT_TYPES: tuple[str, ...] = ("course", "topic", "subtopic", "quiz", "flashcard", "transcript", "notes")


def utcnow() -> datetime:
  return datetime.now(UTC)


@dataclass
class VectorEmbedding:
  """A piece of course content and its embedding vector."""

  id: str
  course_id: str
  content_type: ContentType
  content_text: str
  embedding_vector: list[float]
  created_at: datetime
  updated_at: datetime
  content_id: str | None = None
  title: str | None = None
  description: str | None = None
  metadata: dict[str, Any] = field(default_factory=dict)
  is_active: bool = True

  @property
  def dimension(self) -> int:
    return len(self.embedding_vector)


@dataclass(frozen=True)
class ContentItem:
  """Input for storing one piece of content."""

  content_type: ContentType
  content_text: str
  content_id: str | None = None
  title: str | None = None
  description: str | None = None
  metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchHit:
  """One ranked search result."""

  id: str
  content: str
  title: str | None
  description: str | None
  content_type: ContentType
  similarity_score: float
  metadata: dict[str, Any]
  created_at: datetime
