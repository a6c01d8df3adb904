"""Storage interfaces for content embeddings."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from coursegen.rag.models import ContentType, VectorEmbedding


class EmbeddingsRepository(Protocol):
  """Repository contract for embedding persistence."""

  async def save(self, row: VectorEmbedding) -> None:
    """Insert a new embedding row."""

  async def find_by_id(self, embedding_id: str) -> VectorEmbedding | None:
    """Fetch one row, active or not."""

  async def find_active_by_course(self, course_id: str, content_type: ContentType | None = None) -> list[VectorEmbedding]:
    """Return every active row for a course."""

  async def update(
    self,
    embedding_id: str,
    *,
    content_text: str | None = None,
    embedding_vector: list[float] | None = None,
    title: str | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    is_active: bool | None = None,
    updated_at: datetime | None = None,
  ) -> VectorEmbedding | None:
    """Apply partial updates in place, keeping the id."""

  async def delete(self, embedding_id: str) -> bool:
    """Remove a row; return False when it did not exist."""

  async def list_by_course(self, course_id: str, *, content_type: ContentType | None = None, limit: int = 20, offset: int = 0) -> tuple[list[VectorEmbedding], int]:
    """Return a page of active rows (newest first) and the total count."""
