"""Vector store: embeds course content and ranks it for retrieval."""

from __future__ import annotations

import asyncio
import logging
import re
import weakref
from collections.abc import Iterable
from typing import Any, Protocol

from coursegen.errors import EmbeddingDimensionError, NotFoundError
from coursegen.pipeline.backoff import call_with_timeout
from coursegen.rag.models import CONTENT_TYPES, ContentItem, ContentType, SearchHit, VectorEmbedding, utcnow
from coursegen.rag.similarity import rank
from coursegen.storage.embeddings_repo import EmbeddingsRepository
from coursegen.utils.ids import generate_embedding_id

NO_CONTEXT_TEMPLATE = "Course ID: {course_id}. No specific content found for this question."

_DATA_IMAGE_RE = re.compile(r"data:image/[a-zA-Z0-9.+-]+;base64,[A-Za-z0-9+/=\s]+")


class Embedder(Protocol):
  """Embedding capability of the content generator."""

  async def embed(self, text: str) -> list[float]:
    """Return the embedding vector for a text."""


def prepare_embedding_text(text: str, max_chars: int) -> str:
  """Strip inline base64 images and clamp length before embedding."""
  cleaned = _DATA_IMAGE_RE.sub("[image]", text)
  if len(cleaned) > max_chars:
    return cleaned[:max_chars]
  return cleaned


def _truncate(text: str, limit: int) -> str:
  if len(text) <= limit:
    return text
  return text[: max(limit - 3, 0)].rstrip() + "..."


class VectorStore:
  """Own every VectorEmbedding row; all writes go through this API."""

  def __init__(self, *, repo: EmbeddingsRepository, embedder: Embedder, dimension: int, context_chars_per_hit: int = 1000, max_embedding_chars: int = 8000, logger: logging.Logger | None = None) -> None:
    self._repo = repo
    self._embedder = embedder
    self._dimension = dimension
    self._context_chars_per_hit = context_chars_per_hit
    self._max_embedding_chars = max_embedding_chars
    self._logger = logger or logging.getLogger(__name__)
    self._row_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

  @property
  def dimension(self) -> int:
    return self._dimension

  def _row_lock(self, embedding_id: str) -> asyncio.Lock:
    lock = self._row_locks.get(embedding_id)
    if lock is None:
      lock = asyncio.Lock()
      self._row_locks[embedding_id] = lock
    return lock

  def _validate(self, vector: list[float]) -> list[float]:
    if len(vector) != self._dimension:
      raise EmbeddingDimensionError(expected=self._dimension, actual=len(vector))
    return [float(value) for value in vector]

  async def _embed(self, text: str, timeout: float | None = None) -> list[float]:
    prepared = prepare_embedding_text(text, self._max_embedding_chars)
    vector = await call_with_timeout(lambda: self._embedder.embed(prepared), timeout)
    return self._validate(list(vector))

  async def store(self, course_id: str, content_type: ContentType, content_text: str, content_id: str | None = None, title: str | None = None, description: str | None = None, metadata: dict[str, Any] | None = None, *, embed_timeout: float | None = None) -> VectorEmbedding:
    """Embed and persist one piece of content; embed_timeout bounds the embedding call only."""
    if content_type not in CONTENT_TYPES:
      raise ValueError(f"Unsupported content type '{content_type}'.")
    if not content_text.strip():
      raise ValueError("Content text must not be empty.")

    vector = await self._embed(content_text, embed_timeout)
    timestamp = utcnow()
    row = VectorEmbedding(id=generate_embedding_id(), course_id=course_id, content_type=content_type, content_text=content_text, embedding_vector=vector, created_at=timestamp, updated_at=timestamp, content_id=content_id, title=title, description=description, metadata=dict(metadata or {}))
    await self._repo.save(row)
    self._logger.info("Stored embedding id=%s course_id=%s content_type=%s", row.id, course_id, content_type)
    return row

  async def batch_store(self, course_id: str, items: Iterable[ContentItem]) -> list[VectorEmbedding]:
    """Store several items, embedding them concurrently."""
    items = list(items)
    # gather keeps input order, so results line up with items.
    return list(await asyncio.gather(*(self.store(course_id, item.content_type, item.content_text, content_id=item.content_id, title=item.title, description=item.description, metadata=item.metadata) for item in items)))

  async def get(self, embedding_id: str) -> VectorEmbedding:
    row = await self._repo.find_by_id(embedding_id)
    if row is None:
      raise NotFoundError("Embedding", embedding_id)
    return row

  async def search(self, course_id: str, query: str, limit: int = 5, content_type: ContentType | None = None) -> list[SearchHit]:
    """Rank active course content by cosine similarity to the query."""
    if limit <= 0:
      return []

    query_vector = await self._embed(query)
    rows = await self._repo.find_active_by_course(course_id, content_type)
    # Rows embedded under an older dimension cannot be scored against the current model.
    compatible = [row for row in rows if row.dimension == self._dimension]
    if len(compatible) != len(rows):
      self._logger.warning("Skipping %d embeddings with a stale dimension for course_id=%s", len(rows) - len(compatible), course_id)

    ranked = rank(query_vector, compatible, limit)
    return [SearchHit(id=row.id, content=row.content_text, title=row.title, description=row.description, content_type=row.content_type, similarity_score=score, metadata=dict(row.metadata), created_at=row.created_at) for row, score in ranked]

  async def assemble_context(self, course_id: str, question: str, max_results: int = 3) -> str:
    """Format the best matches into a bounded prompt context."""
    hits = await self.search(course_id, question, limit=max_results)
    return self.format_context(course_id, hits)

  def format_context(self, course_id: str, hits: list[SearchHit]) -> str:
    """Render hits as prompt context, or a fallback sentinel when there are none."""
    if not hits:
      return NO_CONTEXT_TEMPLATE.format(course_id=course_id)

    blocks = [f"Course Context for AI Buddy (Course ID: {course_id}):\n"]
    for index, hit in enumerate(hits, start=1):
      lines = [f"Relevant Content {index} ({hit.content_type}):"]
      if hit.title:
        lines.append(f"Title: {hit.title}")
      lines.append(f"Content: {_truncate(hit.content, self._context_chars_per_hit)}")
      if hit.description:
        lines.append(f"Description: {hit.description}")
      lines.append(f"Relevance Score: {hit.similarity_score * 100:.1f}%")
      blocks.append("\n".join(lines) + "\n")
    return "\n".join(blocks)

  async def update(self, embedding_id: str, new_content_text: str, *, title: str | None = None, description: str | None = None, metadata: dict[str, Any] | None = None) -> VectorEmbedding:
    """Replace text and vector in place; the row keeps its id."""
    if not new_content_text.strip():
      raise ValueError("Content text must not be empty.")

    # Re-embed under the row lock so concurrent edits never pair one text with another vector.
    async with self._row_lock(embedding_id):
      await self.get(embedding_id)
      vector = await self._embed(new_content_text)
      row = await self._repo.update(embedding_id, content_text=new_content_text, embedding_vector=vector, title=title, description=description, metadata=metadata, updated_at=utcnow())
      if row is None:
        raise NotFoundError("Embedding", embedding_id)

    self._logger.info("Updated embedding id=%s", embedding_id)
    return row

  async def soft_delete(self, embedding_id: str) -> VectorEmbedding:
    """Hide a row from search while keeping it for audit."""
    async with self._row_lock(embedding_id):
      row = await self._repo.update(embedding_id, is_active=False, updated_at=utcnow())
    if row is None:
      raise NotFoundError("Embedding", embedding_id)
    self._logger.info("Deactivated embedding id=%s", embedding_id)
    return row

  async def delete(self, embedding_id: str) -> None:
    """Remove a row permanently."""
    async with self._row_lock(embedding_id):
      deleted = await self._repo.delete(embedding_id)
    if not deleted:
      raise NotFoundError("Embedding", embedding_id)
    self._logger.info("Deleted embedding id=%s", embedding_id)

  async def list_by_course(self, course_id: str, *, content_type: ContentType | None = None, page: int = 1, limit: int = 20) -> tuple[list[VectorEmbedding], int]:
    page = max(page, 1)
    return await self._repo.list_by_course(course_id, content_type=content_type, limit=limit, offset=(page - 1) * limit)
