"""In-process embedding repository used for local runs and tests."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from coursegen.rag.models import ContentType, VectorEmbedding


def _copy(row: VectorEmbedding) -> VectorEmbedding:
  return replace(row, embedding_vector=list(row.embedding_vector), metadata=dict(row.metadata))


class InMemoryEmbeddingsRepository:
  """Dict-backed store indexed by course; no method suspends, so each call is atomic on the event loop."""

  def __init__(self) -> None:
    self._rows: dict[str, VectorEmbedding] = {}
    self._by_course: dict[str, set[str]] = {}

  async def save(self, row: VectorEmbedding) -> None:
    if row.id in self._rows:
      raise ValueError(f"Embedding '{row.id}' already exists.")
    self._rows[row.id] = _copy(row)
    self._by_course.setdefault(row.course_id, set()).add(row.id)

  async def find_by_id(self, embedding_id: str) -> VectorEmbedding | None:
    row = self._rows.get(embedding_id)
    return _copy(row) if row is not None else None

  async def find_active_by_course(self, course_id: str, content_type: ContentType | None = None) -> list[VectorEmbedding]:
    rows = [self._rows[row_id] for row_id in self._by_course.get(course_id, ())]
    return [_copy(row) for row in rows if row.is_active and (content_type is None or row.content_type == content_type)]

  async def update(self, embedding_id: str, **fields: Any) -> VectorEmbedding | None:
    row = self._rows.get(embedding_id)
    if row is None:
      return None
    changes = {key: value for key, value in fields.items() if value is not None}
    updated = replace(row, **changes)
    self._rows[embedding_id] = updated
    return _copy(updated)

  async def delete(self, embedding_id: str) -> bool:
    row = self._rows.pop(embedding_id, None)
    if row is None:
      return False
    self._by_course.get(row.course_id, set()).discard(embedding_id)
    return True

  async def list_by_course(self, course_id: str, *, content_type: ContentType | None = None, limit: int = 20, offset: int = 0) -> tuple[list[VectorEmbedding], int]:
    rows = await self.find_active_by_course(course_id, content_type)
    rows.sort(key=lambda row: row.created_at, reverse=True)
    return rows[offset : offset + limit], len(rows)
