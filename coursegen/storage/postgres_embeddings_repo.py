"""Postgres-backed repository for content embeddings using SQLAlchemy."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursegen.core.database import get_session_factory
from coursegen.rag.models import ContentType, VectorEmbedding
from coursegen.schema.embeddings import VectorEmbeddingRow

_COLUMN_FOR_FIELD = {"embedding_vector": "embedding", "metadata": "metadata_json"}


class PostgresEmbeddingsRepository:
  """Persist embeddings to Postgres; vectors live in a JSONB column."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def save(self, row: VectorEmbedding) -> None:
    async with self._session_factory() as session:
      session.add(
        VectorEmbeddingRow(
          id=row.id,
          course_id=row.course_id,
          content_id=row.content_id,
          content_type=row.content_type,
          content_text=row.content_text,
          embedding=list(row.embedding_vector),
          title=row.title,
          description=row.description,
          metadata_json=dict(row.metadata),
          is_active=row.is_active,
          created_at=row.created_at,
          updated_at=row.updated_at,
        )
      )
      await session.commit()

  async def find_by_id(self, embedding_id: str) -> VectorEmbedding | None:
    async with self._session_factory() as session:
      row = await session.get(VectorEmbeddingRow, embedding_id)
      return self._row_to_model(row) if row is not None else None

  async def find_active_by_course(self, course_id: str, content_type: ContentType | None = None) -> list[VectorEmbedding]:
    async with self._session_factory() as session:
      stmt = select(VectorEmbeddingRow).where(VectorEmbeddingRow.course_id == course_id, VectorEmbeddingRow.is_active.is_(True))
      if content_type is not None:
        stmt = stmt.where(VectorEmbeddingRow.content_type == content_type)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._row_to_model(row) for row in rows]

  async def update(self, embedding_id: str, **fields: Any) -> VectorEmbedding | None:
    async with self._session_factory() as session:
      # Lock the row so concurrent writers serialize per embedding only.
      row = await session.get(VectorEmbeddingRow, embedding_id, with_for_update=True)
      if row is None:
        return None
      for key, value in fields.items():
        if value is None:
          continue
        setattr(row, _COLUMN_FOR_FIELD.get(key, key), value)
      await session.commit()
      await session.refresh(row)
      return self._row_to_model(row)

  async def delete(self, embedding_id: str) -> bool:
    async with self._session_factory() as session:
      result = await session.execute(delete(VectorEmbeddingRow).where(VectorEmbeddingRow.id == embedding_id))
      await session.commit()
      return bool(result.rowcount)

  async def list_by_course(self, course_id: str, *, content_type: ContentType | None = None, limit: int = 20, offset: int = 0) -> tuple[list[VectorEmbedding], int]:
    async with self._session_factory() as session:
      filters = [VectorEmbeddingRow.course_id == course_id, VectorEmbeddingRow.is_active.is_(True)]
      if content_type is not None:
        filters.append(VectorEmbeddingRow.content_type == content_type)
      stmt = select(VectorEmbeddingRow).where(*filters).order_by(VectorEmbeddingRow.created_at.desc()).limit(limit).offset(offset)
      rows = (await session.execute(stmt)).scalars().all()
      total = (await session.execute(select(func.count()).select_from(VectorEmbeddingRow).where(*filters))).scalar_one()
      return [self._row_to_model(row) for row in rows], int(total)

  @staticmethod
  def _row_to_model(row: VectorEmbeddingRow) -> VectorEmbedding:
    return VectorEmbedding(
      id=row.id,
      course_id=row.course_id,
      content_type=row.content_type,  # type: ignore[arg-type]
      content_text=row.content_text,
      embedding_vector=[float(value) for value in row.embedding],
      created_at=row.created_at,
      updated_at=row.updated_at,
      content_id=row.content_id,
      title=row.title,
      description=row.description,
      metadata=dict(row.metadata_json or {}),
      is_active=row.is_active,
    )
