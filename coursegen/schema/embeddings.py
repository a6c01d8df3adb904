from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from coursegen.core.database import Base


class VectorEmbeddingRow(Base):
  __tablename__ = "vector_embeddings"
  __table_args__ = (Index("ix_vector_embeddings_course_active", "course_id", "content_type", postgresql_where=text("is_active")),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  course_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  content_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  content_type: Mapped[str] = mapped_column(String, nullable=False)
  content_text: Mapped[str] = mapped_column(Text, nullable=False)
  # Stored as a JSON float array; similarity is computed in-process.
  embedding: Mapped[list] = mapped_column(JSONB, nullable=False)
  title: Mapped[str | None] = mapped_column(String, nullable=True)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  metadata_json: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb"))
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
