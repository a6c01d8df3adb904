"""SQLAlchemy table definitions."""

from coursegen.schema.embeddings import VectorEmbeddingRow
from coursegen.schema.jobs import GenerationJobRow

__all__ = ["GenerationJobRow", "VectorEmbeddingRow"]
