"""Cosine similarity scoring and ranking over raw embedding vectors."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from coursegen.errors import EmbeddingDimensionError
from coursegen.rag.models import VectorEmbedding


def score_rows(query_vector: Sequence[float], rows: Sequence[VectorEmbedding]) -> list[float]:
  """Score all rows against the query in one matrix product."""
  if not rows:
    return []

  query = np.asarray(query_vector, dtype=np.float64)
  matrix = np.asarray([row.embedding_vector for row in rows], dtype=np.float64)
  if matrix.ndim != 2 or matrix.shape[1] != query.shape[0]:
    actual = matrix.shape[1] if matrix.ndim == 2 else 0
    raise EmbeddingDimensionError(expected=query.shape[0], actual=actual)

  norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
  dots = matrix @ query
  # Zero-norm rows (or a zero query) get similarity 0 instead of NaN.
  scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)
  return [float(score) for score in np.clip(scores, -1.0, 1.0)]


def rank(query_vector: Sequence[float], rows: Sequence[VectorEmbedding], limit: int) -> list[tuple[VectorEmbedding, float]]:
  """Return the top rows by descending score, newer rows first on ties."""
  if limit <= 0:
    return []
  scored = list(zip(rows, score_rows(query_vector, rows), strict=True))
  scored.sort(key=lambda pair: (-pair[1], -pair[0].created_at.timestamp()))
  return scored[:limit]
