"""Repository selection based on the configured storage backend."""

from __future__ import annotations

from coursegen.config import Settings
from coursegen.storage.embeddings_repo import EmbeddingsRepository
from coursegen.storage.jobs_repo import JobsRepository
from coursegen.storage.memory_embeddings_repo import InMemoryEmbeddingsRepository
from coursegen.storage.memory_jobs_repo import InMemoryJobsRepository


def build_jobs_repo(settings: Settings) -> JobsRepository:
  if settings.storage_backend == "postgres":
    from coursegen.storage.postgres_jobs_repo import PostgresJobsRepository

    return PostgresJobsRepository()
  return InMemoryJobsRepository()


def build_embeddings_repo(settings: Settings) -> EmbeddingsRepository:
  if settings.storage_backend == "postgres":
    from coursegen.storage.postgres_embeddings_repo import PostgresEmbeddingsRepository

    return PostgresEmbeddingsRepository()
  return InMemoryEmbeddingsRepository()
