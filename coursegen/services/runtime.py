"""Explicit wiring of the generation components."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from coursegen.ai.providers import build_content_generator
from coursegen.config import Settings
from coursegen.jobs.progress import ProgressTracker
from coursegen.jobs.queue import JobQueue
from coursegen.notifications.gateway import NotificationGateway
from coursegen.pipeline.contracts import ArtifactWriter, ContentGenerator
from coursegen.pipeline.materializer import FileArtifactWriter
from coursegen.pipeline.orchestrator import GenerationOrchestrator
from coursegen.rag.store import VectorStore
from coursegen.storage.embeddings_repo import EmbeddingsRepository
from coursegen.storage.factory import build_embeddings_repo, build_jobs_repo
from coursegen.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


@dataclass
class CourseGenRuntime:
  """Every long-lived component the API needs, built once per process."""

  settings: Settings
  jobs_repo: JobsRepository
  embeddings_repo: EmbeddingsRepository
  generator: ContentGenerator
  gateway: NotificationGateway
  tracker: ProgressTracker
  vector_store: VectorStore
  writer: ArtifactWriter
  orchestrator: GenerationOrchestrator
  queue: JobQueue

  async def start(self) -> None:
    await self.queue.start()

  async def stop(self) -> None:
    await self.queue.stop()


def build_runtime(settings: Settings, *, jobs_repo: JobsRepository | None = None, embeddings_repo: EmbeddingsRepository | None = None, generator: ContentGenerator | None = None, writer: ArtifactWriter | None = None) -> CourseGenRuntime:
  """Construct the component graph; callers may inject any collaborator."""
  jobs_repo = jobs_repo or build_jobs_repo(settings)
  embeddings_repo = embeddings_repo or build_embeddings_repo(settings)
  generator = generator or build_content_generator(settings)
  writer = writer or FileArtifactWriter(settings.artifacts_dir)

  gateway = NotificationGateway(snapshots=jobs_repo, buffer_size=settings.subscriber_buffer_size, logger=logging.getLogger("coursegen.notifications"))
  tracker = ProgressTracker(jobs_repo=jobs_repo, publisher=gateway, max_retries=settings.max_retries, minutes_per_subtopic=settings.minutes_per_subtopic, logger=logging.getLogger("coursegen.jobs.progress"))
  vector_store = VectorStore(repo=embeddings_repo, embedder=generator, dimension=settings.embedding_dimension, context_chars_per_hit=settings.context_chars_per_hit, max_embedding_chars=settings.max_embedding_chars, logger=logging.getLogger("coursegen.rag"))
  orchestrator = GenerationOrchestrator(
    tracker=tracker,
    generator=generator,
    vector_store=vector_store,
    writer=writer,
    backoff_base_seconds=settings.retry_backoff_base_seconds,
    backoff_cap_seconds=settings.retry_backoff_cap_seconds,
    step_timeout_seconds=settings.step_timeout_seconds,
    minutes_per_subtopic=settings.minutes_per_subtopic,
    logger=logging.getLogger("coursegen.pipeline"),
  )
  queue = JobQueue(tracker=tracker, runner=orchestrator, worker_count=settings.worker_count, capacity=settings.queue_capacity, shutdown_grace_seconds=settings.shutdown_grace_seconds, logger=logging.getLogger("coursegen.jobs.queue"))

  logger.info("Runtime built storage=%s provider=%s workers=%d", settings.storage_backend, settings.content_provider, settings.worker_count)
  return CourseGenRuntime(settings=settings, jobs_repo=jobs_repo, embeddings_repo=embeddings_repo, generator=generator, gateway=gateway, tracker=tracker, vector_store=vector_store, writer=writer, orchestrator=orchestrator, queue=queue)
