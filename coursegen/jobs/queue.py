"""Bounded FIFO job queue with a fixed-size asyncio worker pool."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from coursegen.errors import DuplicateJobError, NotFoundError, QueueFullError, TerminalJobError
from coursegen.jobs.models import GenerationJob
from coursegen.jobs.progress import ProgressTracker
from coursegen.pipeline.contracts import GenerationParams
from coursegen.pipeline.plan import build_plan, validate_overrides


class JobRunner(Protocol):
  """Executes one claimed job until it reaches a terminal state."""

  async def run(self, job_id: str, cancel_event: asyncio.Event) -> GenerationJob:
    """Run the job pipeline."""


class JobQueue:
  """Decouple submission from execution with N workers and per-job mutual exclusion."""

  def __init__(self, *, tracker: ProgressTracker, runner: JobRunner, worker_count: int = 4, capacity: int = 100, shutdown_grace_seconds: float = 10.0, logger: logging.Logger | None = None) -> None:
    self._tracker = tracker
    self._runner = runner
    self._worker_count = max(worker_count, 1)
    self._capacity = max(capacity, 1)
    self._shutdown_grace_seconds = shutdown_grace_seconds
    self._logger = logger or logging.getLogger(__name__)
    self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self._capacity)
    self._reserved = 0
    self._queued: set[str] = set()
    self._job_locks: dict[str, asyncio.Lock] = {}
    self._cancel_flags: dict[str, asyncio.Event] = {}
    self._active: set[str] = set()
    self._idle = asyncio.Event()
    self._idle.set()
    self._workers: list[asyncio.Task[None]] = []

  @property
  def capacity(self) -> int:
    return self._capacity

  @property
  def depth(self) -> int:
    return self._queue.qsize()

  @property
  def running(self) -> bool:
    return bool(self._workers)

  def active_jobs(self) -> set[str]:
    return set(self._active)

  async def start(self) -> None:
    if self.running:
      return
    await self._recover()
    self._workers = [asyncio.create_task(self._worker(index), name=f"coursegen-worker-{index}") for index in range(self._worker_count)]
    self._logger.info("Job queue started workers=%d capacity=%d", self._worker_count, self._capacity)

  async def stop(self) -> None:
    """Ask running jobs to stop at their next step boundary, then tear the workers down."""
    if not self.running:
      return

    for job_id in self._active:
      self._cancel_flags.setdefault(job_id, asyncio.Event()).set()
    if self._active and self._shutdown_grace_seconds > 0:
      try:
        await asyncio.wait_for(self._idle.wait(), timeout=self._shutdown_grace_seconds)
      except TimeoutError:
        self._logger.warning("Shutdown grace period elapsed with active jobs: %s", sorted(self._active))

    # Workers still inside a step fail their job on the way out.
    for task in self._workers:
      task.cancel()
    await asyncio.gather(*self._workers, return_exceptions=True)
    self._workers = []
    self._logger.info("Job queue stopped pending=%d", self._queue.qsize())

  async def submit(self, course_id: str, roadmap_id: str, params: GenerationParams) -> str:
    """Create and enqueue a job, or return the in-flight job for the same roadmap."""
    validate_overrides(params)
    existing = await self._tracker.find_active(roadmap_id)
    if existing is not None:
      self._logger.info("Coalescing submission roadmap_id=%s into job_id=%s", roadmap_id, existing.job_id)
      return existing.job_id

    # Reserve a slot before creating the job so a full queue never leaves an orphaned pending job.
    if self._queue.qsize() + self._reserved >= self._capacity:
      raise QueueFullError(self._capacity)
    self._reserved += 1
    try:
      plan = build_plan(params)
      request: dict[str, Any] = params.model_dump(mode="json", by_alias=True)
      job_id = await self._tracker.create(course_id, roadmap_id, plan.total_sections, plan.total_subtopics, session_id=params.session_id, request=request)
    except DuplicateJobError as exc:
      self._logger.info("Coalescing concurrent submission roadmap_id=%s into job_id=%s", roadmap_id, exc.existing_job_id)
      return exc.existing_job_id
    finally:
      self._reserved -= 1

    self._enqueue(job_id)
    return job_id

  async def cancel(self, job_id: str) -> GenerationJob:
    """Cancel a queued job at once, or ask a running one to stop at its next step boundary."""
    job = await self._tracker.snapshot(job_id)
    if job.is_terminal or self.is_cancel_requested(job_id):
      return job
    self._cancel_flags.setdefault(job_id, asyncio.Event()).set()
    self._logger.info("Cancellation requested job_id=%s status=%s", job_id, job.status)

    # Nothing has run yet, so release the roadmap now; the worker skips the job on dequeue.
    if job.status == "pending":
      return await self._tracker.cancel(job_id)
    return job

  def is_cancel_requested(self, job_id: str) -> bool:
    flag = self._cancel_flags.get(job_id)
    return flag is not None and flag.is_set()

  def _enqueue(self, job_id: str) -> None:
    self._queue.put_nowait(job_id)
    self._queued.add(job_id)
    self._logger.info("Enqueued job_id=%s depth=%d", job_id, self._queue.qsize())

  async def _recover(self) -> None:
    """Re-dispatch pending jobs persisted by an earlier process and fail the ones it left half-run."""
    recovered = failed = 0
    for job in await self._tracker.list_unfinished():
      if job.job_id in self._queued or job.job_id in self._active:
        continue

      # Progress never rewinds, so a job interrupted mid-pipeline cannot restart from step one.
      if job.status == "processing":
        await self._tracker.fail(job.job_id, "Interrupted by a service restart", step=job.current_step or "started")
        failed += 1
      elif self._queue.full():
        await self._tracker.fail(job.job_id, "Queue full while recovering after a restart", step=job.current_step or "queued")
        failed += 1
      else:
        self._enqueue(job.job_id)
        recovered += 1

    if recovered or failed:
      self._logger.warning("Recovered unfinished jobs requeued=%d failed=%d", recovered, failed)

  async def _worker(self, index: int) -> None:
    while True:
      job_id = await self._queue.get()
      self._queued.discard(job_id)
      try:
        await self._process(job_id)
      finally:
        self._queue.task_done()

  async def _process(self, job_id: str) -> None:
    lock = self._job_locks.setdefault(job_id, asyncio.Lock())
    # Refuse rather than wait: a second dispatch of the same job is a duplicate.
    if lock.locked():
      self._logger.warning("Refusing duplicate dispatch job_id=%s; another worker holds it", job_id)
      return

    try:
      async with lock:
        cancel_event = self._cancel_flags.setdefault(job_id, asyncio.Event())
        self._active.add(job_id)
        self._idle.clear()
        try:
          await self._run(job_id, cancel_event)
        except asyncio.CancelledError:
          # Shutdown cut the step short; record it before the worker exits.
          await asyncio.shield(self._fail_interrupted(job_id))
          raise
        finally:
          self._active.discard(job_id)
          if not self._active:
            self._idle.set()
          self._cancel_flags.pop(job_id, None)
    finally:
      self._job_locks.pop(job_id, None)

  async def _run(self, job_id: str, cancel_event: asyncio.Event) -> None:
    try:
      job = await self._tracker.snapshot(job_id)
      if job.is_terminal:
        self._logger.info("Skipping dequeued job_id=%s status=%s", job_id, job.status)
        return
      job = await self._runner.run(job_id, cancel_event)
      self._logger.info("Job finished job_id=%s status=%s", job_id, job.status)
    except TerminalJobError as exc:
      self._logger.error("Job failed job_id=%s step=%s reason=%s", job_id, exc.step, exc.reason)
    except NotFoundError:
      self._logger.error("Dequeued unknown job_id=%s", job_id)
    except Exception as exc:  # noqa: BLE001
      self._logger.error("Worker error job_id=%s error=%s", job_id, exc, exc_info=True)
      await self._fail_quietly(job_id, f"Worker error: {exc}")

  async def _fail_interrupted(self, job_id: str) -> None:
    try:
      job = await self._tracker.snapshot(job_id)
    except Exception:  # noqa: BLE001
      self._logger.error("Could not load interrupted job_id=%s", job_id, exc_info=True)
      return
    await self._fail_quietly(job_id, "Worker shut down before the job finished", step=job.current_step or "started")

  async def _fail_quietly(self, job_id: str, reason: str, *, step: str | None = None) -> None:
    try:
      await self._tracker.fail(job_id, reason, step=step)
    except Exception:  # noqa: BLE001
      self._logger.error("Could not mark job failed job_id=%s", job_id, exc_info=True)
