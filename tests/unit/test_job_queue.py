from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from coursegen.errors import QueueFullError
from coursegen.jobs.models import GenerationJob
from coursegen.jobs.progress import ProgressTracker
from coursegen.jobs.queue import JobQueue
from coursegen.pipeline.contracts import GenerationParams, SectionOverride, SectionSpec
from coursegen.storage.memory_jobs_repo import InMemoryJobsRepository


class FakeRunner:
  """Runner double that claims and completes jobs, optionally pausing or failing."""

  def __init__(self, tracker: ProgressTracker) -> None:
    self.tracker = tracker
    self.started: list[str] = []
    self.gate: asyncio.Event | None = None
    self.wait_for_cancel = False
    self.error: Exception | None = None
    self.running = 0
    self.max_running = 0

  async def run(self, job_id: str, cancel_event: asyncio.Event) -> GenerationJob:
    self.started.append(job_id)
    if cancel_event.is_set():
      return await self.tracker.cancel(job_id)

    await self.tracker.claim(job_id)
    self.running += 1
    self.max_running = max(self.max_running, self.running)
    try:
      if self.gate is not None:
        await self.gate.wait()
      if self.wait_for_cancel:
        await cancel_event.wait()
      if self.error is not None:
        raise self.error
    finally:
      self.running -= 1

    if cancel_event.is_set():
      return await self.tracker.cancel(job_id)
    return await self.tracker.complete(job_id, {"jobId": job_id})


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
  async with asyncio.timeout(timeout):
    while not predicate():
      await asyncio.sleep(0.01)


async def drain(queue: JobQueue, timeout: float = 2.0) -> None:
  await wait_until(lambda: queue.depth == 0 and not queue.active_jobs(), timeout)


def make_params(**overrides: object) -> GenerationParams:
  return GenerationParams(course_title="Intro", sections=[SectionSpec(title="Basics", subtopics=["One", "Two"])], **overrides)


@pytest.fixture
def tracker() -> ProgressTracker:
  return ProgressTracker(jobs_repo=InMemoryJobsRepository(), max_retries=3)


@pytest.fixture
def runner(tracker: ProgressTracker) -> FakeRunner:
  return FakeRunner(tracker)


def make_queue(tracker: ProgressTracker, runner: FakeRunner, *, workers: int = 2, capacity: int = 10) -> JobQueue:
  return JobQueue(tracker=tracker, runner=runner, worker_count=workers, capacity=capacity, shutdown_grace_seconds=1.0)


@pytest.mark.anyio
async def test_submit_same_roadmap_returns_existing_job(tracker: ProgressTracker, runner: FakeRunner) -> None:
  queue = make_queue(tracker, runner)
  first = await queue.submit("course-1", "r1", make_params())
  second = await queue.submit("course-1", "r1", make_params())
  assert first == second
  assert queue.depth == 1
  _, total = await tracker.list_jobs()
  assert total == 1


@pytest.mark.anyio
async def test_submit_records_plan_totals_and_request(tracker: ProgressTracker, runner: FakeRunner) -> None:
  queue = make_queue(tracker, runner)
  params = make_params(per_section_overrides={0: SectionOverride(subtopics=["Only"])}, session_id="session-9")
  job_id = await queue.submit("course-1", "r1", params)
  job = await tracker.snapshot(job_id)
  assert job.total_sections == 1
  assert job.total_subtopics == 1
  assert job.session_id == "session-9"
  assert job.request["courseTitle"] == "Intro"
  restored = GenerationParams.model_validate(job.request)
  assert restored.per_section_overrides[0].subtopics == ["Only"]
  assert restored.session_id == "session-9"


@pytest.mark.anyio
async def test_submit_rejects_unknown_override_index(tracker: ProgressTracker, runner: FakeRunner) -> None:
  queue = make_queue(tracker, runner)
  with pytest.raises(ValueError):
    await queue.submit("course-1", "r1", make_params(per_section_overrides={3: SectionOverride(title="Nope")}))
  _, total = await tracker.list_jobs()
  assert total == 0


@pytest.mark.anyio
async def test_full_queue_raises_without_creating_a_job(tracker: ProgressTracker, runner: FakeRunner) -> None:
  queue = make_queue(tracker, runner, capacity=2)
  await queue.submit("course-1", "r1", make_params())
  await queue.submit("course-1", "r2", make_params())
  with pytest.raises(QueueFullError):
    await queue.submit("course-1", "r3", make_params())
  _, total = await tracker.list_jobs()
  assert total == 2


@pytest.mark.anyio
async def test_workers_process_jobs_to_completion(tracker: ProgressTracker, runner: FakeRunner) -> None:
  queue = make_queue(tracker, runner)
  job_ids = [await queue.submit("course-1", f"r{index}", make_params()) for index in range(3)]
  await queue.start()
  try:
    await drain(queue)
  finally:
    await queue.stop()

  for job_id in job_ids:
    assert (await tracker.snapshot(job_id)).status == "completed"
  # FIFO dispatch order.
  assert runner.started == job_ids


@pytest.mark.anyio
async def test_concurrency_is_bounded_by_worker_count(tracker: ProgressTracker, runner: FakeRunner) -> None:
  runner.gate = asyncio.Event()
  queue = make_queue(tracker, runner, workers=2)
  for index in range(4):
    await queue.submit("course-1", f"r{index}", make_params())
  await queue.start()
  try:
    await wait_until(lambda: runner.running == 2)
    await asyncio.sleep(0.05)
    assert runner.max_running == 2
    assert len(queue.active_jobs()) == 2
    runner.gate.set()
    await drain(queue)
  finally:
    await queue.stop()
  assert runner.max_running == 2
  assert len(runner.started) == 4


@pytest.mark.anyio
async def test_cancel_before_dispatch_cancels_without_running(tracker: ProgressTracker, runner: FakeRunner) -> None:
  queue = make_queue(tracker, runner)
  job_id = await queue.submit("course-1", "r1", make_params())
  snapshot = await queue.cancel(job_id)
  assert snapshot.status == "cancelled"
  assert snapshot.started_at is None
  # The roadmap is free before any worker touches the job.
  assert await tracker.find_active("r1") is None

  await queue.start()
  try:
    await drain(queue)
  finally:
    await queue.stop()
  assert (await tracker.snapshot(job_id)).status == "cancelled"
  assert not queue.is_cancel_requested(job_id)
  assert runner.started == []


@pytest.mark.anyio
async def test_cancel_terminal_job_is_noop(tracker: ProgressTracker, runner: FakeRunner) -> None:
  queue = make_queue(tracker, runner)
  job_id = await queue.submit("course-1", "r1", make_params())
  await queue.start()
  try:
    await drain(queue)
    job = await queue.cancel(job_id)
  finally:
    await queue.stop()
  assert job.status == "completed"
  assert not queue.is_cancel_requested(job_id)


@pytest.mark.anyio
async def test_second_dispatch_of_same_job_is_refused(tracker: ProgressTracker, runner: FakeRunner) -> None:
  runner.gate = asyncio.Event()
  queue = make_queue(tracker, runner)
  job_id = await queue.submit("course-1", "r1", make_params())

  first = asyncio.create_task(queue._process(job_id))
  await wait_until(lambda: runner.running == 1)
  await queue._process(job_id)
  runner.gate.set()
  await first

  assert runner.started == [job_id]
  assert (await tracker.snapshot(job_id)).status == "completed"


@pytest.mark.anyio
async def test_worker_survives_runner_errors(tracker: ProgressTracker, runner: FakeRunner) -> None:
  runner.error = RuntimeError("storage offline")
  queue = make_queue(tracker, runner, workers=1)
  failing = await queue.submit("course-1", "r1", make_params())
  await queue.start()
  try:
    await drain(queue)
    runner.error = None
    healthy = await queue.submit("course-1", "r2", make_params())
    await drain(queue)
  finally:
    await queue.stop()

  failed = await tracker.snapshot(failing)
  assert failed.status == "failed"
  assert "storage offline" in (failed.failure_reason or "")
  assert (await tracker.snapshot(healthy)).status == "completed"


@pytest.mark.anyio
async def test_stop_requests_cancellation_of_running_jobs(tracker: ProgressTracker, runner: FakeRunner) -> None:
  runner.wait_for_cancel = True
  queue = make_queue(tracker, runner, workers=1)
  job_id = await queue.submit("course-1", "r1", make_params())
  await queue.start()
  await wait_until(lambda: runner.running == 1)

  await queue.stop()
  assert not queue.running
  assert (await tracker.snapshot(job_id)).status == "cancelled"


@pytest.mark.anyio
async def test_start_requeues_pending_jobs_left_by_an_earlier_process() -> None:
  repo = InMemoryJobsRepository()
  earlier = ProgressTracker(jobs_repo=repo, max_retries=3)
  pending = await make_queue(earlier, FakeRunner(earlier)).submit("course-1", "r1", make_params())
  half_run = await make_queue(earlier, FakeRunner(earlier)).submit("course-1", "r2", make_params())
  await earlier.claim(half_run)

  tracker = ProgressTracker(jobs_repo=repo, max_retries=3)
  runner = FakeRunner(tracker)
  queue = make_queue(tracker, runner)
  await queue.start()
  try:
    await drain(queue)
  finally:
    await queue.stop()

  assert runner.started == [pending]
  assert (await tracker.snapshot(pending)).status == "completed"
  interrupted = await tracker.snapshot(half_run)
  assert interrupted.status == "failed"
  assert interrupted.error_log[-1].step == "started"
  assert "restart" in (interrupted.failure_reason or "")
  assert await tracker.find_active("r2") is None


@pytest.mark.anyio
async def test_start_does_not_requeue_jobs_already_queued(tracker: ProgressTracker, runner: FakeRunner) -> None:
  queue = make_queue(tracker, runner)
  job_id = await queue.submit("course-1", "r1", make_params())
  await queue.start()
  try:
    await drain(queue)
  finally:
    await queue.stop()
  assert runner.started == [job_id]


@pytest.mark.anyio
async def test_stop_after_grace_fails_job_stuck_in_a_step(tracker: ProgressTracker, runner: FakeRunner) -> None:
  runner.gate = asyncio.Event()
  queue = JobQueue(tracker=tracker, runner=runner, worker_count=1, capacity=10, shutdown_grace_seconds=0.05)
  job_id = await queue.submit("course-1", "r1", make_params())
  await queue.start()
  await wait_until(lambda: runner.running == 1)

  await queue.stop()
  runner.gate.set()

  job = await tracker.snapshot(job_id)
  assert job.status == "failed"
  assert job.error_log[-1].step == "started"
  assert "shut down" in (job.failure_reason or "")
  assert await tracker.find_active("r1") is None
