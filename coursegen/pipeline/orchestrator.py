"""Generation orchestrator: drives the ordered pipeline for one job."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from coursegen.errors import EmbeddingDimensionError, JobCanceledError, StepExecutionError, TerminalJobError
from coursegen.jobs.models import GenerationJob
from coursegen.jobs.progress import ProgressTracker
from coursegen.pipeline import materializer
from coursegen.pipeline.backoff import call_with_timeout, compute_backoff_delay
from coursegen.pipeline.contracts import (
  CREATE_FILE_STRUCTURE,
  FINALIZE,
  GENERATE_EMBEDDINGS,
  GENERATE_FLASHCARDS,
  GENERATE_QUIZ,
  GENERATE_ROADMAP_SECTIONS,
  GENERATE_SUBTOPIC_CONTENT,
  ArtifactWriter,
  ContentGenerator,
  GenerationParams,
  SubtopicContext,
)
from coursegen.pipeline.plan import PipelinePlan, UnitRef, build_plan, estimate_minutes_remaining, neighbour_summaries, progress_percentage
from coursegen.rag.store import VectorStore

Sleep = Callable[[float], Awaitable[None]]
T = TypeVar("T")


@dataclass
class _UnitOutput:
  unit: UnitRef
  markdown_path: str | None = None
  quiz_path: str | None = None
  flashcards_path: str | None = None
  embedding_id: str | None = None
  markdown: str = ""


@dataclass
class _RunState:
  job: GenerationJob
  params: GenerationParams
  plan: PipelinePlan
  cancel_event: asyncio.Event
  started: float = field(default_factory=time.monotonic)
  completed_units: int = 0
  outputs: list[_UnitOutput] = field(default_factory=list)


class GenerationOrchestrator:
  """Run create_file_structure, roadmap sections, per-subtopic steps and finalize for one job."""

  def __init__(
    self,
    *,
    tracker: ProgressTracker,
    generator: ContentGenerator,
    vector_store: VectorStore,
    writer: ArtifactWriter,
    backoff_base_seconds: float = 1.0,
    backoff_cap_seconds: float = 30.0,
    step_timeout_seconds: float | None = 120.0,
    minutes_per_subtopic: int = 8,
    sleep: Sleep = asyncio.sleep,
    logger: logging.Logger | None = None,
  ) -> None:
    self._tracker = tracker
    self._generator = generator
    self._vector_store = vector_store
    self._writer = writer
    self._backoff_base_seconds = backoff_base_seconds
    self._backoff_cap_seconds = backoff_cap_seconds
    self._step_timeout_seconds = step_timeout_seconds
    self._minutes_per_subtopic = minutes_per_subtopic
    self._sleep = sleep
    self._logger = logger or logging.getLogger(__name__)

  async def run(self, job_id: str, cancel_event: asyncio.Event) -> GenerationJob:
    """Execute the pipeline for a pending job and return its terminal snapshot."""
    # Jobs cancelled while still queued never start.
    if cancel_event.is_set():
      return await self._tracker.cancel(job_id)

    job = await self._tracker.claim(job_id)
    try:
      params = GenerationParams.model_validate(job.request)
      state = _RunState(job=job, params=params, plan=build_plan(params), cancel_event=cancel_event)
    except ValueError as exc:
      await self._tracker.fail(job_id, f"Invalid generation request: {exc}")
      raise TerminalJobError(job_id, "started", str(exc)) from exc

    self._logger.info("Starting pipeline job_id=%s sections=%d subtopics=%d", job_id, state.plan.total_sections, state.plan.total_subtopics)
    try:
      await self._execute(state, CREATE_FILE_STRUCTURE, lambda: self._create_file_structure(state))
      await self._advance(state, CREATE_FILE_STRUCTURE, substeps_done=0)

      await self._execute(state, GENERATE_ROADMAP_SECTIONS, lambda: self._write_roadmap(state))
      await self._advance(state, GENERATE_ROADMAP_SECTIONS, substeps_done=0)

      for unit_index, unit in enumerate(state.plan.units):
        await self._run_unit(state, unit_index, unit)

      payload = await self._execute(state, FINALIZE, lambda: self._finalize(state))
    except JobCanceledError:
      self._logger.info("Pipeline stopped on cancellation job_id=%s completed_units=%d", job_id, state.completed_units)
      return await self._tracker.cancel(job_id)
    except TerminalJobError:
      raise
    except Exception as exc:
      # Anything outside the step retry loop (tracker or storage failures) ends the job.
      self._logger.error("Pipeline aborted job_id=%s error=%s", job_id, exc, exc_info=True)
      await self._tracker.fail(job_id, f"Pipeline aborted: {exc}")
      raise TerminalJobError(job_id, state.job.current_step or "unknown", str(exc)) from exc

    return await self._tracker.complete(job_id, payload)

  async def _run_unit(self, state: _RunState, unit_index: int, unit: UnitRef) -> None:
    previous, following = neighbour_summaries(state.plan, unit_index)
    section = state.plan.sections[unit.section_index]
    context = SubtopicContext(
      course_title=state.params.course_title,
      section_index=unit.section_index,
      section_title=unit.section_title,
      subtopic_index=unit.subtopic_index,
      subtopic_title=unit.subtopic_title,
      previous_summary=previous,
      next_summary=following,
      instructions=section.instructions,
      course_description=state.params.course_description,
    )
    output = _UnitOutput(unit=unit)
    state.outputs.append(output)

    await self._execute(state, GENERATE_SUBTOPIC_CONTENT, lambda: self._generate_content(state, context, output))
    await self._advance(state, GENERATE_SUBTOPIC_CONTENT, substeps_done=1, unit=unit)

    await self._execute(state, GENERATE_QUIZ, lambda: self._generate_quiz(state, context, output))
    await self._advance(state, GENERATE_QUIZ, substeps_done=2, unit=unit)

    await self._execute(state, GENERATE_FLASHCARDS, lambda: self._generate_flashcards(state, context, output))
    await self._advance(state, GENERATE_FLASHCARDS, substeps_done=3, unit=unit)

    await self._execute(state, GENERATE_EMBEDDINGS, lambda: self._store_embedding(state, output))
    state.completed_units += 1
    await self._advance(state, GENERATE_EMBEDDINGS, substeps_done=0, unit=unit)

  async def _execute(self, state: _RunState, step: str, action: Callable[[], Awaitable[T]]) -> T:
    """Run one step with cooperative cancellation and bounded retries."""
    job_id = state.job.job_id
    while True:
      # Cancellation is only honoured between steps, never mid-step.
      if state.cancel_event.is_set():
        raise JobCanceledError(f"Job {job_id} was cancelled before {step}.")

      try:
        return await action()
      except EmbeddingDimensionError as exc:
        # Deterministic mismatch; retrying cannot succeed.
        job = await self._tracker.record_error(job_id, step, str(exc))
        if not job.is_terminal:
          await self._tracker.fail(job_id, str(exc))
        raise TerminalJobError(job_id, step, str(exc)) from exc
      except asyncio.CancelledError:
        # Shutdown cut the worker off inside this step.
        await asyncio.shield(self._fail_interrupted(job_id, step))
        raise
      except Exception as exc:  # noqa: BLE001
        error = exc if isinstance(exc, StepExecutionError) else StepExecutionError(step, str(exc) or type(exc).__name__)
        retries_spent = state.job.retry_count
        job = await self._tracker.record_error(job_id, step, error.message)
        state.job = job
        if job.is_terminal:
          raise TerminalJobError(job_id, step, error.message) from exc

        delay = compute_backoff_delay(retries_spent, base_seconds=self._backoff_base_seconds, cap_seconds=self._backoff_cap_seconds)
        self._logger.warning("Retrying step job_id=%s step=%s retry=%d/%d delay=%.2fs", job_id, step, job.retry_count, job.max_retries, delay)
        await self._sleep(delay)

  async def _fail_interrupted(self, job_id: str, step: str) -> None:
    try:
      await self._tracker.fail(job_id, f"Worker shut down during {step}", step=step)
    except Exception:  # noqa: BLE001
      self._logger.error("Could not record interrupted step job_id=%s step=%s", job_id, step, exc_info=True)

  async def _advance(self, state: _RunState, step: str, *, substeps_done: int, unit: UnitRef | None = None) -> None:
    total = state.plan.total_subtopics
    percentage = progress_percentage(state.completed_units, substeps_done, total)
    eta = estimate_minutes_remaining(total, state.completed_units, time.monotonic() - state.started, self._minutes_per_subtopic)
    section_index = unit.section_index if unit is not None else None
    subtopic_index = unit.subtopic_index if unit is not None else None
    state.job = await self._tracker.advance(state.job.job_id, step, percentage, section_index, subtopic_index, estimated_minutes_remaining=eta)

  async def _external(self, func: Callable[[], Awaitable[T]]) -> T:
    return await call_with_timeout(func, self._step_timeout_seconds)

  async def _create_file_structure(self, state: _RunState) -> None:
    course_id = state.job.course_id
    lines = [f"# {state.params.course_title}", ""]
    if state.params.course_description:
      lines.extend([state.params.course_description, ""])
    for section_index, section in enumerate(state.plan.sections):
      lines.append(f"## {section_index + 1}. {section.title}")
      lines.extend(f"- {subtopic}" for subtopic in section.subtopics)
      lines.append("")
    await self._writer.write_artifact(materializer.course_file_path(course_id, "README.md"), "\n".join(lines))
    manifest = {"courseId": course_id, "roadmapId": state.job.roadmap_id, "jobId": state.job.job_id, "title": state.params.course_title, "status": "processing", "sections": [section.title for section in state.plan.sections]}
    await self._writer.write_artifact(materializer.course_file_path(course_id, "manifest.json"), materializer.to_json(manifest))

  async def _write_roadmap(self, state: _RunState) -> None:
    roadmap = {section.title: list(section.subtopics) for section in state.plan.sections}
    await self._writer.write_artifact(materializer.course_file_path(state.job.course_id, "roadmap.json"), materializer.to_json(roadmap))

  async def _generate_content(self, state: _RunState, context: SubtopicContext, output: _UnitOutput) -> None:
    markdown = await self._external(lambda: self._generator.generate_subtopic_content(context))
    if not markdown.strip():
      raise StepExecutionError(GENERATE_SUBTOPIC_CONTENT, "Generator returned empty content.")
    path = materializer.subtopic_markdown_path(state.job.course_id, context.section_index, context.section_title, context.subtopic_index, context.subtopic_title)
    output.markdown_path = await self._writer.write_artifact(path, markdown)
    output.markdown = markdown

  async def _generate_quiz(self, state: _RunState, context: SubtopicContext, output: _UnitOutput) -> None:
    questions = await self._external(lambda: self._generator.generate_quiz(context, output.markdown))
    path = materializer.assessment_path(state.job.course_id, "quizzes", context.section_index, context.subtopic_index, context.subtopic_title)
    output.quiz_path = await self._writer.write_artifact(path, materializer.to_json({"title": context.subtopic_title, "questions": questions}))

  async def _generate_flashcards(self, state: _RunState, context: SubtopicContext, output: _UnitOutput) -> None:
    cards = await self._external(lambda: self._generator.generate_flashcards(context, output.markdown))
    path = materializer.assessment_path(state.job.course_id, "flashcards", context.section_index, context.subtopic_index, context.subtopic_title)
    output.flashcards_path = await self._writer.write_artifact(path, materializer.to_json({"title": context.subtopic_title, "cards": cards}))

  async def _store_embedding(self, state: _RunState, output: _UnitOutput) -> None:
    unit = output.unit
    metadata = {"jobId": state.job.job_id, "roadmapId": state.job.roadmap_id, "sectionIndex": unit.section_index, "subtopicIndex": unit.subtopic_index, "markdownPath": output.markdown_path}
    # Only the embedding call is timed; once a vector exists the row must be saved.
    row = await self._vector_store.store(state.job.course_id, "subtopic", output.markdown, content_id=output.markdown_path, title=unit.subtopic_title, description=unit.section_title, metadata=metadata, embed_timeout=self._step_timeout_seconds)
    output.embedding_id = row.id

  async def _finalize(self, state: _RunState) -> dict[str, Any]:
    payload = self._build_final_payload(state)
    # The manifest on disk mirrors the final payload so the artifacts stand on their own.
    manifest = {**payload, "jobId": state.job.job_id, "status": "completed"}
    payload["manifestPath"] = await self._writer.write_artifact(materializer.course_file_path(state.job.course_id, "manifest.json"), materializer.to_json(manifest))
    return payload

  def _build_final_payload(self, state: _RunState) -> dict[str, Any]:
    sections: list[dict[str, Any]] = [{"title": section.title, "subtopics": []} for section in state.plan.sections]
    # Outputs are appended in plan order, so subtopics land in their original positions.
    for output in state.outputs:
      sections[output.unit.section_index]["subtopics"].append({"title": output.unit.subtopic_title, "markdownPath": output.markdown_path, "quizPath": output.quiz_path, "flashcardsPath": output.flashcards_path, "embeddingId": output.embedding_id})
    return {
      "courseId": state.job.course_id,
      "roadmapId": state.job.roadmap_id,
      "title": state.params.course_title,
      "sections": sections,
      "quizzes": [output.quiz_path for output in state.outputs if output.quiz_path],
      "flashcards": [output.flashcards_path for output in state.outputs if output.flashcards_path],
    }
