"""Test configuration for importing the application package."""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

# Ensure settings resolve to the offline stack before importing the app.
os.environ["COURSEGEN_ALLOWED_ORIGINS"] = "http://localhost"
os.environ["COURSEGEN_STORAGE_BACKEND"] = "memory"
os.environ["COURSEGEN_CONTENT_PROVIDER"] = "dummy"

import asyncio  # noqa: E402
from collections.abc import AsyncIterator, Iterator  # noqa: E402
from dataclasses import replace  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from coursegen.ai.providers.dummy import DummyContentGenerator  # noqa: E402
from coursegen.config import Settings, get_settings  # noqa: E402
from coursegen.main import app  # noqa: E402
from coursegen.pipeline.contracts import SubtopicContext  # noqa: E402
from coursegen.pipeline.materializer import FileArtifactWriter  # noqa: E402
from coursegen.services.runtime import CourseGenRuntime, build_runtime  # noqa: E402
from coursegen.storage.memory_embeddings_repo import InMemoryEmbeddingsRepository  # noqa: E402
from coursegen.storage.memory_jobs_repo import InMemoryJobsRepository  # noqa: E402

TEST_DIMENSION = 32


class ScriptedGenerator:
  """Dummy generator that can fail or pause specific calls on demand."""

  def __init__(self, dimension: int = TEST_DIMENSION) -> None:
    self._inner = DummyContentGenerator(dimension=dimension, quiz_questions=2, flashcards=2)
    self.calls: list[str] = []
    self.failures: dict[str, int] = {}
    self.gates: dict[str, asyncio.Event] = {}
    self.entered: dict[str, asyncio.Event] = {}

  async def _enter(self, name: str) -> None:
    self.calls.append(name)
    if name in self.entered:
      self.entered[name].set()
    if name in self.gates:
      await self.gates[name].wait()
    remaining = self.failures.get(name, 0)
    if remaining > 0:
      self.failures[name] = remaining - 1
      raise RuntimeError(f"{name} unavailable")

  async def generate_subtopic_content(self, context: SubtopicContext) -> str:
    await self._enter("generate_subtopic_content")
    return await self._inner.generate_subtopic_content(context)

  async def generate_quiz(self, context: SubtopicContext, markdown: str) -> list[dict[str, Any]]:
    await self._enter("generate_quiz")
    return await self._inner.generate_quiz(context, markdown)

  async def generate_flashcards(self, context: SubtopicContext, markdown: str) -> list[dict[str, Any]]:
    await self._enter("generate_flashcards")
    return await self._inner.generate_flashcards(context, markdown)

  async def embed(self, text: str) -> list[float]:
    await self._enter("embed")
    return await self._inner.embed(text)

  async def answer(self, question: str, context: str) -> str:
    await self._enter("answer")
    return f"Answer to: {question}"


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
  return replace(
    get_settings(),
    worker_count=2,
    queue_capacity=10,
    max_retries=3,
    retry_backoff_base_seconds=0.0,
    retry_backoff_cap_seconds=0.0,
    step_timeout_seconds=5.0,
    shutdown_grace_seconds=1.0,
    embedding_dimension=TEST_DIMENSION,
    artifacts_dir=str(tmp_path / "artifacts"),
  )


@pytest.fixture
def generator() -> ScriptedGenerator:
  return ScriptedGenerator()


@pytest.fixture
def runtime(settings: Settings, generator: ScriptedGenerator) -> CourseGenRuntime:
  return build_runtime(settings, jobs_repo=InMemoryJobsRepository(), embeddings_repo=InMemoryEmbeddingsRepository(), generator=generator, writer=FileArtifactWriter(settings.artifacts_dir))


@pytest.fixture
async def async_client(runtime: CourseGenRuntime) -> AsyncIterator[AsyncClient]:
  # ASGITransport skips lifespan, so tests start the workers themselves when needed.
  app.state.runtime = runtime
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  await runtime.stop()
  del app.state.runtime


@pytest.fixture
def test_client(runtime: CourseGenRuntime) -> Iterator[TestClient]:
  app.state.runtime = runtime
  with TestClient(app) as client:
    yield client
  del app.state.runtime


@pytest.fixture
def course_request():
  """Build a generation request body; one section with one subtopic by default."""

  def _build(roadmap_id: str = "r1", *, sections: list[dict[str, Any]] | None = None, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
      "courseId": "course-1",
      "roadmapId": roadmap_id,
      "courseTitle": "Intro to Biology",
      "sections": sections if sections is not None else [{"title": "Cells", "subtopics": ["Cell membranes"]}],
    }
    payload.update(extra)
    return payload

  return _build
