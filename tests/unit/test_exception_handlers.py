"""Unit tests for API exception sanitization and domain error mapping."""

from __future__ import annotations

from dataclasses import replace

import pytest
from httpx import AsyncClient

from coursegen.config import Settings
from coursegen.core.exceptions import _sanitize_validation_errors, domain_status_code
from coursegen.errors import CourseGenError, DuplicateJobError, EmbeddingDimensionError, InvalidTransitionError, NotFoundError, QueueFullError, StepExecutionError
from coursegen.services.runtime import CourseGenRuntime, build_runtime
from coursegen.storage.memory_embeddings_repo import InMemoryEmbeddingsRepository
from coursegen.storage.memory_jobs_repo import InMemoryJobsRepository


@pytest.fixture
def runtime(settings: Settings, generator) -> CourseGenRuntime:
  # A single slot lets the second submission overflow while workers are idle.
  tight = replace(settings, queue_capacity=1)
  return build_runtime(tight, jobs_repo=InMemoryJobsRepository(), embeddings_repo=InMemoryEmbeddingsRepository(), generator=generator)


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "sections"), "msg": "Value error, sections must not be empty.", "input": {"sections": []}, "ctx": {"error": ValueError("sections must not be empty."), "input": {"sections": []}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["loc"] == ["body", "sections"]
  assert sanitized[0]["ctx"]["error"] == "ValueError: sections must not be empty."
  assert "input" not in sanitized[0]["ctx"]


@pytest.mark.parametrize(
  ("error", "expected"),
  [
    (NotFoundError("Job", "missing"), 404),
    (QueueFullError(3), 503),
    (EmbeddingDimensionError(4, 3), 422),
    (InvalidTransitionError("completed -> processing"), 409),
    (DuplicateJobError("r1", "job-1"), 409),
    (StepExecutionError("generate_quiz", "boom"), 500),
    (CourseGenError("unclassified"), 500),
  ],
)
def test_domain_errors_map_to_status_codes(error: CourseGenError, expected: int) -> None:
  assert domain_status_code(error) == expected


@pytest.mark.anyio
async def test_unknown_job_returns_404_with_request_id(async_client: AsyncClient) -> None:
  response = await async_client.get("/v1/generation/does-not-exist")
  assert response.status_code == 404
  body = response.json()
  assert "does-not-exist" in body["detail"]
  assert body["requestId"] == response.headers["x-request-id"]


@pytest.mark.anyio
async def test_full_queue_returns_503_with_retry_after(async_client: AsyncClient, course_request) -> None:
  first = await async_client.post("/v1/generation", json=course_request("r1"))
  assert first.status_code == 202

  overflow = await async_client.post("/v1/generation", json=course_request("r2"))
  assert overflow.status_code == 503
  assert overflow.headers["retry-after"] == "5"
  assert "full" in overflow.json()["detail"]


@pytest.mark.anyio
async def test_request_validation_errors_omit_payload(async_client: AsyncClient, course_request) -> None:
  response = await async_client.post("/v1/generation", json=course_request(courseTitle=""))
  assert response.status_code == 422
  errors = response.json()["detail"]
  assert isinstance(errors, list)
  assert all("input" not in error for error in errors)
