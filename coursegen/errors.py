"""Domain errors raised by the generation pipeline and vector store."""

from __future__ import annotations


class CourseGenError(Exception):
  """Base class for all course generation failures."""


class NotFoundError(CourseGenError):
  """Raised when a job or embedding id is unknown."""

  def __init__(self, kind: str, identifier: str) -> None:
    super().__init__(f"{kind} '{identifier}' was not found.")
    self.kind = kind
    self.identifier = identifier


class DuplicateJobError(CourseGenError):
  """Raised when a roadmap already has a pending or processing job."""

  def __init__(self, roadmap_id: str, existing_job_id: str) -> None:
    super().__init__(f"Roadmap '{roadmap_id}' already has an active job '{existing_job_id}'.")
    self.roadmap_id = roadmap_id
    self.existing_job_id = existing_job_id


class QueueFullError(CourseGenError):
  """Raised when the job queue has no free capacity."""

  def __init__(self, capacity: int) -> None:
    super().__init__(f"Job queue is full (capacity={capacity}); retry later.")
    self.capacity = capacity


class InvalidTransitionError(CourseGenError):
  """Raised when a job update would violate the progress state machine."""


class StepExecutionError(CourseGenError):
  """Transient failure of one pipeline step."""

  def __init__(self, step: str, message: str) -> None:
    super().__init__(f"Step '{step}' failed: {message}")
    self.step = step
    self.message = message


class TerminalJobError(CourseGenError):
  """Raised when a job has exhausted its retries and was marked failed."""

  def __init__(self, job_id: str, step: str, reason: str) -> None:
    super().__init__(f"Job '{job_id}' failed at step '{step}': {reason}")
    self.job_id = job_id
    self.step = step
    self.reason = reason


class EmbeddingDimensionError(CourseGenError):
  """Raised when a vector does not match the deployment's embedding dimension."""

  def __init__(self, expected: int, actual: int) -> None:
    super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}.")
    self.expected = expected
    self.actual = actual


class JobCanceledError(CourseGenError):
  """Raised inside the pipeline when a cancellation request is observed between steps."""
