"""Wire format for job progress push events."""

from __future__ import annotations

from typing import Any, Literal

import msgspec

from coursegen.jobs.models import GenerationJob, now_iso

EventType = Literal["started", "progress", "error", "completed", "failed", "cancelled", "snapshot"]


class ErrorEntry(msgspec.Struct, frozen=True):
  """One error log line as sent to clients."""

  step: str
  error: str
  timestamp: str


class ProgressEvent(msgspec.Struct, frozen=True, rename="camel", omit_defaults=True):
  """Progress update pushed to a notification session."""

  job_id: str
  type: EventType
  status: str
  progress_percentage: int
  current_step: str | None = None
  estimated_time_remaining: int | None = None
  current_section: int | None = None
  current_subtopic: int | None = None
  errors: list[ErrorEntry] | None = None
  final_payload: dict[str, Any] | None = None
  timestamp: str = ""


def build_progress_event(job: GenerationJob, event_type: EventType) -> ProgressEvent:
  """Project a job snapshot onto the push event schema."""

  errors = [ErrorEntry(step=entry.step, error=entry.error, timestamp=entry.timestamp) for entry in job.error_log] or None
  # Failed jobs report -1 so clients can distinguish them from a stalled 0%.
  percentage = -1 if job.status == "failed" else job.progress_percentage
  return ProgressEvent(
    job_id=job.job_id,
    type=event_type,
    status=job.status,
    progress_percentage=percentage,
    current_step=job.current_step,
    estimated_time_remaining=job.estimated_minutes_remaining,
    current_section=job.current_section_index,
    current_subtopic=job.current_subtopic_index,
    errors=errors,
    final_payload=job.final_payload if job.status == "completed" else None,
    timestamp=now_iso(),
  )


def encode_event(event: ProgressEvent) -> str:
  """Encode an event as a JSON text frame."""
  return msgspec.json.encode(event).decode("utf-8")
