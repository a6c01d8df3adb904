"""Domain models for asynchronous course generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]

ACTIVE_STATUSES: frozenset[str] = frozenset({"pending", "processing"})
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})


def now_iso() -> str:
  """Return the current UTC time as an ISO-8601 string with millisecond precision."""
  return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ErrorLogEntry:
  """One failed step attempt recorded on a job."""

  step: str
  error: str
  timestamp: str

  def as_dict(self) -> dict[str, str]:
    return {"step": self.step, "error": self.error, "timestamp": self.timestamp}

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> ErrorLogEntry:
    return cls(step=str(payload.get("step", "")), error=str(payload.get("error", "")), timestamp=str(payload.get("timestamp", "")))


@dataclass
class GenerationJob:
  """Represents one course generation request tracked end to end."""

  job_id: str
  course_id: str
  roadmap_id: str
  status: JobStatus
  created_at: str
  updated_at: str
  request: dict[str, Any] = field(default_factory=dict)
  current_step: str | None = None
  progress_percentage: int = 0
  current_section_index: int | None = None
  current_subtopic_index: int | None = None
  total_sections: int = 0
  total_subtopics: int = 0
  estimated_minutes_remaining: int | None = None
  error_log: list[ErrorLogEntry] = field(default_factory=list)
  retry_count: int = 0
  max_retries: int = 3
  session_id: str | None = None
  final_payload: dict[str, Any] | None = None
  failure_reason: str | None = None
  started_at: str | None = None
  completed_at: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES

  @property
  def is_active(self) -> bool:
    return self.status in ACTIVE_STATUSES
