"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal, TypeVar

from coursegen.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

StorageBackend = Literal["memory", "postgres"]
ContentProvider = Literal["dummy", "openai"]

T = TypeVar("T", bound=str)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the course generation service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_dir: str | None
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  storage_backend: StorageBackend
  worker_count: int
  queue_capacity: int
  max_retries: int
  retry_backoff_base_seconds: float
  retry_backoff_cap_seconds: float
  step_timeout_seconds: float
  shutdown_grace_seconds: float
  embedding_dimension: int
  content_provider: ContentProvider
  openai_api_key: str | None
  openai_base_url: str | None
  openai_chat_model: str
  openai_embedding_model: str
  artifacts_dir: str
  minutes_per_subtopic: int
  subscriber_buffer_size: int
  context_chars_per_hit: int
  max_embedding_chars: int
  quiz_questions_per_subtopic: int
  flashcards_per_subtopic: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if raw is None:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("COURSEGEN_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("COURSEGEN_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _parse_positive_int(name: str, default: str, *, allow_zero: bool = False) -> int:
  raw = os.getenv(name, default)
  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer.") from exc

  if value < 0 or (value == 0 and not allow_zero):
    qualifier = "zero or a positive integer" if allow_zero else "a positive integer"
    raise ValueError(f"{name} must be {qualifier}.")

  return value


def _parse_positive_float(name: str, default: str, *, allow_zero: bool = False) -> float:
  raw = os.getenv(name, default)
  try:
    value = float(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be a number.") from exc

  if value < 0 or (value == 0 and not allow_zero):
    qualifier = "zero or a positive number" if allow_zero else "a positive number"
    raise ValueError(f"{name} must be {qualifier}.")

  return value


def _parse_choice(name: str, raw: str, choices: tuple[T, ...]) -> T:
  normalized = raw.strip().lower()
  for choice in choices:
    if normalized == choice:
      return choice
  raise ValueError(f"{name} must be one of: {', '.join(choices)}.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("COURSEGEN_ENV", "development").lower()
  # Toggle verbose error output and SQL echo in non-production environments.
  debug = _parse_bool(os.getenv("COURSEGEN_DEBUG"))

  pg_dsn = _optional_str(os.getenv("COURSEGEN_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  # Default to Postgres only when a DSN is present.
  storage_backend = _parse_choice("COURSEGEN_STORAGE_BACKEND", os.getenv("COURSEGEN_STORAGE_BACKEND") or ("postgres" if pg_dsn else "memory"), ("memory", "postgres"))
  if storage_backend == "postgres" and not pg_dsn:
    raise ValueError("COURSEGEN_PG_DSN must be set when COURSEGEN_STORAGE_BACKEND=postgres.")

  content_provider = _parse_choice("COURSEGEN_CONTENT_PROVIDER", os.getenv("COURSEGEN_CONTENT_PROVIDER", "dummy"), ("dummy", "openai"))
  openai_api_key = _optional_str(os.getenv("COURSEGEN_OPENAI_API_KEY")) or _optional_str(os.getenv("OPENAI_API_KEY"))
  if content_provider == "openai" and not openai_api_key:
    raise ValueError("COURSEGEN_OPENAI_API_KEY must be set when COURSEGEN_CONTENT_PROVIDER=openai.")

  backoff_base = _parse_positive_float("COURSEGEN_RETRY_BACKOFF_BASE_SECONDS", "1.0", allow_zero=True)
  backoff_cap = _parse_positive_float("COURSEGEN_RETRY_BACKOFF_CAP_SECONDS", "30.0", allow_zero=True)
  if backoff_cap < backoff_base:
    raise ValueError("COURSEGEN_RETRY_BACKOFF_CAP_SECONDS must be greater than or equal to the backoff base.")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("COURSEGEN_ALLOWED_ORIGINS")),
    log_dir=_optional_str(os.getenv("COURSEGEN_LOG_DIR")),
    log_max_bytes=_parse_positive_int("COURSEGEN_LOG_MAX_BYTES", "5242880"),  # 5MB default
    log_backup_count=_parse_positive_int("COURSEGEN_LOG_BACKUP_COUNT", "10", allow_zero=True),
    log_http_4xx=_parse_bool(os.getenv("COURSEGEN_LOG_HTTP_4XX")),
    pg_dsn=pg_dsn,
    pg_connect_timeout=_parse_positive_int("COURSEGEN_PG_CONNECT_TIMEOUT", "5"),
    storage_backend=storage_backend,
    worker_count=_parse_positive_int("COURSEGEN_WORKER_COUNT", "4"),
    queue_capacity=_parse_positive_int("COURSEGEN_QUEUE_CAPACITY", "100"),
    max_retries=_parse_positive_int("COURSEGEN_MAX_RETRIES", "3", allow_zero=True),
    retry_backoff_base_seconds=backoff_base,
    retry_backoff_cap_seconds=backoff_cap,
    step_timeout_seconds=_parse_positive_float("COURSEGEN_STEP_TIMEOUT_SECONDS", "120"),
    shutdown_grace_seconds=_parse_positive_float("COURSEGEN_SHUTDOWN_GRACE_SECONDS", "10", allow_zero=True),
    embedding_dimension=_parse_positive_int("COURSEGEN_EMBEDDING_DIMENSION", "1536"),
    content_provider=content_provider,
    openai_api_key=openai_api_key,
    openai_base_url=_optional_str(os.getenv("COURSEGEN_OPENAI_BASE_URL")),
    openai_chat_model=os.getenv("COURSEGEN_OPENAI_CHAT_MODEL", "gpt-4o-mini"),
    openai_embedding_model=os.getenv("COURSEGEN_OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
    artifacts_dir=(os.getenv("COURSEGEN_ARTIFACTS_DIR") or "./generated").strip(),
    minutes_per_subtopic=_parse_positive_int("COURSEGEN_MINUTES_PER_SUBTOPIC", "8"),
    subscriber_buffer_size=_parse_positive_int("COURSEGEN_SUBSCRIBER_BUFFER_SIZE", "100"),
    context_chars_per_hit=_parse_positive_int("COURSEGEN_CONTEXT_CHARS_PER_HIT", "1000"),
    max_embedding_chars=_parse_positive_int("COURSEGEN_MAX_EMBEDDING_CHARS", "8000"),
    quiz_questions_per_subtopic=_parse_positive_int("COURSEGEN_QUIZ_QUESTIONS_PER_SUBTOPIC", "5"),
    flashcards_per_subtopic=_parse_positive_int("COURSEGEN_FLASHCARDS_PER_SUBTOPIC", "8"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the full service configuration."""
  # Keep database configuration isolated so migrations don't need provider credentials.
  debug = _parse_bool(os.getenv("COURSEGEN_DEBUG"))
  pg_connect_timeout = _parse_positive_int("COURSEGEN_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = _optional_str(os.getenv("COURSEGEN_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
