import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from coursegen.errors import CourseGenError, DuplicateJobError, EmbeddingDimensionError, InvalidTransitionError, NotFoundError, QueueFullError

logger = logging.getLogger("uvicorn.error")

_DOMAIN_STATUS: tuple[tuple[type[CourseGenError], int], ...] = (
  (NotFoundError, status.HTTP_404_NOT_FOUND),
  (QueueFullError, status.HTTP_503_SERVICE_UNAVAILABLE),
  (EmbeddingDimensionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
  (InvalidTransitionError, status.HTTP_409_CONFLICT),
  (DuplicateJobError, status.HTTP_409_CONFLICT),
)

QUEUE_RETRY_AFTER_SECONDS = "5"


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    message = str(value)
    return f"{type(value).__name__}: {message}" if message else type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  payload: dict[str, Any] = {"detail": detail}
  # Attach the request id so client reports can be matched to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx
    sanitized.append(_coerce_json_safe(scrubbed))
  return sanitized


def domain_status_code(exc: CourseGenError) -> int:
  for error_type, status_code in _DOMAIN_STATUS:
    if isinstance(exc, error_type):
      return status_code
  return status.HTTP_500_INTERNAL_SERVER_ERROR


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Catch unhandled errors without leaking internals."""
  request_id = getattr(request.state, "request_id", None)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  """Log request validation errors without echoing payloads."""
  request_id = getattr(request.state, "request_id", None)
  sanitized_errors = _sanitize_validation_errors(list(exc.errors()))
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Pass 4xx details through and hide 5xx details."""
  from coursegen.config import get_settings

  request_id = getattr(request.state, "request_id", None)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if get_settings().log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)
  return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=exc.headers)


async def coursegen_exception_handler(request: Request, exc: CourseGenError) -> JSONResponse:
  """Map domain errors onto HTTP status codes."""
  request_id = getattr(request.state, "request_id", None)
  status_code = domain_status_code(exc)
  # Backpressure is a 503 the client should retry, not a server fault.
  if isinstance(exc, QueueFullError):
    logger.warning("Queue full request_id=%s path=%s capacity=%d", request_id, request.url.path, exc.capacity)
    return JSONResponse(status_code=status_code, content=_error_payload(str(exc), request_id=request_id), headers={"Retry-After": QUEUE_RETRY_AFTER_SECONDS})

  if status_code >= 500:
    logger.error("Domain error request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
    return JSONResponse(status_code=status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  logger.info("Domain error request_id=%s path=%s status_code=%s error=%s", request_id, request.url.path, status_code, exc)
  return JSONResponse(status_code=status_code, content=_error_payload(str(exc), request_id=request_id))
