import logging
import time
import uuid

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("coursegen.core.middleware")


def _build_request_url(scope: Scope) -> str:
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  if query_string:
    return f"{path}?{query_string.decode('latin-1')}"
  return path


class RequestLoggingMiddleware:
  """Log request/response metadata and tag every response with a request id."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    # Skip websocket and lifespan scopes; they are logged by their handlers.
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    request_id = str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id
    start_time = time.perf_counter()
    method = scope.get("method", "UNKNOWN")
    logger.info("Incoming request request_id=%s %s %s", request_id, method, _build_request_url(scope))

    status_code: int | None = None

    async def send_wrapper(message: Message) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        # Echo the id so clients can quote it in bug reports.
        status_code = message.get("status")
        headers = MutableHeaders(scope=message)
        if "x-request-id" not in headers:
          headers["x-request-id"] = request_id
      await send(message)

    await self.app(scope, receive, send_wrapper)

    process_time = (time.perf_counter() - start_time) * 1000
    logger.info("Response request_id=%s status=%s (took %.2fms)", request_id, status_code or 0, process_time)
