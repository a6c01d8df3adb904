"""Shared FastAPI dependencies for reaching the runtime components."""

from __future__ import annotations

from fastapi import HTTPException, Request, WebSocket, status

from coursegen.services.runtime import CourseGenRuntime


def _runtime_from_state(state: object) -> CourseGenRuntime:
  runtime = getattr(state, "runtime", None)
  if runtime is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up.")
  return runtime


def get_runtime(request: Request) -> CourseGenRuntime:
  """Return the runtime built during application startup."""
  return _runtime_from_state(request.app.state)


def get_ws_runtime(websocket: WebSocket) -> CourseGenRuntime:
  return _runtime_from_state(websocket.app.state)
