"""Exponential backoff and timeouts for pipeline steps."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


def compute_backoff_delay(retry_count: int, *, base_seconds: float, cap_seconds: float) -> float:
  """Return base * 2^retry_count, capped.

  retry_count is the number of retries already spent before the failing attempt,
  so the first retry waits `base_seconds`.
  """
  if base_seconds <= 0:
    return 0.0
  exponent = max(retry_count, 0)
  # Cap the exponent before multiplying to keep large retry counts finite.
  if exponent > 32:
    return cap_seconds
  return min(base_seconds * (2**exponent), cap_seconds)


async def call_with_timeout(func: Callable[[], Awaitable[T]], timeout_seconds: float | None) -> T:
  """Await an external call, raising TimeoutError once the deadline passes."""
  if timeout_seconds is None:
    return await func()
  async with asyncio.timeout(timeout_seconds):
    return await func()
