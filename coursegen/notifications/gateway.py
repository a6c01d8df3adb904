"""Session-keyed pub/sub for job progress events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol

from coursegen.errors import NotFoundError
from coursegen.jobs.models import GenerationJob
from coursegen.notifications.events import ProgressEvent


class SnapshotSource(Protocol):
  """Read path for persisted job state."""

  async def get_job(self, job_id: str) -> GenerationJob | None:
    """Fetch a job by identifier."""


class Subscription:
  """A bounded stream of events for one connected session."""

  def __init__(self, gateway: NotificationGateway, session_id: str, buffer_size: int) -> None:
    self.session_id = session_id
    self._gateway = gateway
    self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=buffer_size)
    self._closed = False

  @property
  def closed(self) -> bool:
    return self._closed

  def offer(self, event: ProgressEvent) -> bool:
    """Enqueue without blocking; return False when the buffer is full."""
    # Publishers run inside tracker updates and must never wait on a slow socket.
    try:
      self._queue.put_nowait(event)
    except asyncio.QueueFull:
      return False
    return True

  async def get(self) -> ProgressEvent:
    return await self._queue.get()

  def get_nowait(self) -> ProgressEvent | None:
    try:
      return self._queue.get_nowait()
    except asyncio.QueueEmpty:
      return None

  def pending(self) -> int:
    return self._queue.qsize()

  def close(self) -> None:
    if self._closed:
      return
    self._closed = True
    self._gateway.unsubscribe(self)

  def __aiter__(self) -> AsyncIterator[ProgressEvent]:
    return self

  async def __anext__(self) -> ProgressEvent:
    # Drain what was buffered before close, then stop.
    if self._closed and self._queue.empty():
      raise StopAsyncIteration
    return await self._queue.get()

  def __enter__(self) -> Subscription:
    return self

  def __exit__(self, *_exc: object) -> None:
    self.close()


class NotificationGateway:
  """Best-effort push delivery keyed by session id, with a durable catch-up read path."""

  def __init__(self, *, snapshots: SnapshotSource, buffer_size: int = 100, logger: logging.Logger | None = None) -> None:
    self._snapshots = snapshots
    self._buffer_size = max(buffer_size, 1)
    self._logger = logger or logging.getLogger(__name__)
    self._subscriptions: dict[str, set[Subscription]] = {}

  def subscribe(self, session_id: str) -> Subscription:
    """Register a session for push delivery and return its event stream."""
    subscription = Subscription(self, session_id, self._buffer_size)
    self._subscriptions.setdefault(session_id, set()).add(subscription)
    self._logger.info("Session subscribed session_id=%s subscribers=%d", session_id, len(self._subscriptions[session_id]))
    return subscription

  def unsubscribe(self, subscription: Subscription) -> None:
    subscribers = self._subscriptions.get(subscription.session_id)
    if not subscribers:
      return
    subscribers.discard(subscription)
    if not subscribers:
      del self._subscriptions[subscription.session_id]
    self._logger.info("Session unsubscribed session_id=%s", subscription.session_id)

  def publish(self, session_id: str, event: ProgressEvent) -> int:
    """Deliver an event to every live subscriber of a session and return the delivery count."""
    subscribers = self._subscriptions.get(session_id)
    # Disconnected sessions lose the event; catch_up covers the gap.
    if not subscribers:
      self._logger.debug("Dropping event job_id=%s type=%s; session %s not connected", event.job_id, event.type, session_id)
      return 0

    # Copy first: a subscriber may unsubscribe while events are handed out.
    delivered = 0
    for subscription in list(subscribers):
      if subscription.offer(event):
        delivered += 1
      else:
        self._logger.warning("Dropping event job_id=%s type=%s; subscriber buffer full for session %s", event.job_id, event.type, session_id)
    return delivered

  async def catch_up(self, job_id: str) -> GenerationJob:
    """Return the persisted job snapshot for clients that (re)connect."""
    job = await self._snapshots.get_job(job_id)
    if job is None:
      raise NotFoundError("Job", job_id)
    return job
