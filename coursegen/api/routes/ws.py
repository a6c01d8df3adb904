import asyncio
import logging

import msgspec
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from coursegen.api.deps import get_ws_runtime
from coursegen.errors import NotFoundError
from coursegen.notifications.events import build_progress_event, encode_event
from coursegen.notifications.gateway import NotificationGateway, Subscription

router = APIRouter()
logger = logging.getLogger("coursegen.api.routes.ws")


class ClientMessage(msgspec.Struct, rename="camel"):
  """Control frame sent by a connected client."""

  type: str
  job_id: str | None = None


def _error_frame(detail: str) -> str:
  return msgspec.json.encode({"type": "error", "detail": detail}).decode("utf-8")


async def _forward_events(subscription: Subscription, send_text) -> None:
  async for event in subscription:
    await send_text(encode_event(event))


async def _handle_control(raw: str, gateway: NotificationGateway, send_text) -> None:
  try:
    message = msgspec.json.decode(raw, type=ClientMessage)
  except msgspec.DecodeError:
    await send_text(_error_frame("Unsupported message."))
    return

  if message.type != "catch_up" or not message.job_id:
    await send_text(_error_frame(f"Unsupported message type '{message.type}'."))
    return

  try:
    job = await gateway.catch_up(message.job_id)
  except NotFoundError as exc:
    await send_text(_error_frame(str(exc)))
    return
  await send_text(encode_event(build_progress_event(job, "snapshot")))


@router.websocket("/progress")
async def progress_stream(websocket: WebSocket, session_id: str = Query(alias="sessionId", min_length=1)) -> None:  # noqa: B008
  """Push progress events for a session; clients may request a snapshot to catch up."""
  runtime = get_ws_runtime(websocket)
  # Register before accepting so nothing published after the handshake is missed.
  subscription = runtime.gateway.subscribe(session_id)
  send_lock = asyncio.Lock()

  async def send_text(text: str) -> None:
    async with send_lock:
      await websocket.send_text(text)

  await websocket.accept()
  logger.info("Websocket connected session_id=%s", session_id)
  forwarder = asyncio.create_task(_forward_events(subscription, send_text))
  try:
    while True:
      data = await websocket.receive_text()
      if data == "ping":
        await send_text("pong")
        continue
      await _handle_control(data, runtime.gateway, send_text)
  except WebSocketDisconnect:
    logger.info("Websocket disconnected session_id=%s", session_id)
  finally:
    subscription.close()
    forwarder.cancel()
    await asyncio.gather(forwarder, return_exceptions=True)
