from __future__ import annotations

import json
import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

TERMINAL_EVENTS = {"completed", "failed", "cancelled"}


def test_ping_pong_and_unsupported_frames(test_client: TestClient) -> None:
  with test_client.websocket_connect("/v1/ws/progress?sessionId=s1") as websocket:
    websocket.send_text("ping")
    assert websocket.receive_text() == "pong"

    websocket.send_text("not json")
    assert websocket.receive_json() == {"type": "error", "detail": "Unsupported message."}

    websocket.send_text(json.dumps({"type": "subscribe"}))
    assert websocket.receive_json()["type"] == "error"


def test_session_id_is_required(test_client: TestClient) -> None:
  with pytest.raises(WebSocketDisconnect), test_client.websocket_connect("/v1/ws/progress"):
    pass


def test_progress_events_stream_until_completion(test_client: TestClient, course_request) -> None:
  with test_client.websocket_connect("/v1/ws/progress?sessionId=s1") as websocket:
    response = test_client.post("/v1/generation", json=course_request("r1", sessionId="s1"))
    assert response.status_code == 202
    job_id = response.json()["jobId"]

    events = []
    while True:
      event = websocket.receive_json()
      events.append(event)
      if event["type"] in TERMINAL_EVENTS:
        break

    assert events[0]["type"] == "started"
    assert events[-1]["type"] == "completed"
    assert events[-1]["progressPercentage"] == 100
    assert events[-1]["finalPayload"]["courseId"] == "course-1"
    assert all(event["jobId"] == job_id for event in events)
    percentages = [event["progressPercentage"] for event in events]
    assert percentages == sorted(percentages)
    assert any(event.get("currentStep") == "generate_quiz" for event in events)

    websocket.send_text(json.dumps({"type": "catch_up", "jobId": job_id}))
    snapshot = websocket.receive_json()
    assert snapshot["type"] == "snapshot"
    assert snapshot["status"] == "completed"
    assert snapshot["progressPercentage"] == 100


def test_catch_up_for_unknown_job_returns_error_frame(test_client: TestClient) -> None:
  with test_client.websocket_connect("/v1/ws/progress?sessionId=s1") as websocket:
    websocket.send_text(json.dumps({"type": "catch_up", "jobId": "missing"}))
    frame = websocket.receive_json()
    assert frame["type"] == "error"
    assert "missing" in frame["detail"]


def test_other_sessions_do_not_receive_events(test_client: TestClient, course_request) -> None:
  with test_client.websocket_connect("/v1/ws/progress?sessionId=s2") as websocket:
    response = test_client.post("/v1/generation", json=course_request("r1", sessionId="s1"))
    job_id = response.json()["jobId"]

    # Wait for the job to finish, then confirm only the pong reply arrives.
    for _ in range(200):
      if test_client.get(f"/v1/generation/{job_id}").json()["status"] == "completed":
        break
      time.sleep(0.01)
    websocket.send_text("ping")
    assert websocket.receive_text() == "pong"
