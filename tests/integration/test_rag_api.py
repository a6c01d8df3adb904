from __future__ import annotations

import pytest
from httpx import AsyncClient

from coursegen.ai.providers.dummy import DummyContentGenerator
from coursegen.rag.store import NO_CONTEXT_TEMPLATE

PHOTOSYNTHESIS = "Photosynthesis turns light, water and carbon dioxide into glucose."
REVOLUTION = "The French Revolution began in 1789 with the storming of the Bastille."


async def store(client: AsyncClient, text: str, *, course_id: str = "course-1", content_type: str = "subtopic", **extra: object) -> dict:
  response = await client.post("/v1/rag/content", json={"courseId": course_id, "contentType": content_type, "contentText": text, **extra})
  assert response.status_code == 201
  return response.json()


@pytest.mark.anyio
async def test_store_returns_row_without_vector(async_client: AsyncClient) -> None:
  body = await store(async_client, PHOTOSYNTHESIS, title="Photosynthesis", metadata={"sectionIndex": 0})
  assert body["courseId"] == "course-1"
  assert body["contentType"] == "subtopic"
  assert body["dimension"] == 32
  assert body["isActive"] is True
  assert body["metadata"] == {"sectionIndex": 0}
  assert "embeddingVector" not in body

  fetched = await async_client.get(f"/v1/rag/content/{body['id']}")
  assert fetched.json()["title"] == "Photosynthesis"


@pytest.mark.anyio
async def test_search_ranks_exact_match_first(async_client: AsyncClient) -> None:
  best = await store(async_client, PHOTOSYNTHESIS, title="Photosynthesis")
  await store(async_client, REVOLUTION, content_type="notes")
  await store(async_client, PHOTOSYNTHESIS, course_id="course-2")

  response = await async_client.post("/v1/rag/search", json={"courseId": "course-1", "query": PHOTOSYNTHESIS, "limit": 5})
  assert response.status_code == 200
  results = response.json()["results"]
  assert len(results) == 2
  assert results[0]["id"] == best["id"]
  assert results[0]["similarityScore"] == pytest.approx(1.0)
  assert results[0]["similarityScore"] >= results[1]["similarityScore"]

  notes_only = await async_client.post("/v1/rag/search", json={"courseId": "course-1", "query": PHOTOSYNTHESIS, "contentType": "notes"})
  assert [item["contentType"] for item in notes_only.json()["results"]] == ["notes"]


@pytest.mark.anyio
async def test_context_and_ask_use_course_content(async_client: AsyncClient, generator) -> None:
  await store(async_client, PHOTOSYNTHESIS, title="Photosynthesis")

  context = await async_client.post("/v1/rag/context", json={"courseId": "course-1", "question": PHOTOSYNTHESIS})
  assert "Title: Photosynthesis" in context.json()["context"]
  assert "Relevance Score: 100.0%" in context.json()["context"]

  empty = await async_client.post("/v1/rag/context", json={"courseId": "course-9", "question": "anything"})
  assert empty.json()["context"] == NO_CONTEXT_TEMPLATE.format(course_id="course-9")

  answer = await async_client.post("/v1/rag/ask", json={"courseId": "course-1", "question": "How do plants eat?", "maxResults": 1})
  body = answer.json()
  assert body["answer"] == "Answer to: How do plants eat?"
  assert len(body["sources"]) == 1
  assert generator.calls.count("answer") == 1


@pytest.mark.anyio
async def test_batch_store_and_list_by_course(async_client: AsyncClient) -> None:
  response = await async_client.post("/v1/rag/content/batch", json={"courseId": "course-1", "items": [{"contentType": "notes", "contentText": PHOTOSYNTHESIS}, {"contentType": "quiz", "contentText": REVOLUTION}]})
  assert response.status_code == 201
  assert len(response.json()["items"]) == 2

  listing = await async_client.get("/v1/rag/courses/course-1/content", params={"limit": 1})
  body = listing.json()
  assert body["total"] == 2
  assert body["page"] == 1
  assert len(body["items"]) == 1

  quizzes = await async_client.get("/v1/rag/courses/course-1/content", params={"contentType": "quiz"})
  assert [item["contentType"] for item in quizzes.json()["items"]] == ["quiz"]


@pytest.mark.anyio
async def test_update_keeps_id_and_changes_ranking(async_client: AsyncClient) -> None:
  row = await store(async_client, PHOTOSYNTHESIS)
  response = await async_client.patch(f"/v1/rag/content/{row['id']}", json={"contentText": REVOLUTION, "title": "History"})
  assert response.status_code == 200
  body = response.json()
  assert body["id"] == row["id"]
  assert body["contentText"] == REVOLUTION
  assert body["title"] == "History"

  results = (await async_client.post("/v1/rag/search", json={"courseId": "course-1", "query": REVOLUTION})).json()["results"]
  assert results[0]["id"] == row["id"]
  assert results[0]["similarityScore"] == pytest.approx(1.0)

  missing = await async_client.patch("/v1/rag/content/missing", json={"contentText": REVOLUTION})
  assert missing.status_code == 404


@pytest.mark.anyio
async def test_soft_then_hard_delete(async_client: AsyncClient) -> None:
  row = await store(async_client, PHOTOSYNTHESIS)

  soft = await async_client.delete(f"/v1/rag/content/{row['id']}")
  assert soft.status_code == 204
  retained = await async_client.get(f"/v1/rag/content/{row['id']}")
  assert retained.json()["isActive"] is False
  search = await async_client.post("/v1/rag/search", json={"courseId": "course-1", "query": PHOTOSYNTHESIS})
  assert search.json()["results"] == []

  hard = await async_client.delete(f"/v1/rag/content/{row['id']}", params={"hard": "true"})
  assert hard.status_code == 204
  assert (await async_client.get(f"/v1/rag/content/{row['id']}")).status_code == 404
  assert (await async_client.delete(f"/v1/rag/content/{row['id']}")).status_code == 404


@pytest.mark.anyio
async def test_invalid_content_is_rejected(async_client: AsyncClient, generator) -> None:
  bad_type = await async_client.post("/v1/rag/content", json={"courseId": "course-1", "contentType": "podcast", "contentText": "x"})
  assert bad_type.status_code == 422

  blank = await async_client.post("/v1/rag/content", json={"courseId": "course-1", "contentType": "notes", "contentText": "   "})
  assert blank.status_code == 422

  generator._inner = DummyContentGenerator(dimension=8)
  mismatch = await async_client.post("/v1/rag/content", json={"courseId": "course-1", "contentType": "notes", "contentText": PHOTOSYNTHESIS})
  assert mismatch.status_code == 422
  assert "dimension" in mismatch.json()["detail"]
  listing = await async_client.get("/v1/rag/courses/course-1/content")
  assert listing.json()["total"] == 0
