import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from coursegen.api.deps import get_runtime
from coursegen.api.models import (
  AskRequest,
  AskResponse,
  ContentBatchRequest,
  ContentStoreRequest,
  ContentUpdateRequest,
  ContextRequest,
  ContextResponse,
  EmbeddingBatchResponse,
  EmbeddingListResponse,
  EmbeddingResponse,
  SearchRequest,
  SearchResponse,
  SearchResultItem,
)
from coursegen.rag.assistant import answer_question
from coursegen.rag.models import ContentItem, ContentType
from coursegen.services.runtime import CourseGenRuntime

router = APIRouter()
logger = logging.getLogger("coursegen.api.routes.rag")


@router.post("/search", response_model=SearchResponse)
async def search_content(  # noqa: B008
  payload: SearchRequest,
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> SearchResponse:
  """Rank a course's active content against a free-text query."""
  hits = await runtime.vector_store.search(payload.course_id, payload.query, limit=payload.limit, content_type=payload.content_type)
  return SearchResponse(results=[SearchResultItem.from_hit(hit) for hit in hits])


@router.post("/context", response_model=ContextResponse)
async def build_context(  # noqa: B008
  payload: ContextRequest,
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> ContextResponse:
  """Return the prompt context assembled for a learner question."""
  context = await runtime.vector_store.assemble_context(payload.course_id, payload.question, max_results=payload.max_results)
  return ContextResponse(course_id=payload.course_id, context=context)


@router.post("/ask", response_model=AskResponse)
async def ask_question(  # noqa: B008
  payload: AskRequest,
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> AskResponse:
  """Answer a learner question from retrieved course content."""
  result = await answer_question(store=runtime.vector_store, responder=runtime.generator, course_id=payload.course_id, question=payload.question, max_results=payload.max_results)
  return AskResponse(answer=result.answer, context=result.context, sources=[SearchResultItem.from_hit(hit) for hit in result.sources])


@router.post("/content", response_model=EmbeddingResponse, status_code=status.HTTP_201_CREATED)
async def store_content(  # noqa: B008
  payload: ContentStoreRequest,
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> EmbeddingResponse:
  """Embed and store one piece of course content."""
  try:
    row = await runtime.vector_store.store(payload.course_id, payload.content_type, payload.content_text, content_id=payload.content_id, title=payload.title, description=payload.description, metadata=payload.metadata)
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
  return EmbeddingResponse.from_row(row)


@router.post("/content/batch", response_model=EmbeddingBatchResponse, status_code=status.HTTP_201_CREATED)
async def store_content_batch(  # noqa: B008
  payload: ContentBatchRequest,
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> EmbeddingBatchResponse:
  items = [
    ContentItem(content_type=item.content_type, content_text=item.content_text, content_id=item.content_id, title=item.title, description=item.description, metadata=item.metadata) for item in payload.items
  ]
  try:
    rows = await runtime.vector_store.batch_store(payload.course_id, items)
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
  return EmbeddingBatchResponse(items=[EmbeddingResponse.from_row(row) for row in rows])


@router.get("/content/{embedding_id}", response_model=EmbeddingResponse)
async def get_content(  # noqa: B008
  embedding_id: str,
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> EmbeddingResponse:
  return EmbeddingResponse.from_row(await runtime.vector_store.get(embedding_id))


@router.patch("/content/{embedding_id}", response_model=EmbeddingResponse)
async def update_content(  # noqa: B008
  embedding_id: str,
  payload: ContentUpdateRequest,
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> EmbeddingResponse:
  """Replace text and recompute the vector; the embedding keeps its id."""
  try:
    row = await runtime.vector_store.update(embedding_id, payload.content_text, title=payload.title, description=payload.description, metadata=payload.metadata)
  except ValueError as exc:
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
  return EmbeddingResponse.from_row(row)


@router.delete("/content/{embedding_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_content(  # noqa: B008
  embedding_id: str,
  hard: bool = Query(default=False, description="Remove the row instead of hiding it from search."),  # noqa: B008
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> Response:
  """Soft delete by default; pass hard=true to remove the row permanently."""
  if hard:
    await runtime.vector_store.delete(embedding_id)
  else:
    await runtime.vector_store.soft_delete(embedding_id)
  logger.info("Deleted content id=%s hard=%s", embedding_id, hard)
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/courses/{course_id}/content", response_model=EmbeddingListResponse)
async def list_course_content(  # noqa: B008
  course_id: str,
  content_type: ContentType | None = Query(default=None, alias="contentType"),  # noqa: B008
  page: int = Query(default=1, ge=1),  # noqa: B008
  limit: int = Query(default=20, ge=1, le=100),  # noqa: B008
  runtime: CourseGenRuntime = Depends(get_runtime),  # noqa: B008
) -> EmbeddingListResponse:
  """List active content for a course, newest first."""
  rows, total = await runtime.vector_store.list_by_course(course_id, content_type=content_type, page=page, limit=limit)
  return EmbeddingListResponse(items=[EmbeddingResponse.from_row(row) for row in rows], total=total, page=page, limit=limit)
