"""Question answering over retrieved course context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from coursegen.rag.models import SearchHit
from coursegen.rag.store import VectorStore

logger = logging.getLogger(__name__)


class Responder(Protocol):
  async def answer(self, question: str, context: str) -> str:
    """Answer a question using the supplied context."""


@dataclass(frozen=True)
class AnswerResult:
  answer: str
  context: str
  sources: list[SearchHit]


async def answer_question(*, store: VectorStore, responder: Responder, course_id: str, question: str, max_results: int = 3) -> AnswerResult:
  """Retrieve context for a question and ask the generator for a tutor-style answer."""
  # One search feeds both the prompt context and the returned sources.
  sources = await store.search(course_id, question, limit=max_results)
  context = store.format_context(course_id, sources)
  answer = await responder.answer(question, context)
  logger.info("Answered question course_id=%s sources=%d", course_id, len(sources))
  return AnswerResult(answer=answer, context=context, sources=sources)
