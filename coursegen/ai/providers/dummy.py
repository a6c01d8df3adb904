"""Deterministic offline content generator for local runs and demos."""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Any

import numpy as np

from coursegen.pipeline.contracts import SubtopicContext

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def _token_bucket(token: str, dimension: int) -> tuple[int, float]:
  digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
  value = int.from_bytes(digest, "big")
  sign = 1.0 if value & 1 else -1.0
  return (value >> 1) % dimension, sign


def hashed_embedding(text: str, dimension: int) -> list[float]:
  """Bag-of-words feature hashing; identical texts map to identical vectors and an empty text maps to zeros."""
  vector = np.zeros(dimension, dtype=np.float64)
  for token in _TOKEN_RE.findall(text.lower()):
    index, sign = _token_bucket(token, dimension)
    vector[index] += sign
  return vector.tolist()


class DummyContentGenerator:
  """Produce placeholder lessons, quizzes and flashcards without calling a model."""

  def __init__(self, *, dimension: int, quiz_questions: int = 5, flashcards: int = 8) -> None:
    self._dimension = dimension
    self._quiz_questions = quiz_questions
    self._flashcards = flashcards

  async def generate_subtopic_content(self, context: SubtopicContext) -> str:
    lines = [f"# {context.subtopic_title}", "", f"Part of **{context.section_title}** in *{context.course_title}*.", ""]
    if context.previous_summary:
      lines.extend([f"> {context.previous_summary}", ""])
    lines.extend([f"This lesson introduces {context.subtopic_title} and shows where it fits within {context.section_title}.", ""])
    if context.instructions:
      lines.extend([f"Focus: {context.instructions}", ""])
    lines.extend(["## Key takeaways", "", f"- What {context.subtopic_title} is", f"- How it relates to {context.section_title}", ""])
    if context.next_summary:
      lines.append(f"_{context.next_summary}_")
    return "\n".join(lines)

  async def generate_quiz(self, context: SubtopicContext, markdown: str) -> list[dict[str, Any]]:
    return [
      {"question": f"Question {number} about {context.subtopic_title}?", "options": [f"Option {letter}" for letter in "ABCD"], "answerIndex": (number - 1) % 4, "explanation": f"See the lesson on {context.subtopic_title}."}
      for number in range(1, self._quiz_questions + 1)
    ]

  async def generate_flashcards(self, context: SubtopicContext, markdown: str) -> list[dict[str, Any]]:
    return [{"front": f"{context.subtopic_title}: concept {number}", "back": f"Explanation {number} from {context.section_title}."} for number in range(1, self._flashcards + 1)]

  async def embed(self, text: str) -> list[float]:
    return hashed_embedding(text, self._dimension)

  async def answer(self, question: str, context: str) -> str:
    logger.debug("Dummy answer for question of %d chars", len(question))
    return f"Here is what the course material says about your question.\n\n{context}"
