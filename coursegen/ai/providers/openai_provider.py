"""OpenAI-backed content generator."""

from __future__ import annotations

import logging
from typing import Any

from openai import AsyncOpenAI

from coursegen.ai.json_parser import extract_list, parse_json_with_fallback
from coursegen.ai.prompts import ANSWER_SYSTEM_PROMPT, render_answer_prompt, render_flashcards_prompt, render_quiz_prompt, render_subtopic_prompt
from coursegen.pipeline.contracts import SubtopicContext

logger = logging.getLogger(__name__)


class OpenAIContentGenerator:
  """Chat completions for course material, embeddings API for vectors."""

  def __init__(self, *, api_key: str, chat_model: str, embedding_model: str, dimension: int, base_url: str | None = None, quiz_questions: int = 5, flashcards: int = 8, client: AsyncOpenAI | None = None) -> None:
    self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
    self._chat_model = chat_model
    self._embedding_model = embedding_model
    self._dimension = dimension
    self._quiz_questions = quiz_questions
    self._flashcards = flashcards

  async def _complete(self, messages: list[dict[str, str]], *, json_mode: bool = False) -> str:
    kwargs: dict[str, Any] = {"model": self._chat_model, "messages": messages}
    if json_mode:
      kwargs["response_format"] = {"type": "json_object"}
    response = await self._client.chat.completions.create(**kwargs)
    content = response.choices[0].message.content or ""
    if response.usage:
      logger.info("OpenAI completion model=%s prompt_tokens=%s completion_tokens=%s", self._chat_model, response.usage.prompt_tokens, response.usage.completion_tokens)
    return content

  async def generate_subtopic_content(self, context: SubtopicContext) -> str:
    return await self._complete([{"role": "user", "content": render_subtopic_prompt(context)}])

  async def generate_quiz(self, context: SubtopicContext, markdown: str) -> list[dict[str, Any]]:
    raw = await self._complete([{"role": "user", "content": render_quiz_prompt(context, markdown, self._quiz_questions)}], json_mode=True)
    return extract_list(parse_json_with_fallback(raw), "questions")

  async def generate_flashcards(self, context: SubtopicContext, markdown: str) -> list[dict[str, Any]]:
    raw = await self._complete([{"role": "user", "content": render_flashcards_prompt(context, markdown, self._flashcards)}], json_mode=True)
    return extract_list(parse_json_with_fallback(raw), "cards")

  async def embed(self, text: str) -> list[float]:
    response = await self._client.embeddings.create(model=self._embedding_model, input=text, dimensions=self._dimension)
    return list(response.data[0].embedding)

  async def answer(self, question: str, context: str) -> str:
    return await self._complete([{"role": "system", "content": ANSWER_SYSTEM_PROMPT}, {"role": "user", "content": render_answer_prompt(question, context)}])
