"""Content generator implementations."""

from __future__ import annotations

from coursegen.ai.providers.dummy import DummyContentGenerator
from coursegen.config import Settings
from coursegen.pipeline.contracts import ContentGenerator


def build_content_generator(settings: Settings) -> ContentGenerator:
  """Return the configured content generator."""
  if settings.content_provider == "openai":
    # Import lazily so offline deployments never construct an API client.
    from coursegen.ai.providers.openai_provider import OpenAIContentGenerator

    if not settings.openai_api_key:
      raise ValueError("COURSEGEN_OPENAI_API_KEY must be set when COURSEGEN_CONTENT_PROVIDER=openai.")
    return OpenAIContentGenerator(
      api_key=settings.openai_api_key,
      base_url=settings.openai_base_url,
      chat_model=settings.openai_chat_model,
      embedding_model=settings.openai_embedding_model,
      dimension=settings.embedding_dimension,
      quiz_questions=settings.quiz_questions_per_subtopic,
      flashcards=settings.flashcards_per_subtopic,
    )

  return DummyContentGenerator(dimension=settings.embedding_dimension, quiz_questions=settings.quiz_questions_per_subtopic, flashcards=settings.flashcards_per_subtopic)


__all__ = ["DummyContentGenerator", "build_content_generator"]
