"""Inputs and collaborator contracts for the generation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.alias_generators import to_camel

CREATE_FILE_STRUCTURE = "create_file_structure"
GENERATE_ROADMAP_SECTIONS = "generate_roadmap_sections"
GENERATE_SUBTOPIC_CONTENT = "generate_subtopic_content"
GENERATE_QUIZ = "generate_quiz"
GENERATE_FLASHCARDS = "generate_flashcards"
GENERATE_EMBEDDINGS = "generate_embeddings"
FINALIZE = "finalize"

SUBTOPIC_STEPS: tuple[str, ...] = (GENERATE_SUBTOPIC_CONTENT, GENERATE_QUIZ, GENERATE_FLASHCARDS, GENERATE_EMBEDDINGS)


class CamelModel(BaseModel):
  """Base model exposing camelCase field names on the wire."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class SectionSpec(CamelModel):
  """One roadmap section and its ordered subtopic titles."""

  title: StrictStr = Field(min_length=1, description="Section title.")
  subtopics: list[StrictStr] = Field(default_factory=list, description="Ordered subtopic titles.")
  instructions: StrictStr | None = Field(default=None, description="Optional generation guidance for this section.")


class SectionOverride(CamelModel):
  """Per-section adjustments applied on top of the roadmap."""

  title: StrictStr | None = Field(default=None, min_length=1, description="Replacement section title.")
  subtopics: list[StrictStr] | None = Field(default=None, description="Replacement subtopic list.")
  instructions: StrictStr | None = Field(default=None, description="Extra generation guidance for this section.")


class GenerationParams(CamelModel):
  """Everything the orchestrator needs to rebuild a job's plan from its stored request."""

  course_title: StrictStr = Field(default="Untitled course", min_length=1, description="Human readable course title.")
  course_description: StrictStr | None = Field(default=None, description="Optional course summary used in prompts.")
  sections: list[SectionSpec] = Field(default_factory=list, description="Roadmap sections in delivery order.")
  per_section_overrides: dict[int, SectionOverride] = Field(default_factory=dict, description="Overrides keyed by zero-based section index.")
  session_id: StrictStr | None = Field(default=None, description="Notification session that receives progress events.")


@dataclass(frozen=True)
class SubtopicContext:
  """Prompt context for one subtopic."""

  course_title: str
  section_index: int
  section_title: str
  subtopic_index: int
  subtopic_title: str
  previous_summary: str | None = None
  next_summary: str | None = None
  instructions: str | None = None
  course_description: str | None = None


class ContentGenerator(Protocol):
  """External capability that produces course material and embeddings."""

  async def generate_subtopic_content(self, context: SubtopicContext) -> str:
    """Return lesson markdown for one subtopic."""

  async def generate_quiz(self, context: SubtopicContext, markdown: str) -> list[dict[str, Any]]:
    """Return quiz questions for one subtopic."""

  async def generate_flashcards(self, context: SubtopicContext, markdown: str) -> list[dict[str, Any]]:
    """Return flashcards for one subtopic."""

  async def embed(self, text: str) -> list[float]:
    """Return the embedding vector for a text."""

  async def answer(self, question: str, context: str) -> str:
    """Answer a learner question using retrieved course context."""


class ArtifactWriter(Protocol):
  """File materializer collaborator."""

  async def write_artifact(self, path: str, content: str) -> str:
    """Persist content at a relative path and return the stored location."""
