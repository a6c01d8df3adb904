"""Prompt templates for course material generation."""

from __future__ import annotations

from coursegen.pipeline.contracts import SubtopicContext

SUBTOPIC_PROMPT = """You are writing one lesson of the course "{course_title}".
{course_description}
Section {section_number}: {section_title}
Lesson {subtopic_number}: {subtopic_title}
{neighbours}
{instructions}
Write the lesson in Markdown. Start with a level-1 heading, explain the core ideas with examples,
and end with a short "Key takeaways" list. Do not repeat material from neighbouring lessons."""

QUIZ_PROMPT = """Create {count} multiple-choice questions for the lesson "{subtopic_title}" of the course "{course_title}".
Return JSON only, shaped as {{"questions": [{{"question": str, "options": [str, str, str, str], "answerIndex": int, "explanation": str}}]}}.

Lesson:
{markdown}"""

FLASHCARDS_PROMPT = """Create {count} study flashcards for the lesson "{subtopic_title}" of the course "{course_title}".
Return JSON only, shaped as {{"cards": [{{"front": str, "back": str}}]}}.

Lesson:
{markdown}"""

ANSWER_SYSTEM_PROMPT = "You are an AI study buddy. Answer using the course context when it is relevant, say so when it is not, and keep answers concise."

ANSWER_PROMPT = """{context}

Student question: {question}"""


def _optional_line(label: str, value: str | None) -> str:
  return f"{label}: {value}" if value else ""


def render_subtopic_prompt(context: SubtopicContext) -> str:
  neighbours = "\n".join(line for line in (context.previous_summary, context.next_summary) if line)
  return SUBTOPIC_PROMPT.format(
    course_title=context.course_title,
    course_description=_optional_line("Course summary", context.course_description),
    section_number=context.section_index + 1,
    section_title=context.section_title,
    subtopic_number=context.subtopic_index + 1,
    subtopic_title=context.subtopic_title,
    neighbours=neighbours,
    instructions=_optional_line("Additional instructions", context.instructions),
  )


def render_quiz_prompt(context: SubtopicContext, markdown: str, count: int) -> str:
  return QUIZ_PROMPT.format(count=count, subtopic_title=context.subtopic_title, course_title=context.course_title, markdown=markdown)


def render_flashcards_prompt(context: SubtopicContext, markdown: str, count: int) -> str:
  return FLASHCARDS_PROMPT.format(count=count, subtopic_title=context.subtopic_title, course_title=context.course_title, markdown=markdown)


def render_answer_prompt(question: str, context: str) -> str:
  return ANSWER_PROMPT.format(context=context, question=question)
