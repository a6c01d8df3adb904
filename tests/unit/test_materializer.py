from __future__ import annotations

import json
from pathlib import Path

import pytest

from coursegen.pipeline.materializer import FileArtifactWriter, assessment_path, course_file_path, slugify, subtopic_markdown_path, to_json


def test_slugify_normalises_titles() -> None:
  assert slugify("Intro to Biology: Cells & DNA!") == "intro-to-biology-cells-dna"
  assert slugify("***") == "untitled"
  assert len(slugify("x" * 200)) == 60


def test_layout_paths_are_numbered_from_one() -> None:
  assert subtopic_markdown_path("course-1", 0, "Cells", 1, "Cell membranes") == "course-1/sections/01-cells/02-cell-membranes.md"
  assert assessment_path("course-1", "quiz", 2, 0, "DNA") == "course-1/assessments/quiz/03-01-dna.json"
  assert course_file_path("Course 1", "course.json") == "course-1/course.json"


@pytest.mark.anyio
async def test_write_artifact_creates_parents_and_replaces_content(tmp_path: Path) -> None:
  writer = FileArtifactWriter(tmp_path)
  path = "course-1/sections/01-cells/01-intro.md"

  assert await writer.write_artifact(path, "first") == path
  await writer.write_artifact(path, "second")

  target = tmp_path / path
  assert target.read_text(encoding="utf-8") == "second"
  # No temp files are left next to the artifact.
  assert [entry.name for entry in target.parent.iterdir()] == ["01-intro.md"]


@pytest.mark.anyio
async def test_write_artifact_rejects_paths_outside_root(tmp_path: Path) -> None:
  writer = FileArtifactWriter(tmp_path / "artifacts")
  with pytest.raises(ValueError, match="escapes"):
    await writer.write_artifact("../outside.md", "nope")
  assert not (tmp_path / "outside.md").exists()


def test_to_json_keeps_unicode_readable() -> None:
  rendered = to_json({"title": "Célula"})
  assert "Célula" in rendered
  assert json.loads(rendered) == {"title": "Célula"}
