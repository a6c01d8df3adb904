"""Filesystem artifact writer and course layout helpers."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str, *, max_length: int = 60) -> str:
  """Return a lowercase, filesystem-safe slug."""
  slug = _SLUG_RE.sub("-", value.lower()).strip("-")
  return slug[:max_length].rstrip("-") or "untitled"


def section_dir(course_id: str, section_index: int, section_title: str) -> str:
  return f"{slugify(course_id)}/sections/{section_index + 1:02d}-{slugify(section_title)}"


def subtopic_markdown_path(course_id: str, section_index: int, section_title: str, subtopic_index: int, subtopic_title: str) -> str:
  return f"{section_dir(course_id, section_index, section_title)}/{subtopic_index + 1:02d}-{slugify(subtopic_title)}.md"


def assessment_path(course_id: str, kind: str, section_index: int, subtopic_index: int, subtopic_title: str) -> str:
  return f"{slugify(course_id)}/assessments/{kind}/{section_index + 1:02d}-{subtopic_index + 1:02d}-{slugify(subtopic_title)}.json"


def course_file_path(course_id: str, name: str) -> str:
  return f"{slugify(course_id)}/{name}"


def to_json(payload: Any) -> str:
  return json.dumps(payload, indent=2, ensure_ascii=False)


class FileArtifactWriter:
  """Write artifacts under a root directory, replacing files atomically."""

  def __init__(self, root: str | Path) -> None:
    self._root = Path(root).resolve()

  @property
  def root(self) -> Path:
    return self._root

  def _resolve(self, path: str) -> Path:
    target = (self._root / path).resolve()
    # Keep every write inside the configured root.
    if not target.is_relative_to(self._root):
      raise ValueError(f"Artifact path escapes the artifact root: {path}")
    return target

  def _write(self, target: Path, content: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    # Write to a sibling temp file then rename so readers never observe a partial artifact.
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
      with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(content)
      os.replace(tmp_name, target)
    except BaseException:
      Path(tmp_name).unlink(missing_ok=True)
      raise

  async def write_artifact(self, path: str, content: str) -> str:
    target = self._resolve(path)
    await run_in_threadpool(self._write, target, content)
    logger.debug("Wrote artifact %s (%d chars)", target, len(content))
    return path
