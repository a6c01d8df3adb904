"""Lenient JSON parsing helpers for LLM outputs."""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_json_fences(raw: str) -> str:
  """Remove a surrounding Markdown code fence."""
  return _FENCE_RE.sub("", raw.strip())


def parse_json_with_fallback(raw: str) -> Any:
  """Parse JSON with minimal recovery to keep LLM retries low."""
  text = strip_json_fences(raw)

  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    return json.loads(text)
  except json.JSONDecodeError as exc:
    last_error = exc

  # Extract the first JSON object/array to ignore leading or trailing prose.
  candidate = _extract_json_block(text)
  if candidate is None:
    raise last_error

  for attempt in (candidate, _TRAILING_COMMA_RE.sub(r"\1", candidate)):
    try:
      return json.loads(attempt)
    except json.JSONDecodeError as exc:
      last_error = exc

  raise last_error


def _extract_json_block(raw: str) -> str | None:
  """Locate the first balanced JSON object/array."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  for index, char in enumerate(raw):
    if start_index is None:
      if char in "{[":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char in "{[":
      depth += 1
    elif char in "}]":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None


def extract_list(payload: Any, key: str) -> list[dict[str, Any]]:
  """Return payload[key] (or the payload itself when it is already a list) as a list of objects."""
  items = payload.get(key) if isinstance(payload, dict) else payload
  if not isinstance(items, list):
    raise ValueError(f"Expected a JSON list under '{key}'.")
  return [item for item in items if isinstance(item, dict)]
