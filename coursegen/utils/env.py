"""Minimal .env loader for local development."""

from __future__ import annotations

import os
from pathlib import Path


def default_env_path() -> Path:
  """Return the .env path at the repository root."""

  return Path(__file__).resolve().parents[2] / ".env"


def _strip_quotes(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  return value


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Load KEY=VALUE pairs into the process environment and return the applied entries."""

  applied: dict[str, str] = {}
  if not path.is_file():
    return applied

  for raw_line in path.read_text(encoding="utf-8").splitlines():
    line = raw_line.strip()
    # Skip blanks and comments.
    if not line or line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, separator, value = line.partition("=")
    key = key.strip()
    if not separator or not key:
      continue
    # Real environment wins unless the caller asks otherwise.
    if not override and key in os.environ:
      continue
    os.environ[key] = _strip_quotes(value.strip())
    applied[key] = os.environ[key]

  return applied
