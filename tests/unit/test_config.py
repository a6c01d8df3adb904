from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from coursegen.config import get_database_settings, get_settings
from coursegen.utils.env import load_env_file


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
  for name in ("COURSEGEN_PG_DSN", "DATABASE_URL", "COURSEGEN_STORAGE_BACKEND", "COURSEGEN_WORKER_COUNT", "COURSEGEN_RETRY_BACKOFF_BASE_SECONDS", "COURSEGEN_RETRY_BACKOFF_CAP_SECONDS"):
    monkeypatch.delenv(name, raising=False)
  get_settings.cache_clear()
  get_database_settings.cache_clear()
  yield
  get_settings.cache_clear()
  get_database_settings.cache_clear()


def test_defaults_use_memory_storage_and_dummy_provider() -> None:
  settings = get_settings()
  assert settings.storage_backend == "memory"
  assert settings.content_provider == "dummy"
  assert settings.worker_count == 4
  assert settings.queue_capacity == 100
  assert settings.max_retries == 3
  assert settings.minutes_per_subtopic == 8
  assert settings.allowed_origins == ("http://localhost",)


def test_dsn_selects_postgres_backend(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("COURSEGEN_PG_DSN", "postgresql://user:secret@db:5432/coursegen")
  settings = get_settings()
  assert settings.storage_backend == "postgres"
  assert get_database_settings().pg_dsn == "postgresql://user:secret@db:5432/coursegen"


def test_postgres_backend_requires_dsn(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("COURSEGEN_STORAGE_BACKEND", "postgres")
  with pytest.raises(ValueError, match="COURSEGEN_PG_DSN"):
    get_settings()


def test_openai_provider_requires_key(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("COURSEGEN_CONTENT_PROVIDER", "openai")
  monkeypatch.delenv("COURSEGEN_OPENAI_API_KEY", raising=False)
  monkeypatch.delenv("OPENAI_API_KEY", raising=False)
  with pytest.raises(ValueError, match="COURSEGEN_OPENAI_API_KEY"):
    get_settings()


@pytest.mark.parametrize("raw", ["0", "-2", "many"])
def test_worker_count_must_be_positive_integer(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
  monkeypatch.setenv("COURSEGEN_WORKER_COUNT", raw)
  with pytest.raises(ValueError, match="COURSEGEN_WORKER_COUNT"):
    get_settings()


def test_backoff_cap_must_not_be_below_base(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("COURSEGEN_RETRY_BACKOFF_BASE_SECONDS", "5")
  monkeypatch.setenv("COURSEGEN_RETRY_BACKOFF_CAP_SECONDS", "1")
  with pytest.raises(ValueError, match="CAP"):
    get_settings()


def test_wildcard_origins_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("COURSEGEN_ALLOWED_ORIGINS", "http://a.test,*")
  with pytest.raises(ValueError, match="wildcard"):
    get_settings()


def test_env_file_loader_respects_existing_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text("# comment\nexport COURSEGEN_TEST_A='quoted'\nCOURSEGEN_TEST_B=from-file\nnot a pair\n", encoding="utf-8")
  # Register both keys so the loader's writes are undone after the test.
  monkeypatch.setenv("COURSEGEN_TEST_A", "placeholder")
  monkeypatch.delenv("COURSEGEN_TEST_A")
  monkeypatch.setenv("COURSEGEN_TEST_B", "from-env")

  applied = load_env_file(env_file)
  assert applied == {"COURSEGEN_TEST_A": "quoted"}
  assert os.environ["COURSEGEN_TEST_B"] == "from-env"

  applied = load_env_file(env_file, override=True)
  assert applied == {"COURSEGEN_TEST_A": "quoted", "COURSEGEN_TEST_B": "from-file"}


def test_missing_env_file_is_ignored(tmp_path: Path) -> None:
  assert load_env_file(tmp_path / "absent.env") == {}
