from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, List, Optional

import pytest

from backend.config import get_settings
from backend.db.duck import reset_database
from backend.services import crud_generator, gateway
from backend.services.cache import get_cache
from backend.services.llm_provider import get_driver


def _reset_singletons() -> None:
    get_settings.cache_clear()
    get_cache.cache_clear()
    get_driver.cache_clear()
    reset_database()


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DUCKDB_FILENAME", ":memory:")
    monkeypatch.setenv("CACHE_BACKEND", "memory")
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("CRUD_OUTPUT_DIR", str(tmp_path / "generated"))
    monkeypatch.setenv("LLM_DRIVER", "ollama")
    for name in ("CACHE_CLEAR_ON_DDL", "SQL_TRANSACTIONAL", "DB_CACHE_TTL", "ANALYZE_CACHE_TTL"):
        monkeypatch.delenv(name, raising=False)
    _reset_singletons()
    yield
    _reset_singletons()


class FakeDriver:
    """Stands in for an LLM backend: answers per task from a table of replies."""

    name = "fake"
    model = "fake-model"

    def __init__(self) -> None:
        self.replies: Dict[str, Any] = {}
        self.calls: List[Dict[str, Any]] = []
        self.fragments: List[str] = []

    def generate(self, task: str, **payload: Any) -> str:
        self.calls.append({"task": task, **payload})
        reply = self.replies.get(task, "")
        if callable(reply):
            return reply(**payload)
        if isinstance(reply, list):
            return reply.pop(0)
        return reply

    def generate_stream(self, message: str) -> Iterator[str]:
        self.calls.append({"task": "chat", "message": message})
        for fragment in self.fragments:
            yield fragment

    def last(self, task: Optional[str] = None) -> Dict[str, Any]:
        calls = [call for call in self.calls if task is None or call["task"] == task]
        return calls[-1]


@pytest.fixture
def fake_driver(monkeypatch) -> FakeDriver:
    driver = FakeDriver()
    factory: Callable[[], FakeDriver] = lambda: driver
    monkeypatch.setattr(gateway, "get_driver", factory)
    monkeypatch.setattr(crud_generator, "get_driver", factory)
    return driver
