from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Tuple

import pytest
from fastapi.testclient import TestClient

from backend.db import duck
from backend.errors import GenerationError
from backend.services import schema


@pytest.fixture
def client():
    from backend.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def customers():
    duck.fetch("CREATE TABLE customers (id INTEGER PRIMARY KEY, name VARCHAR)")
    duck.fetch("INSERT INTO customers VALUES (1, 'Ana'), (2, 'Bo')")
    yield "customers"


def _events(body: str) -> List[Tuple[str, Dict[str, Any]]]:
    events = []
    for block in body.split("\n\n"):
        lines = [line for line in block.splitlines() if line and not line.startswith(":")]
        if not lines:
            continue
        fields = dict(line.split(": ", 1) for line in lines)
        events.append((fields["event"], json.loads(fields["data"])))
    return events


def test_health_reports_dependencies(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["db"] == "ok"
    assert body["cache"] == "ok"
    assert "time" in body


def test_missing_field_returns_400_error_shape(client, fake_driver):
    response = client.post("/ai/query", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "Question is required"}


def test_malformed_body_returns_400(client):
    response = client.post("/ai/query", json={"question": ["not", "text"]})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request"
    assert body["details"]


def test_query_endpoint(client, fake_driver, customers):
    fake_driver.replies["select"] = "```sql\nSELECT name FROM customers ORDER BY id\n```"
    response = client.post("/ai/query", json={"question": "Names?"})
    assert response.status_code == 200
    assert response.json() == {
        "question": "Names?",
        "sql_generated": "SELECT name FROM customers ORDER BY id",
        "results": [{"name": "Ana"}, {"name": "Bo"}],
    }


def test_unauthorized_statement_is_500(client, fake_driver, customers):
    fake_driver.replies["manipulation"] = "SELECT * FROM customers"
    response = client.post("/ai/command", json={"command": "show customers"})
    assert response.status_code == 500
    assert response.json()["error"].startswith("Statement not allowed")


def test_tables_and_table_data(client, customers):
    assert client.get("/ai/tables").json() == {"tables": ["customers"]}

    response = client.get("/ai/table-data", params={"table": "customers", "limit": 1})
    assert response.status_code == 200
    assert response.json()["data"] == {"columns": ["id", "name"], "rows": [{"id": 1, "name": "Ana"}]}

    assert client.get("/ai/table-data").json() == {"error": "Table name is required"}
    assert client.get("/ai/table-data", params={"table": "bad-name"}).status_code == 400
    assert client.get("/ai/table-data", params={"table": "ghost"}).status_code == 404
    assert client.get("/ai/table-data", params={"table": "customers", "limit": 0}).status_code == 400


def test_drop_table_endpoint(client, customers):
    response = client.post("/ai/drop-table", json={"table": "customers"})
    assert response.json() == {"message": "Table 'customers' deleted successfully."}
    assert schema.list_tables() == []


def test_schema_endpoints(client, customers):
    rebuilt = client.post("/ai/schema/rebuild").json()
    assert "Table: customers" in rebuilt["schema"]
    assert rebuilt["duration_ms"] >= 0
    assert client.get("/ai/schema").json()["schema"] == rebuilt["schema"]
    assert client.post("/ai/cache/clear").json() == {"message": "Cache cleared"}


def test_contexts_crud(client):
    assert client.post("/contexts/setup").json() == {"message": "Contexts table created successfully"}

    created = client.post("/contexts", json={"name": "shop", "content": {"text": "We sell pens"}}).json()
    context_id = created["id"]
    assert client.get(f"/contexts/{context_id}").json()["name"] == "shop"
    assert [item["id"] for item in client.get("/contexts").json()] == [context_id]

    updated = client.put(f"/contexts/{context_id}", json={"is_default": True}).json()
    assert updated["is_default"] is True
    assert updated["content"] == {"text": "We sell pens"}

    assert client.delete(f"/contexts/{context_id}").status_code == 200
    assert client.delete(f"/contexts/{context_id}").status_code == 200
    missing = client.get(f"/contexts/{context_id}")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Context not found"}


def test_chat_stream_sends_tokens_then_done(client, fake_driver):
    fake_driver.fragments = ["The ", "cat ", "sat."]
    response = client.post("/ai/chat-free-stream", json={"message": "hi"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    events = _events(response.text)
    assert [name for name, _ in events] == ["token", "token", "token", "done"]
    assert events[-1][1] == {"reply": "The cat sat."}


def test_chat_stream_reports_upstream_failure(client, fake_driver):
    def failing():
        yield "partial"
        raise GenerationError("Ollama stream failed: connection reset")

    fake_driver.fragments = failing()
    events = _events(client.post("/ai/chat-free-stream", json={"message": "hi"}).text)
    assert events[0] == ("token", {"token": "partial"})
    assert events[-1] == ("error", {"error": "Ollama stream failed: connection reset"})


def test_chat_stream_reports_unexpected_failure(client, fake_driver, caplog):
    def failing():
        yield "partial"
        raise RuntimeError("socket closed mid-read")

    fake_driver.fragments = failing()
    with caplog.at_level(logging.ERROR, logger="backend.routers.ai"):
        events = _events(client.post("/ai/chat-free-stream", json={"message": "hi"}).text)
    assert events[0] == ("token", {"token": "partial"})
    assert events[-1] == ("error", {"error": "socket closed mid-read"})
    assert "Traceback" in caplog.text


def test_chat_stream_validates_before_streaming(client, fake_driver):
    response = client.post("/ai/chat-free-stream", json={"message": ""})
    assert response.status_code == 400
    assert response.json() == {"error": "Message is required"}


def test_unexpected_errors_become_500(monkeypatch):
    from backend.main import app

    def broken():
        raise RuntimeError("boom")

    monkeypatch.setattr(schema, "list_tables", broken)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        response = test_client.get("/ai/tables")
    assert response.status_code == 500
    assert response.json() == {"error": "boom"}
