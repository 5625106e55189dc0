#!/usr/bin/env python3
"""
test_book_agent_system.py
End-to-end tests of the HTTP app: agent card, health, REST and A2A endpoints.

The catalog is served by httpx.MockTransport, so no network is used.
Run with: pytest src/book_agent/test_book_agent_system.py
"""

import asyncio
import json
import time
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from src.book_agent import config
from src.book_agent.agent import BookExtractorAgent
from src.book_agent.conftest import always_timeout
from src.book_agent.protocol_handler import A2AProtocolHandler
from src.book_agent.server import RateLimiter, create_app
from src.book_agent.task_store import TaskStore

A2A_PATH = f"/a2a/{config.AGENT_ID}"


class SlowAgent:
    async def generate(self, instruction):
        await asyncio.sleep(1)


@pytest.fixture
def handler(catalog_client) -> A2AProtocolHandler:
    return A2AProtocolHandler(TaskStore(), BookExtractorAgent(catalog_client), request_timeout=5)


@pytest.fixture
def client(handler) -> TestClient:
    return TestClient(create_app(handler=handler))


def make_rpc_request(client: TestClient, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Make a JSON-RPC request to the agent."""
    request = {
        "jsonrpc": "2.0",
        "method": method,
        "params": params or {},
        "id": 1
    }
    response = client.post(A2A_PATH, json=request)
    return response.json()


def parse_sse(body: str) -> List[Dict[str, Any]]:
    return [json.loads(chunk[len("data: "):]) for chunk in body.split("\n\n") if chunk]


def test_agent_cards(client):
    """Agent card is served on both discovery paths."""
    card = client.get("/.well-known/agent.json").json()

    assert card["name"] == "Public Domain Book Extractor"
    assert card["executionUrl"] == A2A_PATH
    assert card["capabilities"] == {"streaming": True, "pushNotifications": False}
    assert card["skills"][0]["name"] == "extractBookExcerpt"
    assert len(card["extensions"][0]["methods"]) == 7
    assert client.get("/.well-known/agent-card").json() == card


def test_health(client):
    health = client.get("/health").json()

    assert health["status"] == "healthy"
    assert health["service"] == "a2a-book-agent"
    assert health["version"] == "1.0.0"
    assert health["activeTasks"] == 0
    assert health["uptime"] >= 0


def test_security_headers(client):
    response = client.get("/health")

    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"
    assert response.headers["referrer-policy"] == "strict-origin-when-cross-origin"


def test_rate_limit(handler):
    client = TestClient(create_app(handler=handler, rate_limiter=RateLimiter(2, 60_000)))

    statuses = [client.get("/health").status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
    error = client.get("/health").json()["error"]
    assert error["code"] == "RATE_LIMIT_EXCEEDED"
    # Epoch milliseconds, within the next window
    now_ms = time.time() * 1000
    assert now_ms < error["details"]["resetTime"] <= now_ms + 60_000


def test_rate_limiter_forgets_expired_windows():
    now = [100.0]
    limiter = RateLimiter(1, 1_000, clock=lambda: now[0])

    assert limiter.check("a")[0] is True
    assert limiter.check("b")[0] is True
    assert limiter.check("a")[0] is False
    assert len(limiter) == 2

    now[0] = 102.0
    allowed, reset_time = limiter.check("a")

    assert allowed is True
    assert reset_time == 103_000
    assert len(limiter) == 1


# ─── REST ────────────────────────────────────────────────────────────────────

def test_extract_book(client):
    response = client.post("/api/extract-book", json={"searchQuery": "Sherlock Holmes"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["title"] == "The Adventures of Sherlock Holmes"
    assert len(body["data"]["excerpt"]) <= 500
    assert body["timestamp"]


@pytest.mark.parametrize("payload", [{}, {"searchQuery": ""}, {"searchQuery": "<script>x</script>"}])
def test_extract_book_validation(client, gutendex, payload):
    response = client.post("/api/extract-book", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert gutendex.requests == []


def test_extract_book_invalid_json(client):
    response = client.post(
        "/api/extract-book",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400


def test_extract_book_body_not_utf8(client, gutendex):
    response = client.post(
        "/api/extract-book",
        content=b'{"searchQuery":"\xff"}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert gutendex.requests == []


def test_extract_book_upstream_failure(client, gutendex):
    gutendex.search_handler = always_timeout

    response = client.post("/api/extract-book", json={"searchQuery": "Sherlock Holmes"})

    assert response.status_code == 502
    error = response.json()["error"]
    assert error["code"] == "TIMEOUT_ERROR"
    assert error["path"] == "/api/extract-book"


def test_extract_book_deadline():
    handler = A2AProtocolHandler(TaskStore(), SlowAgent(), request_timeout=0.01)
    client = TestClient(create_app(handler=handler))

    response = client.post("/api/extract-book", json={"searchQuery": "Sherlock Holmes"})

    assert response.status_code == 504
    assert response.json()["error"]["details"] == {"timeout": 10}


# ─── A2A ─────────────────────────────────────────────────────────────────────

def test_a2a_message_send_then_get(client):
    sent = make_rpc_request(client, "message/send", {
        "message": {"role": "user", "parts": [{"kind": "text", "text": "Find a book with: query: Sherlock Holmes"}]},
    })
    task_id = sent["result"]["task"]["id"]

    fetched = make_rpc_request(client, "tasks/get", {"id": task_id})

    assert fetched["result"]["status"]["state"] == "completed"
    assert client.get("/health").json()["activeTasks"] == 1


def test_a2a_stream(client):
    request = {
        "jsonrpc": "2.0",
        "method": "message/stream",
        "params": {"message": {"role": "user", "parts": [{"kind": "text", "text": "Sherlock Holmes"}]}},
        "id": "stream-1",
    }

    response = client.post(A2A_PATH, json=request)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-accel-buffering"] == "no"
    frames = parse_sse(response.text)
    assert frames[0]["result"]["status"] == "started"
    assert frames[-1]["result"]["status"] == "stream_complete"
    assert all(frame["id"] == "stream-1" for frame in frames)


def test_a2a_parse_error(client):
    response = client.post(A2A_PATH, content=b"{oops", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32700


def test_a2a_body_not_utf8(client):
    response = client.post(
        A2A_PATH,
        content=b'{"jsonrpc":"2.0","method":"\xff"}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32700


def test_a2a_zero_id_is_echoed(client):
    response = client.post(A2A_PATH, json={"jsonrpc": "2.0", "method": "tasks/get", "params": {"id": "task_1_x"}, "id": 0})

    assert response.json()["id"] == 0


def test_a2a_invalid_request(client):
    response = client.post(A2A_PATH, json={"method": "tasks/get", "id": 7})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32600
    assert response.json()["id"] == 7


def test_a2a_unknown_method(client):
    response = make_rpc_request(client, "executeTask", {"task": "What is 2+2?"})

    assert response["error"]["code"] == -32601
    assert "message/send" in response["error"]["data"]["availableMethods"]
