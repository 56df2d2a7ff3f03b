"""
Live API Integration Tests

Tests against a running stack (API, PostgreSQL, Chroma and Ollama).
Marked with @pytest.mark.integration and deselected by default.

Run with: pytest tests/integration -m integration
"""

import time
import uuid
from collections.abc import Generator

import httpx
import pytest

BASE_URL = "http://localhost:8001"


@pytest.fixture(scope="module")
def api_client() -> Generator[httpx.Client, None, None]:
    """
    Client for the running API, failing fast if it never becomes healthy.

    Polls /health with 1s intervals for up to 30s.
    """
    deadline = time.time() + 30
    while time.time() < deadline:
        try:
            if httpx.get(f"{BASE_URL}/health", timeout=1.0).status_code == 200:
                break
        except httpx.RequestError:
            time.sleep(1)
    else:
        pytest.fail("API unreachable. Is the stack running?")

    with httpx.Client(base_url=f"{BASE_URL}/api/v1", timeout=60.0) as client:
        yield client


@pytest.mark.integration
def test_lifecycle_create_read_delete(api_client):
    """Create -> List -> Get -> Delete against the real database."""
    payload = {"title": "Live Test", "content": "Running against the live stack"}
    res_post = api_client.post("/notes/", json=payload)
    assert res_post.status_code == 201
    note_id = res_post.json()["id"]

    assert any(n["id"] == note_id for n in api_client.get("/notes/").json())
    assert api_client.get(f"/notes/{note_id}").json()["title"] == "Live Test"

    assert api_client.delete(f"/notes/{note_id}").status_code == 204
    assert api_client.get(f"/notes/{note_id}").status_code == 404


@pytest.mark.integration
def test_not_found(api_client):
    res = api_client.get("/notes/999999999")
    assert res.status_code == 404


@pytest.mark.integration
def test_chat_answers_from_new_note(api_client):
    """
    A freshly saved note becomes retrievable once the background sync
    has written its vector.
    """
    city = f"Kyoto-{uuid.uuid4().hex[:6]}"
    note = api_client.post(
        "/notes/",
        json={"title": "Trip", "content": f"Visited {city} in April"},
    ).json()

    # Polling config: 20 * 0.5s = 10s max wait for background sync
    for _ in range(20):
        if api_client.get(f"/notes/{note['id']}").json()["is_embedded"]:
            break
        time.sleep(0.5)
    else:
        pytest.fail("note was never embedded")

    conversation = uuid.uuid4().hex
    res = api_client.post(
        f"/chat/{conversation}/ask",
        json={"message": "Where did I travel in April?"},
    )
    assert res.status_code == 200, res.text
    assert any(s["note_id"] == note["id"] for s in res.json()["sources"])

    api_client.delete(f"/notes/{note['id']}")
