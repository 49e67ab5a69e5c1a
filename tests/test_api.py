"""
Tests for the local sync API.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGateway
from offline_cache.api.app import create_app
from offline_cache.repositories import MemoryKeyStore
from offline_cache.services import OfflineClient


@pytest.fixture
def backend():
    return FakeGateway()


@pytest.fixture
def client(backend, test_settings):
    """Create a test client backed by the fake API."""
    app = create_app(
        lambda: OfflineClient.create(gateway=backend, store=MemoryKeyStore(), config=test_settings)
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def logged_in(client):
    response = client.post("/login", json={"username": "alice", "password": "secret"})
    assert response.status_code == 200
    return client


def test_root(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Offline Cache API"
    assert "entries" in data["endpoints"]


def test_health(client, backend):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "online": True, "api_reachable": True}

    backend.online = False
    data = client.get("/health").json()
    assert data["status"] == "degraded"
    assert data["api_reachable"] is False


def test_login_rejected(client):
    response = client.post("/login", json={"username": "alice", "password": "nope"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


def test_entries_require_session(client):
    assert client.get("/entries").status_code == 401
    assert client.post("/entries", json={"text": "x"}).status_code == 401


def test_entry_text_is_validated(logged_in):
    response = logged_in.post("/entries", json={"text": ""})
    assert response.status_code == 422


def test_entries_flow(logged_in, backend):
    backend.add_entry("existing")

    data = logged_in.get("/entries").json()
    assert [e["text"] for e in data["data"]] == ["existing"]
    assert data["is_loading"] is False

    created = logged_in.post("/entries", json={"text": "new"}).json()
    assert created == {"success": True, "paused": False, "error": None}

    entry_id = backend.entries[0]["id"]
    assert logged_in.put(f"/entries/{entry_id}", json={"text": "renamed"}).json()["success"]
    assert backend.entries[0]["text"] == "renamed"

    response = logged_in.delete("/entries/999").json()
    assert response["success"] is False
    assert response["error"] == "Entry not found"


def test_offline_writes_are_paused_then_synced(logged_in, backend):
    logged_in.get("/entries")

    status = logged_in.post("/connectivity", json={"online": False}).json()
    assert status["online"] is False

    response = logged_in.post("/entries", json={"text": "offline"}).json()
    assert response == {"success": True, "paused": True, "error": None}
    assert logged_in.get("/status").json()["paused_mutations"] == 1
    assert backend.entries == []

    status = logged_in.post("/connectivity", json={"online": True}).json()
    assert status["paused_mutations"] == 0
    assert [e["text"] for e in backend.entries] == ["offline"]


def test_files_listing_uses_wire_names(logged_in, backend):
    item = backend.add_file("notes.txt")

    data = logged_in.get("/files").json()
    assert data["data"][0]["originalName"] == "notes.txt"

    assert logged_in.delete(f"/files/{item['id']}").json()["success"]
    assert backend.files == []


def test_status_and_logout(logged_in):
    logged_in.get("/entries")
    status = logged_in.get("/status").json()
    assert status["authenticated"] is True
    assert "entries/list" in status["cached_keys"]

    assert logged_in.post("/logout").json() == {"success": True}
    status = logged_in.get("/status").json()
    assert status["authenticated"] is False
    assert status["cached_keys"] == []


def test_clear_cache(logged_in):
    logged_in.get("/entries")

    response = logged_in.delete("/cache")
    assert response.status_code == 200
    assert response.json()["deleted_count"] == 1
    assert logged_in.get("/status").json()["cached_keys"] == []
