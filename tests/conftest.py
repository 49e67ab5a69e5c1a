"""Shared fixtures: an in-memory fake of the notes backend and a test clock."""

import asyncio
import re
from typing import Any

import pytest

from offline_cache.config import Settings
from offline_cache.entities import DownloadedFile, GatewayResponse, QueryKey
from offline_cache.repositories import MemoryKeyStore
from offline_cache.services import (
    ConnectivityMonitor,
    EntityCache,
    MutationCoordinator,
    RetryPolicy,
)

TOKEN = "token-alice"
USERS = {"alice": "secret"}

_ENTRY_PATH = re.compile(r"^/entries/(\d+)$")
_FILE_PATH = re.compile(r"^/files/(\d+)$")
_DOWNLOAD_PATH = re.compile(r"^/files/(\d+)/download$")
_RESET_PATH = re.compile(r"^/reset-password/(.+)$")


class FakeClock:
    """Manually advanced Unix clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """In-memory implementation of the DataGateway protocol.

    Behaves like the notes backend: bearer token auth, entries and files
    CRUD. ``online = False`` makes every call a network error; queued
    ``failures`` are returned (one per call) before normal handling.
    """

    def __init__(self) -> None:
        self.online = True
        self.entries: list[dict[str, Any]] = []
        self.files: list[dict[str, Any]] = []
        self.next_id = 1
        self.calls: list[tuple[str, str]] = []
        self.failures: list[GatewayResponse] = []
        self.reset_tokens = {"valid-reset"}
        self.closed = False

    def fail_next(self, status: int, error: str = "boom", times: int = 1) -> None:
        self.failures.extend(GatewayResponse(error=error, status=status) for _ in range(times))

    def add_entry(self, text: str) -> dict[str, Any]:
        entry = {"id": self._new_id(), "text": text}
        self.entries.insert(0, entry)
        return entry

    def add_file(self, name: str, size: int = 3) -> dict[str, Any]:
        item = {
            "id": self._new_id(),
            "originalName": name,
            "storedName": f"stored-{name}",
            "mimeType": "text/plain",
            "size": size,
            "userId": 1,
            "createdAt": "2024-01-01T00:00:00Z",
            "description": None,
        }
        self.files.insert(0, item)
        return item

    def _new_id(self) -> int:
        value = self.next_id
        self.next_id += 1
        return value

    def _gate(self, method: str, endpoint: str) -> GatewayResponse | None:
        self.calls.append((method, endpoint))
        if not self.online:
            return GatewayResponse(error="Network error", status=0)
        if self.failures:
            return self.failures.pop(0)
        return None

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        token: str | None = None,
    ) -> GatewayResponse:
        failure = self._gate(method, endpoint)
        if failure is not None:
            return failure
        body = body or {}

        if endpoint == "/health":
            return GatewayResponse(data={"status": "ok"})
        if endpoint == "/login":
            if USERS.get(body.get("username")) == body.get("password"):
                return GatewayResponse(data={"token": TOKEN})
            return GatewayResponse(error="Invalid credentials", status=401)
        if endpoint == "/signup":
            if body.get("username") in USERS:
                return GatewayResponse(error="Username already exists", status=400)
            return GatewayResponse(data={"success": True}, status=201)
        if endpoint == "/forgot-password":
            return GatewayResponse(data={"success": True, "message": "If the email exists, a reset link was sent"})
        if endpoint == "/reset-password":
            if body.get("token") not in self.reset_tokens:
                return GatewayResponse(error="Invalid or expired token", status=400)
            return GatewayResponse(data={"success": True, "message": "Password updated"})
        if match := _RESET_PATH.match(endpoint):
            return GatewayResponse(data={"valid": match.group(1) in self.reset_tokens})

        if token != TOKEN:
            return GatewayResponse(error="Unauthorized", status=401)

        if endpoint == "/entries" and method == "GET":
            return GatewayResponse(data=[dict(e) for e in self.entries])
        if endpoint == "/entries" and method == "POST":
            if not body.get("text"):
                return GatewayResponse(error="Text is required", status=400)
            return GatewayResponse(data=dict(self.add_entry(body["text"])), status=201)
        if match := _ENTRY_PATH.match(endpoint):
            entry = next((e for e in self.entries if e["id"] == int(match.group(1))), None)
            if entry is None:
                return GatewayResponse(error="Entry not found", status=404)
            if method == "PUT":
                entry["text"] = body["text"]
                return GatewayResponse(data=dict(entry))
            if method == "DELETE":
                self.entries.remove(entry)
                return GatewayResponse(data={"success": True})
        if endpoint == "/files" and method == "GET":
            return GatewayResponse(data=[dict(f) for f in self.files])
        if match := _FILE_PATH.match(endpoint):
            item = next((f for f in self.files if f["id"] == int(match.group(1))), None)
            if item is None:
                return GatewayResponse(error="File not found", status=404)
            self.files.remove(item)
            return GatewayResponse(data={"success": True})
        return GatewayResponse(error="Not found", status=404)

    async def upload(
        self,
        endpoint: str,
        filename: str,
        content: bytes,
        mime_type: str,
        fields: dict[str, str] | None = None,
        token: str | None = None,
    ) -> GatewayResponse:
        failure = self._gate("POST", endpoint)
        if failure is not None:
            return failure
        if token != TOKEN:
            return GatewayResponse(error="Unauthorized", status=401)
        item = self.add_file(filename, size=len(content))
        item["description"] = (fields or {}).get("description")
        return GatewayResponse(data={"success": True, "file": dict(item)}, status=201)

    async def download(self, endpoint: str, token: str | None = None) -> GatewayResponse:
        failure = self._gate("GET", endpoint)
        if failure is not None:
            return failure
        if token != TOKEN:
            return GatewayResponse(error="Unauthorized", status=401)
        match = _DOWNLOAD_PATH.match(endpoint)
        item = next((f for f in self.files if match and f["id"] == int(match.group(1))), None)
        if item is None:
            return GatewayResponse(error="File not found", status=404)
        return GatewayResponse(data=DownloadedFile(content=b"abc", filename=item["originalName"]))

    async def health(self) -> bool:
        response = await self.request("/health")
        return response.ok

    async def close(self) -> None:
        self.closed = True


async def settle() -> None:
    """Run every other pending task on the loop to completion."""
    current = asyncio.current_task()
    while True:
        pending = [t for t in asyncio.all_tasks() if t is not current and not t.done()]
        if not pending:
            return
        await asyncio.gather(*pending, return_exceptions=True)


KEY = QueryKey.of("entries", "list")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def retry() -> RetryPolicy:
    """Three attempts without backoff delays."""
    return RetryPolicy(attempts=3, base_delay=0, max_delay=0)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def store() -> MemoryKeyStore:
    return MemoryKeyStore()


@pytest.fixture
def monitor() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True)


@pytest.fixture
def cache(clock, retry) -> EntityCache:
    return EntityCache(clock=clock, retry=retry)


@pytest.fixture
def coordinator(cache, monitor, retry, clock) -> MutationCoordinator:
    return MutationCoordinator(cache, monitor, retry=retry, clock=clock)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        connectivity_probe_interval=0,
        persist_throttle=0.01,
        retry_base_delay=0,
        retry_max_delay=0,
        storage_backend="memory",
    )
