"""
Tests for the httpx data gateway and the typed endpoint wrappers.
"""

import httpx
import pytest

from offline_cache.entities import DownloadedFile
from offline_cache.repositories import EntriesApi, FilesApi, HttpDataGateway

BASE_URL = "http://api.test/api"


def make_gateway(handler):
    return HttpDataGateway(base_url=BASE_URL, timeout=5, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_request_sends_json_and_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = request.content
        return httpx.Response(201, json={"id": 1, "text": "hi"})

    gateway = make_gateway(handler)
    response = await EntriesApi(gateway).create("tok", "hi")

    assert response.ok
    assert response.status == 201
    assert response.data == {"id": 1, "text": "hi"}
    assert seen["url"] == f"{BASE_URL}/entries"
    assert seen["auth"] == "Bearer tok"
    assert b'"text"' in seen["body"]
    await gateway.close()


@pytest.mark.asyncio
async def test_error_body_message_is_used():
    gateway = make_gateway(lambda request: httpx.Response(404, json={"error": "Entry not found"}))

    response = await gateway.request("/entries/9", method="DELETE", token="tok")

    assert not response.ok
    assert response.status == 404
    assert response.error == "Entry not found"
    assert response.is_client_error


@pytest.mark.asyncio
async def test_error_without_body_gets_generic_message():
    gateway = make_gateway(lambda request: httpx.Response(500, text="<html>oops</html>"))

    response = await gateway.request("/entries")

    assert response.error == "Request failed"
    assert response.is_server_error


@pytest.mark.asyncio
async def test_transport_failure_is_a_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    gateway = make_gateway(handler)
    response = await gateway.request("/entries")

    assert response.status == 0
    assert response.error == "Network error"
    assert response.is_network_error


@pytest.mark.asyncio
async def test_empty_success_body_parses_as_empty_object():
    gateway = make_gateway(lambda request: httpx.Response(204))

    response = await gateway.request("/entries/1", method="DELETE")

    assert response.ok
    assert response.data == {}


@pytest.mark.asyncio
async def test_upload_sends_multipart_form():
    seen = {}

    def handler(request):
        seen["content_type"] = request.headers["Content-Type"]
        seen["body"] = request.content
        return httpx.Response(201, json={"success": True})

    gateway = make_gateway(handler)
    response = await FilesApi(gateway).upload("tok", "notes.txt", b"hello", "text/plain", "my notes")

    assert response.ok
    assert seen["content_type"].startswith("multipart/form-data")
    assert b'filename="notes.txt"' in seen["body"]
    assert b"my notes" in seen["body"]


@pytest.mark.asyncio
async def test_download_reads_filename_from_content_disposition():
    def handler(request):
        return httpx.Response(
            200,
            content=b"\x00\x01",
            headers={"Content-Disposition": 'attachment; filename="r%C3%A9sum%C3%A9.pdf"'},
        )

    gateway = make_gateway(handler)
    response = await FilesApi(gateway).download("tok", 3)

    assert response.ok
    assert response.data == DownloadedFile(content=b"\x00\x01", filename="résumé.pdf")


@pytest.mark.asyncio
async def test_download_failure_has_default_message():
    gateway = make_gateway(lambda request: httpx.Response(403))

    response = await gateway.download("/files/3/download")

    assert response.error == "Download failed"
    assert response.status == 403


@pytest.mark.asyncio
async def test_health_reports_reachability():
    up = make_gateway(lambda request: httpx.Response(200, json={"status": "ok"}))

    def down_handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    assert await up.health() is True
    assert await make_gateway(down_handler).health() is False
