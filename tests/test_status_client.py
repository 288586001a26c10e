"""Tests for the read-only status client."""

import httpx
import pytest

from noisebell.client import StatusClient
from noisebell.errors import RemoteServerError
from noisebell.webhooks.models import CLOSED, unknown_event

SERVER_URL = "http://controller.test"


def _routes(table):
    def handler(request: httpx.Request) -> httpx.Response:
        return table.get(request.url.path, httpx.Response(404, text="not found"))

    return handler


@pytest.fixture
async def make_client():
    http_clients = []

    def _make(table):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(_routes(table)))
        http_clients.append(http_client)
        return StatusClient(SERVER_URL, http_client=http_client)

    yield _make
    for http_client in http_clients:
        await http_client.aclose()


class TestStatusClient:
    async def test_poll_status_decodes_state(self, make_client):
        client = make_client(
            {"/status": httpx.Response(200, json={"status": "ok", "data": {"state": "closed"}})}
        )
        assert await client.poll_status() == CLOSED

    async def test_poll_status_keeps_unknown_state(self, make_client):
        client = make_client(
            {"/status": httpx.Response(200, json={"status": "ok", "data": {"state": "jammed"}})}
        )
        assert await client.poll_status() == unknown_event("jammed")

    async def test_poll_health(self, make_client):
        client = make_client(
            {"/health": httpx.Response(200, json={"status": "healthy", "data": {"uptime": 42}})}
        )
        health = await client.poll_health()
        assert health.status == "healthy"
        assert health.data == {"uptime": 42}

    async def test_list_webhooks(self, make_client):
        client = make_client(
            {
                "/webhooks": httpx.Response(
                    200,
                    json={
                        "status": "ok",
                        "data": {
                            "webhooks": [
                                {"url": "http://127.0.0.1:3000", "created_at": "2024-05-01T10:00:00Z"},
                                {"url": "http://127.0.0.1:3001", "created_at": "2024-05-02T10:00:00Z"},
                            ]
                        },
                    },
                )
            }
        )
        webhooks = await client.list_webhooks()
        assert [w.url for w in webhooks] == ["http://127.0.0.1:3000", "http://127.0.0.1:3001"]

    async def test_error_status_raises(self, make_client):
        client = make_client({"/status": httpx.Response(503, text="maintenance")})
        with pytest.raises(RemoteServerError) as exc_info:
            await client.poll_status()
        assert exc_info.value.status == 503
        assert exc_info.value.body == "maintenance"

    async def test_malformed_response_raises(self, make_client):
        client = make_client({"/status": httpx.Response(200, text="<html>oops</html>")})
        with pytest.raises(RemoteServerError):
            await client.poll_status()

    async def test_unreachable_server_raises(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as http_client:
            client = StatusClient(SERVER_URL, http_client=http_client)
            with pytest.raises(RemoteServerError):
                await client.poll_health()
