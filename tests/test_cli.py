"""Tests for the command line interface."""

import logging
import socket

import pytest
from click.testing import CliRunner

from noisebell import main
from noisebell.errors import RemoteServerError
from noisebell.webhooks.models import CLOSED, HealthResponse, WebhookInfo


class FakeStatusClient:
    fail = False

    def __init__(self, server_url, **kwargs):
        self.server_url = server_url

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def poll_status(self):
        if self.fail:
            raise RemoteServerError("GET /status failed: down", status=503, body="down")
        return CLOSED

    async def poll_health(self):
        return HealthResponse(status="ok", data={"uptime": 3})

    async def list_webhooks(self):
        return [WebhookInfo(url="http://127.0.0.1:3000", created_at="2024-05-01")]


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.setattr(main, "StatusClient", FakeStatusClient)
    FakeStatusClient.fail = False
    yield CliRunner()
    logging.getLogger().handlers.clear()


class TestCli:
    def test_missing_server_url_exits_with_config_error(self, runner):
        result = runner.invoke(main.cli, ["status"])
        assert result.exit_code == main.EXIT_CONFIG
        assert "server_url" in result.output

    def test_status(self, runner, monkeypatch):
        monkeypatch.setenv("SERVER_URL", "http://controller:8080")
        result = runner.invoke(main.cli, ["status"])
        assert result.exit_code == 0
        assert result.output.strip() == "closed"

    def test_status_failure_exits_nonzero(self, runner, monkeypatch):
        monkeypatch.setenv("SERVER_URL", "http://controller:8080")
        FakeStatusClient.fail = True
        result = runner.invoke(main.cli, ["status"])
        assert result.exit_code == main.EXIT_FAILURE

    def test_health(self, runner, monkeypatch):
        monkeypatch.setenv("SERVER_URL", "http://controller:8080")
        result = runner.invoke(main.cli, ["health"])
        assert result.exit_code == 0
        assert '"uptime": 3' in result.output

    def test_webhooks(self, runner, monkeypatch):
        monkeypatch.setenv("SERVER_URL", "http://controller:8080")
        result = runner.invoke(main.cli, ["webhooks"])
        assert result.exit_code == 0
        assert "http://127.0.0.1:3000" in result.output

    def test_help_does_not_need_server_url(self, runner):
        result = runner.invoke(main.cli, ["serve", "--help"])
        assert result.exit_code == 0
        assert "Register with the server" in result.output

        result = runner.invoke(main.cli, ["--help"])
        assert result.exit_code == 0

    def test_serve_exits_nonzero_when_no_port_is_free(self, runner, monkeypatch):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("127.0.0.1", 0))
            busy.listen()
            monkeypatch.setenv("SERVER_URL", "http://controller:8080")
            monkeypatch.setenv("NOISEBELL_WEBHOOK__PORT_START", str(busy.getsockname()[1]))
            monkeypatch.setenv("NOISEBELL_WEBHOOK__PORT_SPAN", "1")
            result = runner.invoke(main.cli, ["serve"])
        assert result.exit_code == main.EXIT_FAILURE
