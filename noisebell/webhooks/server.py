"""Webhook HTTP server using aiohttp."""

from __future__ import annotations

from typing import Any

from aiohttp import web
from pydantic import ValidationError

from noisebell.config import WebhookConfig
from noisebell.state import CircuitState
from noisebell.utils.logging import get_logger
from noisebell.webhooks.models import EventKind, WebhookDelivery

log = get_logger(__name__)

STATUS_ACCEPTED = "accepted"
STATUS_ACCEPTED_UNRECOGNIZED = "accepted_unrecognized"


class WebhookServer:
    """Receives circuit deliveries and commits them to the shared state."""

    def __init__(self, config: WebhookConfig, state: CircuitState) -> None:
        self._config = config
        self._state = state
        self._runner: web.AppRunner | None = None
        self._port: int | None = None

    @property
    def port(self) -> int | None:
        return self._port

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, port: int) -> None:
        """Bind and start serving. Raises OSError if the port was taken."""
        app = self._build_app()
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, self._config.bind, port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        self._port = port
        log.info(
            "webhook_server_started",
            bind=self._config.bind,
            port=port,
            paths=self._config.paths,
        )

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("webhook_server_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def _build_app(self) -> web.Application:
        app = web.Application()
        for path in self._config.paths:
            app.router.add_post(path, self._handle_webhook)
        app.router.add_get("/state", self._handle_state)
        app.router.add_get("/health", self._handle_health)
        return app

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        try:
            payload: Any = await request.json()
        except ValueError:
            log.warning("webhook_invalid_json", path=request.path)
            return _error(400, "Invalid JSON")

        try:
            delivery = WebhookDelivery.model_validate(payload)
        except ValidationError as e:
            log.warning("webhook_invalid_payload", path=request.path, errors=e.error_count())
            return _error(400, "Invalid webhook payload")

        await self._state.set(delivery.event)

        log.info(
            "webhook_received",
            circuit_event=delivery.event.raw,
            timestamp=delivery.timestamp,
            source=delivery.source,
        )

        if delivery.event.kind is EventKind.OPEN:
            log.info("circuit_open", msg="No noise detected")
        elif delivery.event.kind is EventKind.CLOSED:
            log.info("circuit_closed", msg="Noise detected")
        else:
            log.warning("unknown_circuit_event", circuit_event=delivery.event.raw)
            return web.json_response(
                {"status": STATUS_ACCEPTED_UNRECOGNIZED, "event": delivery.event.encode()}
            )

        return web.json_response({"status": STATUS_ACCEPTED, "event": delivery.event.encode()})

    async def _handle_state(self, request: web.Request) -> web.Response:
        current = await self._state.get()
        return web.json_response({"status": "ok", "data": {"state": current.encode()}})

    async def _handle_health(self, request: web.Request) -> web.Response:
        current = await self._state.get()
        return web.json_response(
            {"status": "ok", "data": {"state": current.encode(), "port": self._port}}
        )


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"status": "error", "error": message}, status=status)
