"""HTTP clients for the remote controller server."""

from __future__ import annotations

import asyncio
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from noisebell.errors import RegistrationError, RegistrationTimeoutError, RemoteServerError
from noisebell.utils.logging import get_logger
from noisebell.webhooks.models import (
    CircuitEvent,
    HealthResponse,
    StatusResponse,
    WebhookInfo,
    WebhookListResponse,
    decode_event,
)

log = get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_RETRY_DELAY = 5.0
DEFAULT_REGISTRATION_TIMEOUT = 300.0

# Response body fragments meaning the callback URL is already known
ALREADY_REGISTERED_MARKERS = ("already exists", "already registered")

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class _RemoteClient:
    """Shared plumbing: base URL handling and httpx client ownership."""

    def __init__(
        self,
        server_url: str,
        http_client: httpx.AsyncClient | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._server_url = server_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=request_timeout)

    @property
    def server_url(self) -> str:
        return self._server_url

    def _url(self, path: str) -> str:
        return f"{self._server_url}{path}"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class RegistrationClient(_RemoteClient):
    """Registers this process's callback URL with the remote server.

    Registration is idempotent: a server reply saying the URL is already
    known counts as success. Any other failure is retried after a fixed
    delay until ``timeout`` seconds have passed since the first attempt.
    """

    def __init__(
        self,
        server_url: str,
        *,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_REGISTRATION_TIMEOUT,
        description: str = "",
        http_client: httpx.AsyncClient | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        super().__init__(server_url, http_client, request_timeout)
        self._retry_delay = retry_delay
        self._timeout = timeout
        self._description = description

    async def register_once(self, callback_url: str) -> None:
        payload: dict[str, Any] = {"url": callback_url}
        if self._description:
            payload["description"] = self._description

        log.debug("registration_attempt", server_url=self._server_url, callback_url=callback_url)
        try:
            resp = await self._client.post(self._url("/webhooks"), json=payload)
        except httpx.HTTPError as e:
            raise RegistrationError(f"Could not reach server: {e!r}") from e

        if resp.is_success:
            return

        body = resp.text
        if resp.status_code == 409 or _is_already_registered(body):
            log.info("webhook_already_registered", callback_url=callback_url)
            return

        raise RegistrationError(
            f"Failed to register with server: {body or resp.reason_phrase}",
            status=resp.status_code,
            body=body,
        )

    async def register(self, callback_url: str) -> int:
        """Retry registration until it succeeds. Returns the attempt count.

        Raises RegistrationTimeoutError once the deadline has passed.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        attempts = 0
        log.info(
            "registration_started",
            server_url=self._server_url,
            callback_url=callback_url,
            timeout=self._timeout,
        )

        while True:
            attempts += 1
            try:
                await self.register_once(callback_url)
            except RegistrationError as e:
                elapsed = loop.time() - started
                log.warning(
                    "registration_failed",
                    attempt=attempts,
                    status=e.status,
                    error=str(e),
                    retry_in=self._retry_delay,
                )
                remaining = self._timeout - elapsed
                if remaining <= 0:
                    raise RegistrationTimeoutError(attempts, elapsed) from e
                await asyncio.sleep(min(self._retry_delay, remaining))
                elapsed = loop.time() - started
                if elapsed >= self._timeout:
                    raise RegistrationTimeoutError(attempts, elapsed) from e
                continue

            log.info(
                "registration_succeeded",
                server_url=self._server_url,
                attempts=attempts,
                elapsed=round(loop.time() - started, 3),
            )
            return attempts


def _is_already_registered(body: str) -> bool:
    lowered = body.lower()
    return any(marker in lowered for marker in ALREADY_REGISTERED_MARKERS)


# ---------------------------------------------------------------------------
# Status polling
# ---------------------------------------------------------------------------

class StatusClient(_RemoteClient):
    """Read-only queries against the remote server's status endpoints."""

    async def poll_status(self) -> CircuitEvent:
        status = await self._get("/status", StatusResponse)
        return decode_event(status.data.state)

    async def poll_health(self) -> HealthResponse:
        return await self._get("/health", HealthResponse)

    async def list_webhooks(self) -> list[WebhookInfo]:
        listing = await self._get("/webhooks", WebhookListResponse)
        return listing.data.webhooks

    async def _get(self, path: str, model: type[_ModelT]) -> _ModelT:
        try:
            resp = await self._client.get(self._url(path))
        except httpx.HTTPError as e:
            raise RemoteServerError(f"Could not reach server: {e!r}") from e

        if not resp.is_success:
            raise RemoteServerError(
                f"GET {path} failed: {resp.text or resp.reason_phrase}",
                status=resp.status_code,
                body=resp.text,
            )

        try:
            return model.model_validate_json(resp.content)
        except ValidationError as e:
            raise RemoteServerError(
                f"Unexpected response from GET {path}", status=resp.status_code, body=resp.text
            ) from e
