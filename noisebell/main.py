"""Noisebell entry point: wires everything together and runs the client."""

from __future__ import annotations

import asyncio
import json
import signal
import sys

import click

from noisebell import __version__
from noisebell.client import RegistrationClient, StatusClient
from noisebell.config import Settings, load_settings
from noisebell.errors import (
    ConfigurationError,
    NoAvailablePortError,
    RegistrationTimeoutError,
    RemoteServerError,
)
from noisebell.ports import find_available_port
from noisebell.state import CircuitState
from noisebell.utils.logging import get_logger, setup_logging
from noisebell.webhooks.server import WebhookServer

log = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


class Noisebell:
    """Main application orchestrator.

    Binds the webhook server first, then registers with the remote server
    in a background task so retry waits never hold up incoming deliveries.
    """

    def __init__(
        self,
        settings: Settings,
        state: CircuitState | None = None,
        registration: RegistrationClient | None = None,
    ) -> None:
        self.settings = settings
        self.state = state or CircuitState()
        self.server = WebhookServer(settings.webhook, self.state)
        self.registration = registration or RegistrationClient(
            settings.server_url,
            retry_delay=settings.registration.retry_delay,
            timeout=settings.registration.timeout,
            description=settings.registration.description,
            request_timeout=settings.registration.request_timeout,
        )
        self.callback_url: str | None = None
        self.registered = False
        self.exit_code = EXIT_OK
        self.shutdown = asyncio.Event()
        self._registration_task: asyncio.Task[None] | None = None

    @property
    def registration_task(self) -> asyncio.Task[None] | None:
        return self._registration_task

    async def start(self) -> None:
        """Bind the server and kick off registration.

        Raises NoAvailablePortError or OSError when the server cannot bind.
        """
        webhook = self.settings.webhook
        log.info("noisebell_starting", version=__version__, server_url=self.settings.server_url)

        port = find_available_port(webhook.port_start, host=webhook.bind, span=webhook.port_span)
        await self.server.start(port)

        self.callback_url = webhook.callback_url(port)
        log.info("noisebell_listening", callback_url=self.callback_url)

        self._registration_task = asyncio.create_task(
            self._register(self.callback_url), name="noisebell-registration"
        )
        self._registration_task.add_done_callback(self._on_registration_done)

    async def stop(self) -> None:
        log.info("noisebell_stopping")
        task = self._registration_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.server.stop()
        await self.registration.close()
        log.info("noisebell_stopped")

    async def _register(self, callback_url: str) -> None:
        try:
            await self.registration.register(callback_url)
        except RegistrationTimeoutError as e:
            log.error(
                "registration_timed_out",
                attempts=e.attempts,
                elapsed=round(e.elapsed, 1),
                server_url=self.settings.server_url,
            )
            if not self.settings.registration.serve_on_failure:
                self.exit_code = EXIT_FAILURE
                self.shutdown.set()
                return
            log.warning("serving_without_registration", callback_url=callback_url)
            return
        self.registered = True

    def _on_registration_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("registration_crashed", error=repr(exc))
            self.exit_code = EXIT_FAILURE
            self.shutdown.set()


async def run(settings: Settings) -> int:
    app = Noisebell(settings)

    loop = asyncio.get_running_loop()

    def _signal_handler() -> None:
        log.info("shutdown_signal")
        app.shutdown.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

    try:
        return await _serve(app)
    finally:
        if sys.platform != "win32":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)


async def _serve(app: Noisebell) -> int:
    try:
        await app.start()
    except NoAvailablePortError as e:
        log.error("no_available_port", start=e.start, end=e.end)
        await app.stop()
        return EXIT_FAILURE
    except OSError as e:
        log.error("webhook_bind_failed", error=str(e))
        await app.stop()
        return EXIT_FAILURE

    try:
        if sys.platform == "win32":
            while not app.shutdown.is_set():
                await asyncio.sleep(1)
        else:
            await app.shutdown.wait()
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()

    return app.exit_code


def _load_or_exit(config_path: str | None) -> Settings:
    try:
        return load_settings(config_path)
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(EXIT_CONFIG)


class CliState:
    """Global CLI options; settings load on first use so --help never needs them."""

    def __init__(self, config_path: str | None, log_level: str | None) -> None:
        self.config_path = config_path
        self.log_level = log_level
        self._settings: Settings | None = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            settings = _load_or_exit(self.config_path)
            if self.log_level:
                settings.log_level = self.log_level
            setup_logging(
                level=settings.log_level,
                json_output=settings.log_json,
                log_dir=settings.log_dir or None,
            )
            self._settings = settings
        return self._settings


pass_state = click.make_pass_decorator(CliState)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML file")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """Noisebell webhook client."""
    ctx.obj = CliState(config_path, log_level)


@cli.command()
@pass_state
def serve(state: CliState) -> None:
    """Register with the server and receive circuit webhooks."""
    sys.exit(asyncio.run(run(state.settings)))


@cli.command()
@pass_state
def status(state: CliState) -> None:
    """Show the circuit state reported by the server."""
    settings = state.settings

    async def _status() -> str:
        async with _status_client(settings) as client:
            return (await client.poll_status()).encode()

    click.echo(_run_remote(_status()))


@cli.command()
@pass_state
def health(state: CliState) -> None:
    """Show the server's health report."""
    settings = state.settings

    async def _health() -> str:
        async with _status_client(settings) as client:
            report = await client.poll_health()
        return json.dumps(report.model_dump(), indent=2)

    click.echo(_run_remote(_health()))


@cli.command()
@pass_state
def webhooks(state: CliState) -> None:
    """List the webhooks registered with the server."""
    settings = state.settings

    async def _webhooks() -> str:
        async with _status_client(settings) as client:
            registered = await client.list_webhooks()
        if not registered:
            return "No registered webhooks."
        return "\n".join(f"{w.url}  (since {w.created_at})" for w in registered)

    click.echo(_run_remote(_webhooks()))


def _status_client(settings: Settings) -> StatusClient:
    return StatusClient(settings.server_url, request_timeout=settings.registration.request_timeout)


def _run_remote(coro) -> str:
    try:
        return asyncio.run(coro)
    except RemoteServerError as e:
        log.error("remote_request_failed", status=e.status, error=str(e))
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    cli()
