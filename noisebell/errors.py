"""Exception hierarchy for Noisebell."""

from __future__ import annotations


class NoisebellError(Exception):
    """Base class for all Noisebell errors."""


class ConfigurationError(NoisebellError):
    """Required configuration is missing or invalid. Fatal at startup."""


class NoAvailablePortError(NoisebellError):
    def __init__(self, start: int, end: int) -> None:
        super().__init__(f"No available ports found in range {start} to {end}")
        self.start = start
        self.end = end


class RegistrationError(NoisebellError):
    """A single registration attempt failed. Retried by the caller."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class RegistrationTimeoutError(NoisebellError):
    def __init__(self, attempts: int, elapsed: float) -> None:
        super().__init__(
            f"Registration did not succeed after {attempts} attempt(s) in {elapsed:.1f}s"
        )
        self.attempts = attempts
        self.elapsed = elapsed


class RemoteServerError(NoisebellError):
    """The remote controller server returned an error or an unreadable response."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body
