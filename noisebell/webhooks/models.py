"""Circuit event model, webhook delivery payload and remote API responses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_serializer, field_validator


# ---------------------------------------------------------------------------
# Circuit events
# ---------------------------------------------------------------------------

class EventKind(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    UNKNOWN = "unknown"


_CANONICAL = {EventKind.OPEN.value: EventKind.OPEN, EventKind.CLOSED.value: EventKind.CLOSED}


@dataclass(frozen=True)
class CircuitEvent:
    """One of ``open``, ``closed`` or an unrecognized token kept verbatim.

    Decoding is total: any text other than the two canonical tokens becomes
    an ``UNKNOWN`` event carrying the original text, so new event
    vocabularies pass through instead of failing.
    """

    kind: EventKind
    raw: str

    def __post_init__(self) -> None:
        if self.kind is EventKind.UNKNOWN:
            if self.raw in _CANONICAL:
                raise ValueError(f"{self.raw!r} is a canonical event, not an unknown one")
        elif self.raw != self.kind.value:
            raise ValueError(f"{self.kind.name} event must carry {self.kind.value!r}")

    @classmethod
    def decode(cls, text: str) -> CircuitEvent:
        kind = _CANONICAL.get(text)
        if kind is None:
            return cls(EventKind.UNKNOWN, text)
        return cls(kind, text)

    def encode(self) -> str:
        return self.raw

    @property
    def is_known(self) -> bool:
        return self.kind is not EventKind.UNKNOWN

    def __str__(self) -> str:
        return self.raw


OPEN = CircuitEvent(EventKind.OPEN, "open")
CLOSED = CircuitEvent(EventKind.CLOSED, "closed")
INITIAL_EVENT = CircuitEvent(EventKind.UNKNOWN, "unknown")


def unknown_event(raw: str) -> CircuitEvent:
    return CircuitEvent(EventKind.UNKNOWN, raw)


def decode_event(text: str) -> CircuitEvent:
    return CircuitEvent.decode(text)


def encode_event(event: CircuitEvent) -> str:
    return event.encode()


# ---------------------------------------------------------------------------
# Inbound deliveries
# ---------------------------------------------------------------------------

class WebhookDelivery(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    event: CircuitEvent
    timestamp: StrictStr
    source: StrictStr

    @field_validator("event", mode="before")
    @classmethod
    def _decode_event(cls, value: Any) -> CircuitEvent:
        if isinstance(value, CircuitEvent):
            return value
        if not isinstance(value, str):
            raise ValueError("event must be a string")
        return decode_event(value)

    @field_serializer("event")
    def _encode_event(self, event: CircuitEvent) -> str:
        return event.encode()


# ---------------------------------------------------------------------------
# Remote controller server responses
# ---------------------------------------------------------------------------

class StatusData(BaseModel):
    state: str


class StatusResponse(BaseModel):
    status: str
    data: StatusData


class HealthResponse(BaseModel):
    status: str
    data: Any = None


class WebhookInfo(BaseModel):
    url: str
    created_at: str


class WebhookListData(BaseModel):
    webhooks: list[WebhookInfo] = Field(default_factory=list)


class WebhookListResponse(BaseModel):
    status: str
    data: WebhookListData
