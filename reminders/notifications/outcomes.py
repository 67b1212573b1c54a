"""Delivery outcome values returned by channel transports."""

from dataclasses import dataclass
from datetime import datetime
from typing import Union


@dataclass(frozen=True)
class Delivered:
    detail: str | None = None


@dataclass(frozen=True)
class TransientFailure:
    reason: str


@dataclass(frozen=True)
class PermanentFailure:
    reason: str


@dataclass(frozen=True)
class EndpointGone(PermanentFailure):
    """The push service no longer knows this subscription (404/410)."""

    status_code: int = 410


@dataclass(frozen=True)
class RateLimited:
    reset_at: datetime


DeliveryOutcome = Union[Delivered, TransientFailure, PermanentFailure, RateLimited]
