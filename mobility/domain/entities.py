"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``ServiceRequest``: enforces valid lifecycle
  transitions (pending -> assigned -> confirmed -> active -> completed,
  with cancelled reachable from the first three).
- ``PriceBreakdown`` is an immutable value object; a new one replaces the
  old one every time a request is priced.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from typing import Any, Optional

from .details import ServiceDetails
from .enums import (
    PROVIDER_BOUND_STATES,
    REQUEST_TRANSITIONS,
    TERMINAL_STATES,
    RequestState,
    ServiceType,
)
from .errors import InvalidStateTransition


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    address: Optional[str] = None


@dataclass(frozen=True)
class PriceComponent:
    name: str
    amount: float


@dataclass(frozen=True)
class PriceBreakdown:
    service_type: ServiceType
    currency: str
    base: float
    components: tuple[PriceComponent, ...]
    surge_multiplier: float
    total: float
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["service_type"] = self.service_type.value
        data["components"] = [asdict(c) for c in self.components]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PriceBreakdown":
        return cls(
            service_type=ServiceType(data["service_type"]),
            currency=data["currency"],
            base=data["base"],
            components=tuple(PriceComponent(**c) for c in data["components"]),
            surge_multiplier=data["surge_multiplier"],
            total=data["total"],
            extras=dict(data.get("extras") or {}),
        )


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class ServiceRequest:
    id: str
    service_type: ServiceType
    requester_id: str
    details: ServiceDetails
    origin: Optional[Location] = None
    destination: Optional[Location] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    state: RequestState = RequestState.PENDING
    provider_id: Optional[str] = None
    price_breakdown: Optional[PriceBreakdown] = None
    tracking_code: Optional[str] = None
    idempotency_key: Optional[str] = None
    payment: Optional[dict[str, Any]] = None
    settlement: Optional[dict[str, Any]] = None
    cancellation: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def can_transition_to(self, new_state: RequestState) -> bool:
        return new_state in REQUEST_TRANSITIONS.get(self.state, set())

    def transition_to(self, new_state: RequestState) -> None:
        """Move to *new_state* if the transition is legal, else raise."""
        if not self.can_transition_to(new_state):
            raise InvalidStateTransition(
                f"Cannot transition from {self.state.value} to {new_state.value}",
                request_id=self.id,
            )
        self.state = new_state
        if new_state not in PROVIDER_BOUND_STATES:
            self.provider_id = None


@dataclass
class Provider:
    id: str
    service_type: ServiceType
    name: str
    location: Optional[Location] = None
    rating: float = 5.0
    capacity: int = 1
    vehicle_type: Optional[str] = None
    is_available: bool = True
    attributes: dict[str, Any] = field(default_factory=dict)
    distance_km: Optional[float] = None
