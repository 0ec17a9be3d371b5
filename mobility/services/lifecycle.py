"""
Request Lifecycle Controller
============================

Owns the ``ServiceRequest`` state machine and is the only writer of
request rows::

    create -> pending -> assigned -> confirmed -> active -> completed
                 \\___________\\____________\\______-> cancelled

Every public operation is one unit of work against the store:

1. open a transaction and re-read the row (state is never cached),
2. validate the precondition on the freshly read entity,
3. issue a conditional UPDATE guarded by the state and version that were
   read, so a concurrent writer makes the update match zero rows,
4. commit, then publish the transition on the realtime feed.

Losing a race surfaces as ``InvalidStateTransition``; the only exception
is ``assign`` with the provider that already holds the request, which is
an idempotent no-op so callers can safely retry after an ambiguous failure.
``price`` leaves the version alone, so refreshing an estimate never makes a
concurrent transition lose its race.

Pricing parameters that the request's details already fix (carpool seats,
school students and days, laundry load, ...) are filled in from the details
when omitted; a caller value that disagrees with them is rejected with
``InvalidParameters``.

Errors from the pricing engine, directory and store propagate unchanged,
tagged with the request id.
"""

from __future__ import annotations

import logging
import secrets
import string
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Union

from pydantic.alias_generators import to_camel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mobility.domain.details import parse_details, parse_settlement
from mobility.domain.entities import Location, PriceBreakdown, Provider, ServiceRequest
from mobility.domain.enums import (
    LOCATION_REQUIREMENTS,
    TERMINAL_STATES,
    LocationRequirement,
    RequestState,
    ServiceType,
)
from mobility.domain.errors import (
    InvalidParameters,
    InvalidRequest,
    InvalidStateTransition,
    LifecycleError,
    NoProviderAvailable,
    RequestNotFound,
    StoreUnavailable,
)
from mobility.domain.pricing import PricingEngine
from mobility.infrastructure.database import UNAVAILABLE_ERRORS
from mobility.infrastructure.events import EventPublisher, TransitionEvent
from mobility.infrastructure.repositories import (
    ServiceRequestRepository,
    request_from_model,
)
from mobility.services.directory import ProviderDirectory, SearchFilter

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_NON_TERMINAL = [s for s in RequestState if s not in TERMINAL_STATES]
_TRACKING_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_uppercase

# pricing parameter -> details field it must agree with
_DETAIL_BOUND_PARAMETERS: dict[ServiceType, dict[str, str]] = {
    ServiceType.CARPOOL: {"seats": "seats"},
    ServiceType.PACKAGE: {"package_size": "package_size"},
    ServiceType.SCHOOL: {"students": "students", "days": "days"},
    ServiceType.LAUNDRY: {
        "load_weight_kg": "weight_kg",
        "service_mode": "service_mode",
        "partner_id": "partner_id",
    },
    ServiceType.FREIGHT: {"weight_kg": "weight_kg"},
    ServiceType.CAR_RENTAL: {"rental_days": "rental_days"},
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _base36(n: int) -> str:
    digits = ""
    while n:
        n, r = divmod(n, 36)
        digits = _BASE36[r] + digits
    return digits or "0"


def generate_tracking_code(now: datetime) -> str:
    """``WAS`` + base-36 millisecond timestamp + 5 random characters."""
    stamp = _base36(int(now.timestamp() * 1000))
    suffix = "".join(secrets.choice(_TRACKING_ALPHABET) for _ in range(5))
    return f"WAS{stamp}{suffix}"


def _check_location(name: str, point: Optional[Location]) -> None:
    if point is None:
        return
    if not -90 <= point.latitude <= 90 or not -180 <= point.longitude <= 180:
        raise InvalidRequest(f"{name} is outside valid latitude/longitude ranges")


class RequestLifecycleController:
    """Seven-stage lifecycle for every service type.

    Collaborators are injected: the session factory (durable store), the
    pricing engine, the provider directory, a clock and an optional event
    publisher.  Instances hold no request state, so any number of them can
    serve the same store.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        pricing: PricingEngine,
        directory: ProviderDirectory,
        clock: Clock = utc_now,
        events: Optional[EventPublisher] = None,
        local_tz: tzinfo = timezone.utc,
        search_radius_km: float = 5.0,
    ):
        self._session_factory = session_factory
        self._pricing = pricing
        self._directory = directory
        self._clock = clock
        self._events = events
        self._local_tz = local_tz
        self._search_radius_km = search_radius_km

    @classmethod
    def from_settings(
        cls,
        session_factory,
        settings,
        clock: Clock = utc_now,
        events: Optional[EventPublisher] = None,
    ) -> "RequestLifecycleController":
        return cls(
            session_factory,
            PricingEngine.from_settings(settings),
            ProviderDirectory.from_settings(session_factory, settings),
            clock=clock,
            events=events,
            local_tz=timezone(timedelta(hours=settings.local_utc_offset_hours)),
            search_radius_km=settings.default_search_radius_km,
        )

    # ── Unit of work ──────────────────────────────────────────────────

    @asynccontextmanager
    async def _unit_of_work(
        self, request_id: Optional[str] = None
    ) -> AsyncIterator[ServiceRequestRepository]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield ServiceRequestRepository(session)
        except LifecycleError as exc:
            if request_id is not None:
                exc.with_request(request_id)
            raise
        except UNAVAILABLE_ERRORS as exc:
            logger.warning("Request store unreachable: %s", exc)
            raise StoreUnavailable(
                "Request store is unavailable", request_id=request_id
            ) from exc

    async def _load(self, repo: ServiceRequestRepository, request_id: str) -> ServiceRequest:
        row = await repo.get_by_id(request_id)
        if row is None:
            raise RequestNotFound(f"Request {request_id} not found", request_id=request_id)
        return request_from_model(row)

    async def _publish(
        self,
        request: ServiceRequest,
        previous: Optional[RequestState],
        occurred_at: datetime,
    ) -> None:
        if self._events is None:
            return
        await self._events.publish(
            TransitionEvent(
                request_id=request.id,
                service_type=request.service_type.value,
                from_state=previous.value if previous else None,
                to_state=request.state.value,
                provider_id=request.provider_id,
                occurred_at=occurred_at,
            )
        )

    async def _advance(
        self,
        request_id: str,
        target: RequestState,
        changes: Callable[[ServiceRequest, datetime], dict[str, Any]],
        already_done: Optional[Callable[[ServiceRequest], bool]] = None,
    ) -> ServiceRequest:
        now = self._clock()
        async with self._unit_of_work(request_id) as repo:
            current = await self._load(repo, request_id)
            if already_done is not None and already_done(current):
                return current

            previous = current.state
            if not current.can_transition_to(target):
                raise InvalidStateTransition(
                    f"Cannot move a {previous.value} request to {target.value}",
                    request_id=request_id,
                )
            values = changes(current, now)
            current.transition_to(target)
            values.setdefault("provider_id", current.provider_id)
            values["state"] = target

            applied = await repo.transition(
                request_id,
                expected_states=[previous],
                expected_version=current.version,
                values=values,
            )
            if not applied:
                latest = await self._load(repo, request_id)
                if already_done is not None and already_done(latest):
                    return latest
                logger.info(
                    "Request %s: %s lost a race (now %s)",
                    request_id, target.value, latest.state.value,
                )
                raise InvalidStateTransition(
                    f"Request changed concurrently; it is now {latest.state.value}",
                    request_id=request_id,
                )
            updated = await self._load(repo, request_id)

        logger.info("Request %s: %s -> %s", request_id, previous.value, target.value)
        await self._publish(updated, previous, now)
        return updated

    # ── Stage 1: discover ─────────────────────────────────────────────

    async def discover(
        self,
        service_type: ServiceType,
        criteria: Union[SearchFilter, Mapping[str, Any], None] = None,
    ) -> list[Provider]:
        return await self._directory.discover(service_type, criteria)

    # ── Stage 2: request ──────────────────────────────────────────────

    async def create(
        self,
        service_type: Union[ServiceType, str],
        requester_id: str,
        details: Mapping[str, Any],
        origin: Optional[Location] = None,
        destination: Optional[Location] = None,
        scheduled_date: Optional[date] = None,
        scheduled_time: Optional[time] = None,
        idempotency_key: Optional[str] = None,
    ) -> ServiceRequest:
        try:
            service_type = ServiceType(service_type)
        except ValueError as exc:
            raise InvalidRequest(f"Unknown service type {service_type!r}") from exc
        if not requester_id:
            raise InvalidRequest("requester_id is required")

        parsed = parse_details(
            service_type, dict(details) if isinstance(details, Mapping) else details
        )
        _check_location("origin", origin)
        _check_location("destination", destination)
        requirement = LOCATION_REQUIREMENTS[service_type]
        if requirement is not LocationRequirement.NONE and origin is None:
            raise InvalidRequest(f"{service_type.value} requests need an origin")
        if requirement is LocationRequirement.ROUTE and destination is None:
            raise InvalidRequest(f"{service_type.value} requests need a destination")

        now = self._clock()
        request = ServiceRequest(
            id=uuid.uuid4().hex,
            service_type=service_type,
            requester_id=requester_id,
            details=parsed,
            origin=origin,
            destination=destination,
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            state=RequestState.PENDING,
            tracking_code=generate_tracking_code(now),
            idempotency_key=idempotency_key,
            created_at=now,
        )

        try:
            async with self._unit_of_work() as repo:
                if idempotency_key:
                    existing = await repo.get_by_idempotency_key(idempotency_key)
                    if existing is not None:
                        return self._replay(request_from_model(existing), request)
                await repo.create(request)
                created = await self._load(repo, request.id)
        except IntegrityError:
            if not idempotency_key:
                raise
            # A concurrent create with the same key committed first
            async with self._unit_of_work() as repo:
                existing = await repo.get_by_idempotency_key(idempotency_key)
            if existing is None:
                raise
            return self._replay(request_from_model(existing), request)

        logger.info(
            "Request %s created (%s, requester=%s)",
            created.id, service_type.value, requester_id,
        )
        await self._publish(created, None, now)
        return created

    @staticmethod
    def _replay(existing: ServiceRequest, attempted: ServiceRequest) -> ServiceRequest:
        if (
            existing.requester_id != attempted.requester_id
            or existing.service_type != attempted.service_type
        ):
            raise InvalidRequest(
                "idempotency_key already used for a different request",
                request_id=existing.id,
            )
        logger.info("Request %s replayed via idempotency key", existing.id)
        return existing

    # ── Stage 3: price ────────────────────────────────────────────────

    async def price(self, request_id: str, parameters: Mapping[str, Any]) -> PriceBreakdown:
        """Recompute the estimate and attach it; state is unchanged."""
        now = self._clock()
        async with self._unit_of_work(request_id) as repo:
            current = await self._load(repo, request_id)
            if current.is_terminal:
                raise InvalidStateTransition(
                    f"Cannot price a {current.state.value} request", request_id=request_id
                )
            breakdown = self._pricing.quote(
                current.service_type,
                self._bind_to_details(current, parameters),
                at=now.astimezone(self._local_tz),
            )
            applied = await repo.transition(
                request_id,
                expected_states=_NON_TERMINAL,
                expected_version=None,
                values={"price_breakdown": breakdown.to_dict()},
                bump_version=False,
            )
            if not applied:
                latest = await self._load(repo, request_id)
                raise InvalidStateTransition(
                    f"Cannot price a {latest.state.value} request", request_id=request_id
                )
        logger.info("Request %s priced at %.2f %s", request_id, breakdown.total, breakdown.currency)
        return breakdown

    def _bind_to_details(
        self, request: ServiceRequest, parameters: Mapping[str, Any]
    ) -> Mapping[str, Any]:
        bound = _DETAIL_BOUND_PARAMETERS.get(request.service_type)
        if not bound or not isinstance(parameters, Mapping):
            return parameters
        merged = dict(parameters)
        for name, field in bound.items():
            value = getattr(request.details, field)
            if name not in merged and to_camel(name) not in merged:
                merged[name] = value
        parsed = self._pricing.parse(request.service_type, merged)
        for name, field in bound.items():
            given, booked = getattr(parsed, name), getattr(request.details, field)
            if isinstance(booked, list):
                given, booked = set(given), set(booked)
            if given != booked:
                raise InvalidParameters(
                    f"{name} does not match the request details", request_id=request.id
                )
        return merged

    def quote(self, service_type: ServiceType, parameters: Mapping[str, Any]) -> PriceBreakdown:
        """Stateless estimate for a service type, priced at the current time."""
        return self._pricing.quote(
            service_type, parameters, at=self._clock().astimezone(self._local_tz)
        )

    # ── Stage 4: assign ───────────────────────────────────────────────

    async def assign(self, request_id: str, provider_id: Optional[str] = None) -> ServiceRequest:
        """Bind a provider.  Without *provider_id* the nearest candidate
        from the directory is chosen; retrying an assignment that already
        happened returns the request unchanged."""
        auto = provider_id is None
        if auto:
            async with self._unit_of_work(request_id) as repo:
                current = await self._load(repo, request_id)
            if current.state is RequestState.ASSIGNED:
                return current
            if not current.can_transition_to(RequestState.ASSIGNED):
                raise InvalidStateTransition(
                    f"Cannot assign a {current.state.value} request", request_id=request_id
                )
            provider_id = await self._resolve_provider(current)

        def already_done(request: ServiceRequest) -> bool:
            if request.state is not RequestState.ASSIGNED:
                return False
            return auto or request.provider_id == provider_id

        def changes(current: ServiceRequest, now: datetime) -> dict[str, Any]:
            current.provider_id = provider_id
            return {"provider_id": provider_id, "assigned_at": now}

        return await self._advance(request_id, RequestState.ASSIGNED, changes, already_done)

    async def _resolve_provider(self, request: ServiceRequest) -> str:
        criteria: dict[str, Any] = {"radius_km": self._search_radius_km}
        if request.origin is not None:
            criteria["latitude"] = request.origin.latitude
            criteria["longitude"] = request.origin.longitude
        seats = getattr(request.details, "seats", None)
        if seats:
            criteria["min_capacity"] = seats
        try:
            candidates = await self._directory.discover(request.service_type, criteria)
        except LifecycleError as exc:
            exc.with_request(request.id)
            raise
        if not candidates:
            raise NoProviderAvailable(
                f"No {request.service_type.value} provider available", request_id=request.id
            )
        return candidates[0].id

    # ── Stage 5: confirm ──────────────────────────────────────────────

    async def confirm(
        self, request_id: str, payment: Optional[Mapping[str, Any]] = None
    ) -> ServiceRequest:
        """Record the commitment and the payment intent (not a capture)."""

        def changes(current: ServiceRequest, now: datetime) -> dict[str, Any]:
            quoted = current.price_breakdown
            intent = {
                "method": None,
                "amount": quoted.total if quoted else None,
                "currency": quoted.currency if quoted else self._pricing.currency,
                **dict(payment or {}),
                "status": "authorized",
            }
            return {"confirmed_at": now, "payment": intent}

        return await self._advance(request_id, RequestState.CONFIRMED, changes)

    # ── Stage 6: execute ──────────────────────────────────────────────

    async def execute(self, request_id: str) -> ServiceRequest:
        return await self._advance(
            request_id, RequestState.ACTIVE, lambda current, now: {"started_at": now}
        )

    # ── Stage 7: complete ─────────────────────────────────────────────

    async def complete(
        self, request_id: str, settlement: Optional[Mapping[str, Any]] = None
    ) -> ServiceRequest:
        """Attach final actuals.  ``actual_price`` defaults to the last
        estimate and ``duration_minutes`` is measured from ``started_at``."""

        def changes(current: ServiceRequest, now: datetime) -> dict[str, Any]:
            actuals = parse_settlement(settlement)
            actual = actuals.actual_price
            if actual is None and current.price_breakdown is not None:
                actual = current.price_breakdown.total
            duration = actuals.duration_minutes
            if duration is None and current.started_at is not None:
                duration = round((now - current.started_at).total_seconds() / 60, 2)
            return {
                "completed_at": now,
                "settlement": {
                    "actual_price": actual,
                    "duration_minutes": duration,
                    "rating": actuals.rating,
                    **(actuals.model_extra or {}),
                },
            }

        return await self._advance(request_id, RequestState.COMPLETED, changes)

    # ── Cancellation ──────────────────────────────────────────────────

    async def cancel(self, request_id: str, reason: Optional[str] = None) -> ServiceRequest:
        def changes(current: ServiceRequest, now: datetime) -> dict[str, Any]:
            return {
                "cancelled_at": now,
                "provider_id": None,
                "cancellation": {
                    "reason": reason,
                    "previous_state": current.state.value,
                    "provider_id": current.provider_id,
                },
            }

        return await self._advance(request_id, RequestState.CANCELLED, changes)

    # ── Queries ───────────────────────────────────────────────────────

    async def get(self, request_id: str) -> ServiceRequest:
        async with self._unit_of_work(request_id) as repo:
            return await self._load(repo, request_id)

    async def list_for_requester(
        self, requester_id: str, service_type: Optional[ServiceType] = None
    ) -> list[ServiceRequest]:
        async with self._unit_of_work() as repo:
            rows = await repo.list_for_requester(requester_id, service_type)
        return [request_from_model(row) for row in rows]

    async def list_by_state(self, state: RequestState, limit: int = 100) -> list[ServiceRequest]:
        async with self._unit_of_work() as repo:
            rows = await repo.list_by_state(state, limit)
        return [request_from_model(row) for row in rows]
