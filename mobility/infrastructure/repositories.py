"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``ServiceRequestRepository.transition`` is
the single write path after creation: a conditional UPDATE that only
applies while the row still has the state and version the caller read.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ProviderModel, ServiceRequestModel
from mobility.domain.details import dump_details, parse_details
from mobility.domain.entities import Location, PriceBreakdown, Provider, ServiceRequest
from mobility.domain.enums import RequestState, ServiceType


# ── Mapping ───────────────────────────────────────────────────────────


def _location(lat, lng, address) -> Optional[Location]:
    if lat is None or lng is None:
        return None
    return Location(latitude=lat, longitude=lng, address=address)


def request_from_model(row: ServiceRequestModel) -> ServiceRequest:
    service_type = ServiceType(row.service_type)
    return ServiceRequest(
        id=row.id,
        service_type=service_type,
        requester_id=row.requester_id,
        details=parse_details(service_type, row.details),
        origin=_location(row.origin_lat, row.origin_lng, row.origin_address),
        destination=_location(
            row.destination_lat, row.destination_lng, row.destination_address
        ),
        scheduled_date=row.scheduled_date,
        scheduled_time=row.scheduled_time,
        state=RequestState(row.state),
        provider_id=row.provider_id,
        price_breakdown=(
            PriceBreakdown.from_dict(row.price_breakdown) if row.price_breakdown else None
        ),
        tracking_code=row.tracking_code,
        idempotency_key=row.idempotency_key,
        payment=row.payment,
        settlement=row.settlement,
        cancellation=row.cancellation,
        created_at=row.created_at,
        assigned_at=row.assigned_at,
        confirmed_at=row.confirmed_at,
        started_at=row.started_at,
        completed_at=row.completed_at,
        cancelled_at=row.cancelled_at,
        version=row.version,
    )


def model_from_request(request: ServiceRequest) -> ServiceRequestModel:
    origin, destination = request.origin, request.destination
    return ServiceRequestModel(
        id=request.id,
        service_type=request.service_type,
        requester_id=request.requester_id,
        origin_lat=origin.latitude if origin else None,
        origin_lng=origin.longitude if origin else None,
        origin_address=origin.address if origin else None,
        destination_lat=destination.latitude if destination else None,
        destination_lng=destination.longitude if destination else None,
        destination_address=destination.address if destination else None,
        scheduled_date=request.scheduled_date,
        scheduled_time=request.scheduled_time,
        details=dump_details(request.details),
        state=request.state,
        provider_id=request.provider_id,
        tracking_code=request.tracking_code,
        idempotency_key=request.idempotency_key,
        created_at=request.created_at,
        version=request.version,
    )


def provider_from_model(row: ProviderModel, distance_km: Optional[float] = None) -> Provider:
    return Provider(
        id=row.id,
        service_type=ServiceType(row.service_type),
        name=row.name,
        location=_location(row.latitude, row.longitude, None),
        rating=row.rating,
        capacity=row.capacity,
        vehicle_type=row.vehicle_type,
        is_available=row.is_available,
        attributes=dict(row.attributes or {}),
        distance_km=distance_km,
    )


# ── Repositories ──────────────────────────────────────────────────────


class ServiceRequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, request: ServiceRequest) -> ServiceRequestModel:
        row = model_from_request(request)
        self.session.add(row)
        await self.session.flush()
        return row

    async def get_by_id(self, request_id: str) -> Optional[ServiceRequestModel]:
        # populate_existing: a re-read after a conditional UPDATE must not
        # be served from the identity map
        result = await self.session.execute(
            select(ServiceRequestModel)
            .where(ServiceRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, key: str) -> Optional[ServiceRequestModel]:
        result = await self.session.execute(
            select(ServiceRequestModel).where(ServiceRequestModel.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        request_id: str,
        *,
        expected_states: Iterable[RequestState],
        expected_version: Optional[int],
        values: dict[str, Any],
        bump_version: bool = True,
    ) -> bool:
        """Apply *values* only if the row is still in one of *expected_states*
        (and at *expected_version*, when given).  Returns False when a
        concurrent writer won.

        Writes that leave the state alone pass ``bump_version=False`` so
        they never invalidate a transition racing against them."""
        conditions = [
            ServiceRequestModel.id == request_id,
            ServiceRequestModel.state.in_(list(expected_states)),
        ]
        if expected_version is not None:
            conditions.append(ServiceRequestModel.version == expected_version)
        if bump_version:
            values = {**values, "version": ServiceRequestModel.version + 1}
        result = await self.session.execute(
            update(ServiceRequestModel)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_for_requester(
        self, requester_id: str, service_type: Optional[ServiceType] = None
    ) -> list[ServiceRequestModel]:
        query = select(ServiceRequestModel).where(
            ServiceRequestModel.requester_id == requester_id
        )
        if service_type is not None:
            query = query.where(ServiceRequestModel.service_type == service_type)
        result = await self.session.execute(
            query.order_by(ServiceRequestModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_by_state(
        self, state: RequestState, limit: int = 100
    ) -> list[ServiceRequestModel]:
        result = await self.session.execute(
            select(ServiceRequestModel)
            .where(ServiceRequestModel.state == state)
            .order_by(ServiceRequestModel.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())


class ProviderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def search(
        self,
        service_type: ServiceType,
        *,
        cells: Optional[set[str]] = None,
        bbox: Optional[tuple[float, float, float, float]] = None,
        min_rating: Optional[float] = None,
        min_capacity: Optional[int] = None,
        vehicle_type: Optional[str] = None,
        available_only: bool = True,
    ) -> list[ProviderModel]:
        query = select(ProviderModel).where(ProviderModel.service_type == service_type)
        if available_only:
            query = query.where(ProviderModel.is_available.is_(True))
        if cells is not None:
            query = query.where(ProviderModel.h3_cell.in_(sorted(cells)))
        if bbox is not None:
            min_lat, max_lat, min_lng, max_lng = bbox
            query = query.where(
                ProviderModel.latitude.between(min_lat, max_lat),
                ProviderModel.longitude.between(min_lng, max_lng),
            )
        if min_rating is not None:
            query = query.where(ProviderModel.rating >= min_rating)
        if min_capacity is not None:
            query = query.where(ProviderModel.capacity >= min_capacity)
        if vehicle_type is not None:
            query = query.where(ProviderModel.vehicle_type == vehicle_type)
        result = await self.session.execute(query)
        return list(result.scalars().all())
