"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Optional

from pydantic import BaseModel, Field

from mobility.domain.entities import Location, PriceBreakdown, Provider, ServiceRequest
from mobility.domain.enums import ServiceType


# ── Shared ────────────────────────────────────────────────────────────


class LocationIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=255)

    def to_domain(self) -> Location:
        return Location(self.latitude, self.longitude, self.address)


class LocationOut(BaseModel):
    latitude: float
    longitude: float
    address: Optional[str] = None

    model_config = {"from_attributes": True}


# ── Requests ──────────────────────────────────────────────────────────


class ServiceRequestCreate(BaseModel):
    service_type: ServiceType
    requester_id: str = Field(..., min_length=1, max_length=64)
    origin: Optional[LocationIn] = None
    destination: Optional[LocationIn] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    details: dict[str, Any] = {}
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent duplicate requests on retries.",
    )


class PriceRequest(BaseModel):
    parameters: dict[str, Any]


class AssignRequest(BaseModel):
    provider_id: Optional[str] = Field(
        None,
        max_length=64,
        description="Omit to bind the nearest available provider.",
    )


class PaymentIntentIn(BaseModel):
    method: Optional[str] = Field(None, max_length=32)
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class ConfirmRequest(BaseModel):
    payment: Optional[PaymentIntentIn] = None


class SettlementIn(BaseModel):
    actual_price: Optional[float] = Field(None, ge=0)
    duration_minutes: Optional[float] = Field(None, ge=0)
    rating: Optional[int] = Field(None, ge=1, le=5)
    notes: Optional[str] = Field(None, max_length=500)


class CompleteRequest(BaseModel):
    settlement: Optional[SettlementIn] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ProviderSearchRequest(BaseModel):
    service_type: ServiceType
    filter: dict[str, Any] = {}


# ── Responses ─────────────────────────────────────────────────────────


class PriceComponentOut(BaseModel):
    name: str
    amount: float

    model_config = {"from_attributes": True}


class PriceBreakdownResponse(BaseModel):
    service_type: ServiceType
    currency: str
    base: float
    components: list[PriceComponentOut]
    surge_multiplier: float
    total: float
    extras: dict[str, Any] = {}

    @classmethod
    def from_domain(cls, breakdown: PriceBreakdown) -> "PriceBreakdownResponse":
        return cls(
            service_type=breakdown.service_type,
            currency=breakdown.currency,
            base=breakdown.base,
            components=[PriceComponentOut.model_validate(c) for c in breakdown.components],
            surge_multiplier=breakdown.surge_multiplier,
            total=breakdown.total,
            extras=breakdown.extras,
        )


class ServiceRequestResponse(BaseModel):
    id: str
    service_type: ServiceType
    requester_id: str
    state: str
    tracking_code: Optional[str] = None
    origin: Optional[LocationOut] = None
    destination: Optional[LocationOut] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    details: dict[str, Any]
    provider_id: Optional[str] = None
    price_breakdown: Optional[PriceBreakdownResponse] = None
    payment: Optional[dict[str, Any]] = None
    settlement: Optional[dict[str, Any]] = None
    cancellation: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, request: ServiceRequest) -> "ServiceRequestResponse":
        return cls(
            id=request.id,
            service_type=request.service_type,
            requester_id=request.requester_id,
            state=request.state.value,
            tracking_code=request.tracking_code,
            origin=LocationOut.model_validate(request.origin) if request.origin else None,
            destination=(
                LocationOut.model_validate(request.destination)
                if request.destination
                else None
            ),
            scheduled_date=request.scheduled_date,
            scheduled_time=request.scheduled_time,
            details=request.details.model_dump(mode="json"),
            provider_id=request.provider_id,
            price_breakdown=(
                PriceBreakdownResponse.from_domain(request.price_breakdown)
                if request.price_breakdown
                else None
            ),
            payment=request.payment,
            settlement=request.settlement,
            cancellation=request.cancellation,
            created_at=request.created_at,
            assigned_at=request.assigned_at,
            confirmed_at=request.confirmed_at,
            started_at=request.started_at,
            completed_at=request.completed_at,
            cancelled_at=request.cancelled_at,
        )


class ProviderResponse(BaseModel):
    id: str
    service_type: ServiceType
    name: str
    location: Optional[LocationOut] = None
    rating: float
    capacity: int
    vehicle_type: Optional[str] = None
    attributes: dict[str, Any] = {}
    distance_km: Optional[float] = None

    @classmethod
    def from_domain(cls, provider: Provider) -> "ProviderResponse":
        return cls(
            id=provider.id,
            service_type=provider.service_type,
            name=provider.name,
            location=LocationOut.model_validate(provider.location) if provider.location else None,
            rating=provider.rating,
            capacity=provider.capacity,
            vehicle_type=provider.vehicle_type,
            attributes=provider.attributes,
            distance_km=provider.distance_km,
        )


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    error: Optional[str] = None
    request_id: Optional[str] = None
    retryable: bool = False
