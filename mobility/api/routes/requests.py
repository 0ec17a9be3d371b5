"""
Service request endpoints
=========================

POST /api/v1/requests                       -- create a request (pending)
GET  /api/v1/requests?requester_id=...      -- a requester's history
GET  /api/v1/requests/{request_id}          -- current state and price
POST /api/v1/requests/{request_id}/price    -- attach a price estimate
POST /api/v1/requests/{request_id}/assign   -- bind a provider
POST /api/v1/requests/{request_id}/confirm  -- record commitment + payment intent
POST /api/v1/requests/{request_id}/execute  -- service has started
POST /api/v1/requests/{request_id}/complete -- attach final actuals
POST /api/v1/requests/{request_id}/cancel   -- cancel before completion
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from mobility.api.dependencies import get_controller
from mobility.api.middleware import limiter
from mobility.api.schemas import (
    AssignRequest,
    CancelRequest,
    CompleteRequest,
    ConfirmRequest,
    ErrorResponse,
    PriceBreakdownResponse,
    PriceRequest,
    ServiceRequestCreate,
    ServiceRequestResponse,
)
from mobility.config import settings
from mobility.domain.enums import ServiceType
from mobility.services.lifecycle import RequestLifecycleController

router = APIRouter(prefix="/requests", tags=["requests"])

_CONFLICT = {409: {"model": ErrorResponse, "description": "Not allowed in the current state."}}
_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Request not found."}}


@router.post(
    "",
    status_code=201,
    response_model=ServiceRequestResponse,
    summary="Create a service request",
    responses={422: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def create_request(
    request: Request,
    body: ServiceRequestCreate,
    controller: RequestLifecycleController = Depends(get_controller),
):
    created = await controller.create(
        service_type=body.service_type,
        requester_id=body.requester_id,
        details=body.details,
        origin=body.origin.to_domain() if body.origin else None,
        destination=body.destination.to_domain() if body.destination else None,
        scheduled_date=body.scheduled_date,
        scheduled_time=body.scheduled_time,
        idempotency_key=body.idempotency_key,
    )
    return ServiceRequestResponse.from_domain(created)


@router.get(
    "",
    response_model=list[ServiceRequestResponse],
    summary="List a requester's service requests, newest first",
)
@limiter.limit(settings.rate_limit)
async def list_requests(
    request: Request,
    requester_id: str = Query(..., min_length=1),
    service_type: Optional[ServiceType] = None,
    controller: RequestLifecycleController = Depends(get_controller),
):
    found = await controller.list_for_requester(requester_id, service_type)
    return [ServiceRequestResponse.from_domain(r) for r in found]


@router.get(
    "/{request_id}",
    response_model=ServiceRequestResponse,
    summary="Get a service request",
    responses=_NOT_FOUND,
)
@limiter.limit(settings.rate_limit)
async def get_request(
    request: Request,
    request_id: str,
    controller: RequestLifecycleController = Depends(get_controller),
):
    return ServiceRequestResponse.from_domain(await controller.get(request_id))


@router.post(
    "/{request_id}/price",
    response_model=PriceBreakdownResponse,
    summary="Price a service request",
    description="Recomputes the estimate and attaches it; the state is unchanged.",
    responses={**_NOT_FOUND, **_CONFLICT},
)
@limiter.limit(settings.rate_limit)
async def price_request(
    request: Request,
    request_id: str,
    body: PriceRequest,
    controller: RequestLifecycleController = Depends(get_controller),
):
    breakdown = await controller.price(request_id, body.parameters)
    return PriceBreakdownResponse.from_domain(breakdown)


@router.post(
    "/{request_id}/assign",
    response_model=ServiceRequestResponse,
    summary="Assign a provider",
    description=(
        "Binds the given provider, or the nearest available one when "
        "``provider_id`` is omitted.  Repeating an assignment is a no-op."
    ),
    responses={**_NOT_FOUND, **_CONFLICT, 503: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def assign_request(
    request: Request,
    request_id: str,
    body: Optional[AssignRequest] = None,
    controller: RequestLifecycleController = Depends(get_controller),
):
    provider_id = body.provider_id if body else None
    return ServiceRequestResponse.from_domain(
        await controller.assign(request_id, provider_id)
    )


@router.post(
    "/{request_id}/confirm",
    response_model=ServiceRequestResponse,
    summary="Confirm an assigned request",
    responses={**_NOT_FOUND, **_CONFLICT},
)
@limiter.limit(settings.rate_limit)
async def confirm_request(
    request: Request,
    request_id: str,
    body: Optional[ConfirmRequest] = None,
    controller: RequestLifecycleController = Depends(get_controller),
):
    payment = None
    if body and body.payment:
        payment = body.payment.model_dump(exclude_none=True)
    return ServiceRequestResponse.from_domain(await controller.confirm(request_id, payment))


@router.post(
    "/{request_id}/execute",
    response_model=ServiceRequestResponse,
    summary="Mark a confirmed request as started",
    responses={**_NOT_FOUND, **_CONFLICT},
)
@limiter.limit(settings.rate_limit)
async def execute_request(
    request: Request,
    request_id: str,
    controller: RequestLifecycleController = Depends(get_controller),
):
    return ServiceRequestResponse.from_domain(await controller.execute(request_id))


@router.post(
    "/{request_id}/complete",
    response_model=ServiceRequestResponse,
    summary="Complete an active request",
    responses={**_NOT_FOUND, **_CONFLICT},
)
@limiter.limit(settings.rate_limit)
async def complete_request(
    request: Request,
    request_id: str,
    body: Optional[CompleteRequest] = None,
    controller: RequestLifecycleController = Depends(get_controller),
):
    settlement = None
    if body and body.settlement:
        settlement = body.settlement.model_dump(exclude_none=True)
    return ServiceRequestResponse.from_domain(
        await controller.complete(request_id, settlement)
    )


@router.post(
    "/{request_id}/cancel",
    response_model=ServiceRequestResponse,
    summary="Cancel a request",
    description=(
        "Allowed from pending, assigned and confirmed.  Any assigned "
        "provider is released."
    ),
    responses={**_NOT_FOUND, **_CONFLICT},
)
@limiter.limit(settings.rate_limit)
async def cancel_request(
    request: Request,
    request_id: str,
    body: Optional[CancelRequest] = None,
    controller: RequestLifecycleController = Depends(get_controller),
):
    reason = body.reason if body else None
    return ServiceRequestResponse.from_domain(await controller.cancel(request_id, reason))
