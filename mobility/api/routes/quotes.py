"""
Quote endpoint
==============

POST /api/v1/quotes/{service_type} -- price estimate without a request
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Request

from mobility.api.dependencies import get_controller
from mobility.api.middleware import limiter
from mobility.api.schemas import ErrorResponse, PriceBreakdownResponse
from mobility.config import settings
from mobility.domain.enums import ServiceType
from mobility.services.lifecycle import RequestLifecycleController

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post(
    "/{service_type}",
    response_model=PriceBreakdownResponse,
    summary="Quote a service type",
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def quote_service(
    request: Request,
    service_type: ServiceType,
    parameters: dict[str, Any] = Body(...),
    controller: RequestLifecycleController = Depends(get_controller),
):
    return PriceBreakdownResponse.from_domain(controller.quote(service_type, parameters))
