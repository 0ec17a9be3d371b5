"""
Provider directory endpoint
===========================

POST /api/v1/providers/search -- candidates for a service type
"""

from fastapi import APIRouter, Depends, Request

from mobility.api.dependencies import get_controller
from mobility.api.middleware import limiter
from mobility.api.schemas import ErrorResponse, ProviderResponse, ProviderSearchRequest
from mobility.config import settings
from mobility.services.lifecycle import RequestLifecycleController

router = APIRouter(prefix="/providers", tags=["providers"])


@router.post(
    "/search",
    response_model=list[ProviderResponse],
    summary="Search providers for a service type",
    description=(
        "Location-bound services need ``latitude``, ``longitude`` and "
        "``radius_km`` in the filter and are returned nearest first.  "
        "An empty list is a successful result."
    ),
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def search_providers(
    request: Request,
    body: ProviderSearchRequest,
    controller: RequestLifecycleController = Depends(get_controller),
):
    providers = await controller.discover(body.service_type, body.filter)
    return [ProviderResponse.from_domain(p) for p in providers]
