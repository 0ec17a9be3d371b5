"""
Admin / observability endpoints
===============================

GET /api/v1/admin/requests?state=active -- requests currently in a state
GET /api/v1/admin/health                -- simple health check
"""

from fastapi import APIRouter, Depends, Query, Request

from mobility.api.dependencies import get_controller
from mobility.api.middleware import limiter
from mobility.api.schemas import HealthResponse, ServiceRequestResponse
from mobility.config import settings
from mobility.domain.enums import RequestState
from mobility.services.lifecycle import RequestLifecycleController

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/requests",
    response_model=list[ServiceRequestResponse],
    summary="List requests in a given state, oldest first",
)
@limiter.limit(settings.rate_limit)
async def get_requests_by_state(
    request: Request,
    state: RequestState = Query(RequestState.ACTIVE),
    limit: int = Query(100, ge=1, le=500),
    controller: RequestLifecycleController = Depends(get_controller),
):
    found = await controller.list_by_state(state, limit)
    return [ServiceRequestResponse.from_domain(r) for r in found]


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
