"""Maps lifecycle errors onto HTTP responses."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from mobility.domain.errors import (
    DirectoryUnavailable,
    InvalidParameters,
    InvalidRequest,
    InvalidStateTransition,
    LifecycleError,
    NoProviderAvailable,
    RequestNotFound,
    StoreUnavailable,
    UnsupportedServiceType,
)

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 5

STATUS_CODES: dict[type[LifecycleError], int] = {
    InvalidRequest: 422,
    InvalidParameters: 422,
    RequestNotFound: 404,
    InvalidStateTransition: 409,
    UnsupportedServiceType: 400,
    NoProviderAvailable: 503,
    DirectoryUnavailable: 503,
    StoreUnavailable: 503,
}


def status_for(exc: LifecycleError) -> int:
    for error_type, status in STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status
    return 500


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    return JSONResponse(
        status_code=status,
        content={
            "detail": exc.message,
            "error": exc.kind,
            "request_id": exc.request_id,
            "retryable": exc.retryable,
        },
        headers=headers,
    )
