"""
FastAPI application factory.

* Registers routes for service requests, providers, quotes and admin.
* Maps lifecycle errors to HTTP responses (``Retry-After`` on transient ones).
* Closes the Redis pool and the DB engine on shutdown.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from mobility.api.errors import lifecycle_error_handler
from mobility.api.middleware import limiter
from mobility.api.routes import admin, providers, quotes, requests
from mobility.domain.errors import LifecycleError
from mobility.infrastructure.database import engine
from mobility.infrastructure.redis_client import close_redis

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release pooled connections on shutdown."""
    yield
    await close_redis()
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Multi-Service Mobility API",
        description=(
            "One request lifecycle for carpool, scooter, package, school, "
            "laundry and the other on-demand services: discover providers, "
            "request, price, assign, confirm, execute and complete."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Lifecycle errors
    app.add_exception_handler(LifecycleError, lifecycle_error_handler)

    # Routers
    app.include_router(requests.router, prefix="/api/v1")
    app.include_router(providers.router, prefix="/api/v1")
    app.include_router(quotes.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
