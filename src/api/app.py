"""
FastAPI application factory.

* Registers routes for bookings, offers, operators, passengers and admin.
* Starts / stops the background offer sweeper via lifespan events.
* Applies rate-limiting middleware.
* Renders domain errors as ``{"message", "kind", ...}`` with their status.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, bookings, offers, operators, passengers
from src.config import settings
from src.domain.exceptions import DispatchError
from src.infrastructure.redis_client import close_redis
from src.workers import offer_sweeper as _sweeper

logging.basicConfig(level=settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the offer sweeper on startup; stop it and Redis on shutdown."""
    await _sweeper.start_sweeper_loop()
    yield
    await _sweeper.stop_sweeper_loop()
    await close_redis()


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "message": "Request validation failed",
            "kind": "validation_error",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"message": "Internal server error", "kind": "internal_error"}
    if settings.expose_error_details:
        content["detail"] = repr(exc)
    return JSONResponse(status_code=500, content=content)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ride Dispatch API",
        description=(
            "Books rides, dispatches them to the nearest eligible driver and "
            "drives each booking through its lifecycle, from assignment to "
            "completion or cancellation."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Errors
    app.add_exception_handler(DispatchError, dispatch_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Routers
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(passengers.router, prefix="/api/v1")
    app.include_router(offers.router, prefix="/api/v1")
    app.include_router(operators.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
