"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health -- simple health check
POST /api/v1/admin/sweep  -- run one offer/timeout sweep immediately
"""

from fastapi import APIRouter, Request

from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import HealthResponse, SweepResponse
from src.workers import offer_sweeper

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Expire overdue offers and unassigned bookings now",
)
@limiter.limit(RATE_LIMIT)
async def sweep(request: Request):
    result = await offer_sweeper.run_sweep_cycle()
    return SweepResponse(
        offers_expired=result.offers_expired,
        bookings_expired=result.bookings_expired,
    )


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
