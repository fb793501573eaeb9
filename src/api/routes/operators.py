"""
Operator endpoints
==================

GET  /api/v1/operators/{operator_id}/dispatch-mode  -- current dispatch mode
PUT  /api/v1/operators/{operator_id}/dispatch-mode  -- switch auto / manual
POST /api/v1/operators/{operator_code}/booking-ids  -- reserve the next display id
"""

from fastapi import APIRouter, Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db
from src.api.middleware import RATE_LIMIT, limiter
from src.api.schemas import (
    DispatchModeResponse,
    DispatchModeUpdate,
    ErrorResponse,
    GeneratedBookingIdResponse,
)
from src.domain.commands import OPERATOR_CODE_PATTERN
from src.services.booking_ids import SequentialBookingIdGenerator
from src.services.dispatch_policy import DispatchModeGate

router = APIRouter(prefix="/operators", tags=["operators"])


@router.get(
    "/{operator_id}/dispatch-mode",
    response_model=DispatchModeResponse,
    summary="Get an operator's dispatch mode",
    description="Operators without a stored setting report the configured default.",
)
@limiter.limit(RATE_LIMIT)
async def get_dispatch_mode(
    request: Request,
    operator_id: str = Path(..., pattern=OPERATOR_CODE_PATTERN),
    db: AsyncSession = Depends(get_db),
):
    mode = await DispatchModeGate(db).get_mode(operator_id)
    return DispatchModeResponse(operator_id=operator_id, dispatch_mode=mode)


@router.put(
    "/{operator_id}/dispatch-mode",
    response_model=DispatchModeResponse,
    summary="Set an operator's dispatch mode",
)
@limiter.limit(RATE_LIMIT)
async def set_dispatch_mode(
    request: Request,
    body: DispatchModeUpdate,
    operator_id: str = Path(..., pattern=OPERATOR_CODE_PATTERN),
    db: AsyncSession = Depends(get_db),
):
    mode = await DispatchModeGate(db).set_mode(operator_id, body.dispatch_mode)
    return DispatchModeResponse(operator_id=operator_id, dispatch_mode=mode)


@router.post(
    "/{operator_code}/booking-ids",
    response_model=GeneratedBookingIdResponse,
    summary="Generate the next sequential booking id",
    responses={
        400: {"model": ErrorResponse, "description": "Malformed operator code"},
        500: {"model": ErrorResponse, "description": "Counter row is corrupt"},
    },
)
@limiter.limit(RATE_LIMIT)
async def generate_booking_id(
    request: Request,
    operator_code: str,
    db: AsyncSession = Depends(get_db),
):
    generated = await SequentialBookingIdGenerator(db).generate(operator_code)
    return GeneratedBookingIdResponse(
        booking_id=generated.booking_id,
        operator_code=generated.operator_code,
        sequence_number=generated.sequence_number,
    )
