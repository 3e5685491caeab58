"""
StitchCraft Backend — Measurement Comparison & Offline Sync Routes
===================================================================

What:  POST /api/measurements/compare  (stateless comparison of two records)
       POST /api/measurements/sync     (upload drafts captured offline)
Who:   The sync dialog preview and the tailor app's offline queue.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.context import RequestContext, get_request_context
from app.database import get_db_session
from app.schemas.common import ErrorResponse
from app.schemas.measurement import (
    BatchSyncRequest,
    BatchSyncResponse,
    CompareRequest,
    ComparisonResponse,
)
from app.services.measurement_service import measurement_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/measurements", tags=["Measurements"])


@router.post(
    "/compare",
    response_model=ComparisonResponse,
    summary="Compare a tailor record with a client profile record",
    description=(
        "Both records may be a flat {field: value} map, a {values, unit, updatedAt} "
        "envelope, or missing. Nothing is stored."
    ),
)
async def compare_measurements(body: CompareRequest) -> ComparisonResponse:
    return measurement_service.compare_payloads(
        body.tailor_measurements,
        body.client_measurements,
        default_unit=body.default_unit,
    )


@router.post(
    "/sync",
    response_model=BatchSyncResponse,
    responses={
        400: {"description": "Missing organization header", "model": ErrorResponse},
        422: {"description": "Batch too large or malformed"},
    },
    summary="Upload measurements recorded offline",
)
async def batch_sync_measurements(
    body: BatchSyncRequest,
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
) -> BatchSyncResponse:
    """
    Store each offline draft, keyed by its client_side_id.

    Every draft gets its own result entry; one failing draft does not stop
    the rest. Replaying a batch updates the rows created the first time.
    """
    return await measurement_service.batch_sync(db, ctx, body.measurements)
