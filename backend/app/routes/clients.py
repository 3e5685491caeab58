"""
StitchCraft Backend — Client & Client Measurement Routes
=========================================================

What:  Tenant-scoped client records, their measurement snapshots, and the
       profile sync dialog (compare → choose strategy → commit).
Who:   Called by the tailor's dashboard (client page and sync dialog).

Every route here depends on get_request_context, so a missing or invalid
X-Organization-ID header fails with 400 before any query runs, and clients
of other organizations answer 404.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.context import RequestContext, get_request_context
from app.database import get_db_session
from app.schemas.client import ClientCreate, ClientResponse
from app.schemas.common import ErrorResponse
from app.schemas.measurement import (
    ComparisonResponse,
    MeasurementHistoryResponse,
    MeasurementSnapshotResponse,
    PushToProfileRequest,
    PushToProfileResponse,
    RecordMeasurementRequest,
    SyncRequest,
    SyncResponse,
)
from app.services.client_service import client_service
from app.services.measurement_service import measurement_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clients", tags=["Clients"])

_not_found = {404: {"description": "Client not found in this organization", "model": ErrorResponse}}
_server_error = {500: {"description": "Server error", "model": ErrorResponse}}


# ── Clients ───────────────────────────────────────────────────────────────


@router.post(
    "",
    response_model=ClientResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Missing organization header", "model": ErrorResponse},
        404: {"description": "Linked profile not found", "model": ErrorResponse},
        **_server_error,
    },
    summary="Create a client",
)
async def create_client(
    body: ClientCreate,
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
) -> ClientResponse:
    return await client_service.create_client(db, ctx, body)


@router.get(
    "/{client_id}",
    response_model=ClientResponse,
    responses={**_not_found, **_server_error},
    summary="Get a client",
)
async def get_client(
    client_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
) -> ClientResponse:
    return await client_service.get_client(db, ctx, client_id)


# ── Measurements ──────────────────────────────────────────────────────────


@router.get(
    "/{client_id}/measurements",
    response_model=Optional[MeasurementSnapshotResponse],
    responses={**_not_found, **_server_error},
    summary="Latest measurement snapshot",
    description="Returns the newest snapshot, or null when the client has none yet.",
)
async def get_latest_measurements(
    client_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
) -> Optional[MeasurementSnapshotResponse]:
    return await measurement_service.get_latest(db, ctx, client_id)


@router.post(
    "/{client_id}/measurements",
    response_model=MeasurementSnapshotResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "No usable measurement values", "model": ErrorResponse},
        **_not_found,
        **_server_error,
    },
    summary="Record a measurement snapshot",
)
async def record_measurements(
    client_id: UUID,
    body: RecordMeasurementRequest,
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
) -> MeasurementSnapshotResponse:
    """
    Append a manually entered snapshot.

    Snapshots are never edited; saving again creates a newer one.
    Numeric strings such as "36.50" are stored as numbers.
    """
    return await measurement_service.record_measurement(db, ctx, client_id, body)


@router.get(
    "/{client_id}/measurements/history",
    response_model=MeasurementHistoryResponse,
    responses={**_not_found, **_server_error},
    summary="Measurement snapshot history",
)
async def list_measurement_history(
    client_id: UUID,
    response: Response,
    limit: int | None = Query(
        default=None, ge=1, le=100,
        description="Snapshots per page (max 100). Defaults to HISTORY_PAGE_SIZE.",
    ),
    cursor: str | None = Query(
        default=None,
        description="created_at of the last snapshot on the previous page (ISO 8601)",
    ),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
) -> MeasurementHistoryResponse:
    """
    Snapshots newest first, cursor-paginated.

        Page 1: GET /api/clients/{id}/measurements/history?limit=20
        Page 2: GET /api/clients/{id}/measurements/history?limit=20&cursor=<next_cursor>
    """
    result = await measurement_service.list_history(
        db, ctx, client_id, limit=limit, cursor=cursor
    )
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


# ── Profile sync ──────────────────────────────────────────────────────────


@router.get(
    "/{client_id}/measurements/comparison",
    response_model=ComparisonResponse,
    responses={**_not_found, **_server_error},
    summary="Compare latest snapshot with the linked customer profile",
    description=(
        "Returns both sides, the comparable fields, which of them differ, and "
        "the default merge choices. sync_available is false when the client "
        "has no linked profile or the profile holds no comparable fields."
    ),
)
async def get_measurement_comparison(
    client_id: UUID,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
) -> ComparisonResponse:
    result = await measurement_service.compare_for_client(db, ctx, client_id)
    # The profile can change at any time
    response.headers["Cache-Control"] = "no-store"
    return result


@router.post(
    "/{client_id}/measurements/sync",
    response_model=SyncResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid strategy or merge choices", "model": ErrorResponse},
        **_not_found,
        409: {"description": "No profile measurements to sync from", "model": ErrorResponse},
        500: {"description": "Sync failed; safe to retry", "model": ErrorResponse},
    },
    summary="Sync measurements from the linked customer profile",
)
async def sync_measurements(
    client_id: UUID,
    body: SyncRequest,
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
) -> SyncResponse:
    """
    Resolve the comparison with the chosen strategy and store a new snapshot.

    Strategies:
        use_client: take the profile's values and unit
        use_tailor: rejected with 400, since it would change nothing
        merge:      per-field choices; omit merge_choices to take the
                    profile's value wherever the profile has one
    """
    return await measurement_service.sync_from_profile(db, ctx, client_id, body)


@router.post(
    "/{client_id}/measurements/push-to-profile",
    response_model=PushToProfileResponse,
    responses={
        400: {"description": "Client has no linked profile", "model": ErrorResponse},
        **_not_found,
        **_server_error,
    },
    summary="Overwrite the linked customer profile with the tailor's values",
)
async def push_to_profile(
    client_id: UUID,
    body: PushToProfileRequest,
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
) -> PushToProfileResponse:
    return await measurement_service.push_to_profile(db, ctx, client_id, body)
