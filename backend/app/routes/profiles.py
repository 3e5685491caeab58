"""
StitchCraft Backend — Customer Profile Routes
==============================================

What:  The customer's studio: create a profile, read its measurements with
       recent snapshots from every tailor, and update the master values.
Who:   Called by the customer-facing studio page.

Profiles are global, not tenant-scoped, so these routes take no
organization header.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.client import (
    ProfileCreate,
    ProfileMeasurementsResponse,
    ProfileMeasurementsUpdate,
    ProfileResponse,
    ProfileUpdateResponse,
)
from app.schemas.common import ErrorResponse
from app.services.profile_service import profile_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profiles", tags=["Profiles"])


@router.post(
    "",
    response_model=ProfileResponse,
    status_code=status.HTTP_201_CREATED,
    responses={500: {"description": "Server error", "model": ErrorResponse}},
    summary="Create a customer profile",
)
async def create_profile(
    body: ProfileCreate,
    db: AsyncSession = Depends(get_db_session),
) -> ProfileResponse:
    return await profile_service.create_profile(db, body)


@router.get(
    "/{profile_id}/measurements",
    response_model=ProfileMeasurementsResponse,
    responses={
        404: {"description": "Profile not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Profile measurements and history across tailors",
)
async def get_profile_measurements(
    profile_id: UUID,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> ProfileMeasurementsResponse:
    result = await profile_service.get_profile_measurements(db, profile_id)
    response.headers["Cache-Control"] = "private, no-cache"
    return result


@router.put(
    "/{profile_id}/measurements",
    response_model=ProfileUpdateResponse,
    responses={
        400: {"description": "No usable measurement values", "model": ErrorResponse},
        404: {"description": "Profile not found", "model": ErrorResponse},
        500: {"description": "Update failed; safe to retry", "model": ErrorResponse},
    },
    summary="Update master measurements",
)
async def update_profile_measurements(
    profile_id: UUID,
    body: ProfileMeasurementsUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> ProfileUpdateResponse:
    """
    Replace the master values.

    Every client linked to this profile receives a new synced snapshot in
    the same transaction; synced_clients reports how many.
    """
    return await profile_service.update_profile_measurements(db, profile_id, body.values)
