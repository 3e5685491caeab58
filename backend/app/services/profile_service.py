"""
StitchCraft Backend — Customer Profile Service
===============================================

What:  The customer's own view of their measurements ("studio").
Why:   A customer edits one master profile; every tailoring business linked
       to them should see the change without re-measuring.
How:   Updating the profile writes the master values and, in the same
       transaction, appends a synced snapshot to every linked client.
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import DatabaseError, NotFoundError, StitchCraftError, ValidationError
from app.models.client import Client, CustomerProfile, utcnow
from app.models.measurement import ClientMeasurement
from app.schemas.client import (
    ProfileCreate,
    ProfileHistoryItem,
    ProfileLatest,
    ProfileMeasurementsResponse,
    ProfileResponse,
    ProfileUpdateResponse,
)
from app.services.measurement_service import measurement_service
from app.services.reconciliation import MeasurementUnit, decode_record, normalize_values

logger = logging.getLogger(__name__)

PROFILE_SYNC_NOTES = "Synced from Global Studio Profile"


class ProfileService:

    async def _load_profile(self, db: AsyncSession, profile_id: UUID) -> CustomerProfile:
        profile = await db.get(CustomerProfile, profile_id)
        if profile is None:
            raise NotFoundError(resource="profile", resource_id=str(profile_id))
        return profile

    async def _linked_clients(self, db: AsyncSession, profile_id: UUID) -> List[Client]:
        result = await db.execute(
            select(Client).where(Client.profile_id == profile_id).order_by(Client.created_at)
        )
        return list(result.scalars().all())

    async def create_profile(self, db: AsyncSession, data: ProfileCreate) -> ProfileResponse:
        try:
            profile = CustomerProfile(
                display_name=data.display_name,
                measurements=data.measurements,
            )
            db.add(profile)
            await db.flush()
            logger.info("Customer profile %s created", profile.id)
            return ProfileResponse.model_validate(profile)
        except Exception as e:
            logger.error("Database error creating profile: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create the profile. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def get_profile_measurements(
        self, db: AsyncSession, profile_id: UUID
    ) -> ProfileMeasurementsResponse:
        """
        Master values plus recent snapshots from every linked client.

        History holds up to `profile_history_per_client` snapshots per
        linked client, merged newest first.
        """
        try:
            profile = await self._load_profile(db, profile_id)
            history: List[ProfileHistoryItem] = []
            for client in await self._linked_clients(db, profile.id):
                result = await db.execute(
                    select(ClientMeasurement)
                    .where(ClientMeasurement.client_id == client.id)
                    .order_by(desc(ClientMeasurement.created_at))
                    .limit(settings.profile_history_per_client)
                )
                for snapshot in result.scalars().all():
                    history.append(ProfileHistoryItem(
                        id=snapshot.id,
                        client_id=snapshot.client_id,
                        values=snapshot.values,
                        unit=snapshot.unit,
                        notes=snapshot.notes,
                        sketch=snapshot.sketch,
                        is_synced=snapshot.is_synced,
                        client_side_id=snapshot.client_side_id,
                        created_at=snapshot.created_at,
                        client_name=client.name,
                    ))
            history.sort(key=lambda item: item.created_at, reverse=True)

            return ProfileMeasurementsResponse(
                latest=ProfileLatest(
                    values=decode_record(profile.measurements).values,
                    created_at=profile.updated_at,
                ),
                history=history,
            )

        except StitchCraftError:
            raise
        except Exception as e:
            logger.error("Database error reading profile %s: %s", profile_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve profile measurements. Please try again.",
                context={"profile_id": str(profile_id)},
            )

    async def update_profile_measurements(
        self, db: AsyncSession, profile_id: UUID, values: dict
    ) -> ProfileUpdateResponse:
        """
        Replace the master values and fan out a snapshot to each linked client.

        Fan-out snapshots use the configured default unit, since a customer's
        own edits carry no unit.
        """
        cleaned = normalize_values(decode_record(values).values)
        if not cleaned:
            raise ValidationError(message="No measurement values to save", field="values")

        try:
            profile = await self._load_profile(db, profile_id)
            profile.measurements = cleaned
            profile.updated_at = utcnow()
            await db.flush()
            linked = await self._linked_clients(db, profile.id)
        except StitchCraftError:
            raise
        except Exception as e:
            logger.error("Failed to update profile %s: %s", profile_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not update profile measurements. Please try again.",
                context={"profile_id": str(profile_id)},
            )

        unit = MeasurementUnit(settings.default_measurement_unit)
        for client in linked:
            await measurement_service.commit_snapshot(
                db,
                client.id,
                cleaned,
                unit,
                notes=PROFILE_SYNC_NOTES,
                is_synced=True,
                failure_message="Could not sync the profile to linked tailors. Please try again.",
            )
        logger.info("Profile %s updated; %d linked clients synced", profile.id, len(linked))

        return ProfileUpdateResponse(
            profile=ProfileResponse.model_validate(profile),
            synced_clients=len(linked),
        )


profile_service = ProfileService()
