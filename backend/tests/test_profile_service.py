"""
StitchCraft Backend — Profile Service Tests
============================================

What:  Tests for the customer studio: create, read with history, update with fan-out.
How:   In-memory SQLite via the db_session fixture.
"""

import pytest
from uuid import uuid4

from sqlalchemy import select

from app.exceptions import NotFoundError, ValidationError
from app.models.client import Client
from app.models.measurement import ClientMeasurement
from app.schemas.client import ProfileCreate
from app.services.profile_service import PROFILE_SYNC_NOTES, ProfileService


class TestProfileService:

    def setup_method(self):
        self.service = ProfileService()

    async def _profile_with_clients(self, db, *organizations):
        profile = await self.service.create_profile(
            db, ProfileCreate(display_name="Efua", measurements={"chest": 36})
        )
        clients = []
        for index, organization_id in enumerate(organizations):
            client = Client(
                organization_id=organization_id,
                name=f"Efua @ shop {index}",
                profile_id=profile.id,
            )
            db.add(client)
            clients.append(client)
        await db.flush()
        return profile, clients

    @pytest.mark.asyncio
    async def test_create_profile(self, db_session):
        profile = await self.service.create_profile(db_session, ProfileCreate(display_name="Yaw"))
        assert profile.display_name == "Yaw"
        assert profile.measurements is None

    @pytest.mark.asyncio
    async def test_update_fans_out_to_every_linked_client(self, db_session):
        profile, clients = await self._profile_with_clients(db_session, uuid4(), uuid4())

        response = await self.service.update_profile_measurements(
            db_session, profile.id, {"chest": "37", "hips": 41, "unit": "CM"}
        )

        assert response.synced_clients == 2
        assert response.profile.measurements == {"chest": 37, "hips": 41}
        for client in clients:
            result = await db_session.execute(
                select(ClientMeasurement).where(ClientMeasurement.client_id == client.id)
            )
            snapshots = list(result.scalars().all())
            assert len(snapshots) == 1
            assert snapshots[0].values == {"chest": 37, "hips": 41}
            assert snapshots[0].notes == PROFILE_SYNC_NOTES
            assert snapshots[0].is_synced is True

    @pytest.mark.asyncio
    async def test_update_without_linked_clients(self, db_session):
        profile, _ = await self._profile_with_clients(db_session)
        response = await self.service.update_profile_measurements(db_session, profile.id, {"neck": 15})
        assert response.synced_clients == 0

    @pytest.mark.asyncio
    async def test_update_rejects_empty_values(self, db_session):
        profile, _ = await self._profile_with_clients(db_session, uuid4())
        with pytest.raises(ValidationError):
            await self.service.update_profile_measurements(
                db_session, profile.id, {"values": {"nested": {"a": 1}}}
            )

    @pytest.mark.asyncio
    async def test_update_unknown_profile(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.update_profile_measurements(db_session, uuid4(), {"chest": 36})

    @pytest.mark.asyncio
    async def test_measurements_include_history_from_all_tailors(self, db_session):
        profile, clients = await self._profile_with_clients(db_session, uuid4(), uuid4())
        await self.service.update_profile_measurements(db_session, profile.id, {"chest": 38})
        await self.service.update_profile_measurements(db_session, profile.id, {"chest": 39})

        response = await self.service.get_profile_measurements(db_session, profile.id)

        assert response.latest.values == {"chest": 39}
        assert response.latest.notes == "Your Global Profile"
        assert len(response.history) == 4
        assert {item.client_name for item in response.history} == {c.name for c in clients}
        timestamps = [item.created_at for item in response.history]
        assert timestamps == sorted(timestamps, reverse=True)

    @pytest.mark.asyncio
    async def test_latest_reads_pushed_envelope(self, db_session):
        profile = await self.service.create_profile(
            db_session,
            ProfileCreate(
                display_name="Esi",
                measurements={"values": {"chest": 40}, "unit": "INCH", "updatedAt": "2026-10-01"},
            ),
        )
        response = await self.service.get_profile_measurements(db_session, profile.id)
        assert response.latest.values == {"chest": 40}
        assert response.history == []

    @pytest.mark.asyncio
    async def test_unknown_profile_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.get_profile_measurements(db_session, uuid4())
