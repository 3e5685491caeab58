"""
StitchCraft Backend — Measurement Service (Snapshots & Profile Sync)
=====================================================================

What:  Reads and writes client measurement snapshots and runs the
       profile reconciliation workflow.
Why:   Keeps tenancy checks, persistence and provenance in one place while
       the comparison and merge rules stay pure in `reconciliation`.
How:   Each public method receives the request session and RequestContext,
       resolves the client inside the caller's organization, then reads or
       appends snapshots.

Sync Flow (POST /api/clients/{id}/measurements/sync):
    ┌──────────────┐    ┌─────────────┐    ┌──────────────┐    ┌──────────┐
    │ Load latest  │───▶│  Compare    │───▶│  Resolve     │───▶│  Commit  │
    │ snapshot +   │    │ (comparing) │    │ (resolving)  │    │ (insert) │
    │ profile      │    └─────────────┘    └──────────────┘    └──────────┘
    └──────────────┘

    A commit is always an INSERT of a new snapshot. The request transaction
    is committed by get_db_session; any failure rolls it back whole.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.context import RequestContext
from app.exceptions import (
    DatabaseError,
    NotFoundError,
    StitchCraftError,
    SyncUnavailableError,
    ValidationError,
)
from app.models.client import Client, CustomerProfile, utcnow
from app.models.measurement import ClientMeasurement
from app.schemas.measurement import (
    BatchSyncItemResult,
    BatchSyncResponse,
    ComparisonResponse,
    MeasurementHistoryResponse,
    MeasurementSnapshotResponse,
    OfflineMeasurement,
    PushToProfileRequest,
    PushToProfileResponse,
    RecordMeasurementRequest,
    SyncRequest,
    SyncResponse,
)
from app.services.client_service import client_service
from app.services.reconciliation import (
    MeasurementComparison,
    MeasurementUnit,
    Scalar,
    SyncStrategy,
    SyncWorkflow,
    compare_records,
    decode_record,
    normalize_values,
    sync_notes,
)

logger = logging.getLogger(__name__)


def snapshot_envelope(snapshot: Optional[ClientMeasurement]) -> Optional[Dict[str, Any]]:
    """The tailor-side comparison input for a stored snapshot."""
    if snapshot is None:
        return None
    return {
        "values": snapshot.values or {},
        "unit": snapshot.unit,
        "updatedAt": snapshot.created_at.isoformat() if snapshot.created_at else None,
    }


class MeasurementService:
    """
    Business logic layer for measurement snapshots.

    Error Handling Strategy:
        Application exceptions (NotFoundError, ValidationError,
        SyncUnavailableError) propagate unchanged. Anything else raised while
        talking to the database is logged with its details and replaced by a
        DatabaseError carrying a generic, retryable message.
    """

    # ── Reads ─────────────────────────────────────────────────────────────

    async def _latest_snapshot(
        self, db: AsyncSession, client_id: UUID, synced_only: bool = False
    ) -> Optional[ClientMeasurement]:
        query = select(ClientMeasurement).where(ClientMeasurement.client_id == client_id)
        if synced_only:
            query = query.where(ClientMeasurement.is_synced.is_(True))
        query = query.order_by(desc(ClientMeasurement.created_at)).limit(1)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def _linked_profile(
        self, db: AsyncSession, client: Client
    ) -> Optional[CustomerProfile]:
        if client.profile_id is None:
            return None
        return await db.get(CustomerProfile, client.profile_id)

    async def get_latest(
        self, db: AsyncSession, ctx: RequestContext, client_id: UUID
    ) -> Optional[MeasurementSnapshotResponse]:
        """Newest snapshot for the client, or None when it has no measurements yet."""
        client = await client_service.load_client(db, ctx, client_id)
        try:
            snapshot = await self._latest_snapshot(db, client.id)
        except Exception as e:
            logger.error("Database error fetching measurements for %s: %s", client_id, str(e))
            raise DatabaseError(
                message="Could not retrieve measurements. Please try again.",
                context={"client_id": str(client_id)},
            )
        if snapshot is None:
            return None
        return MeasurementSnapshotResponse.model_validate(snapshot)

    async def list_history(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        client_id: UUID,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> MeasurementHistoryResponse:
        """
        Snapshot history, newest first, with cursor-based pagination.

        The cursor is the created_at of the last snapshot on the previous
        page; an unparsable cursor restarts from the newest snapshot.
        """
        client = await client_service.load_client(db, ctx, client_id)
        limit = limit or settings.history_page_size
        try:
            query = select(ClientMeasurement).where(ClientMeasurement.client_id == client.id)
            if cursor:
                try:
                    cursor_dt = datetime.fromisoformat(cursor)
                except ValueError:
                    cursor_dt = None
                if cursor_dt:
                    query = query.where(ClientMeasurement.created_at < cursor_dt)

            # One extra row tells us whether another page exists
            query = query.order_by(desc(ClientMeasurement.created_at)).limit(limit + 1)
            result = await db.execute(query)
            snapshots = list(result.scalars().all())

            count_result = await db.execute(
                select(func.count(ClientMeasurement.id)).where(
                    ClientMeasurement.client_id == client.id
                )
            )
            total_count = count_result.scalar() or 0

            has_more = len(snapshots) > limit
            if has_more:
                snapshots = snapshots[:limit]
            next_cursor = snapshots[-1].created_at.isoformat() if has_more and snapshots else None

            return MeasurementHistoryResponse(
                snapshots=[MeasurementSnapshotResponse.model_validate(s) for s in snapshots],
                total_count=total_count,
                next_cursor=next_cursor,
                has_more=has_more,
            )

        except Exception as e:
            logger.error("Database error listing measurement history: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve measurement history. Please try again.",
                context={"client_id": str(client_id), "error_type": type(e).__name__},
            )

    # ── Writes ────────────────────────────────────────────────────────────

    async def commit_snapshot(
        self,
        db: AsyncSession,
        client_id: UUID,
        values: Dict[str, Scalar],
        unit: MeasurementUnit,
        notes: Optional[str],
        sketch: Optional[str] = None,
        is_synced: bool = False,
        failure_message: str = "Could not save measurements. Please try again.",
    ) -> ClientMeasurement:
        """
        Append one snapshot row.

        The row is flushed, not committed; the request transaction commits it.
        A failed flush becomes a DatabaseError with `failure_message`.
        """
        snapshot = ClientMeasurement(
            id=uuid.uuid4(),
            client_id=client_id,
            values=dict(values),
            unit=unit.value,
            notes=notes,
            sketch=sketch,
            is_synced=is_synced,
            created_at=utcnow(),
        )
        try:
            db.add(snapshot)
            await db.flush()
        except Exception as e:
            logger.error(
                "Failed to insert measurement snapshot for client %s: %s",
                client_id,
                str(e),
                exc_info=True,
            )
            raise DatabaseError(
                message=failure_message,
                context={"client_id": str(client_id), "error_type": type(e).__name__},
            )
        logger.info(
            "Snapshot %s stored for client %s (%d fields, %s)",
            snapshot.id,
            client_id,
            len(snapshot.values),
            notes or "no notes",
        )
        return snapshot

    async def commit(
        self,
        db: AsyncSession,
        client_id: UUID,
        merged: Dict[str, Scalar],
        unit: MeasurementUnit,
        strategy: SyncStrategy,
    ) -> ClientMeasurement:
        """
        Persist a sync result as a new snapshot tagged with its strategy.

        Committing the same input twice stores two snapshots.
        """
        return await self.commit_snapshot(
            db,
            client_id,
            normalize_values(merged),
            unit,
            notes=sync_notes(strategy),
            is_synced=True,
            failure_message="Measurement sync failed. Please try again.",
        )

    async def record_measurement(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        client_id: UUID,
        request: RecordMeasurementRequest,
    ) -> MeasurementSnapshotResponse:
        """Store a manually entered measurement set as a new snapshot."""
        client = await client_service.load_client(db, ctx, client_id)
        values = normalize_values(decode_record(request.values).values)
        if not values:
            raise ValidationError(
                message="No measurement values to save",
                field="values",
            )
        snapshot = await self.commit_snapshot(
            db,
            client.id,
            values,
            request.unit or MeasurementUnit(settings.default_measurement_unit),
            notes=request.notes or "Updated via measurements dialog",
            sketch=request.sketch,
        )
        return MeasurementSnapshotResponse.model_validate(snapshot)

    # ── Reconciliation ────────────────────────────────────────────────────

    async def _comparison(
        self, db: AsyncSession, client: Client
    ) -> Tuple[MeasurementComparison, Optional[CustomerProfile], Optional[ClientMeasurement]]:
        try:
            snapshot = await self._latest_snapshot(db, client.id)
            last_synced = await self._latest_snapshot(db, client.id, synced_only=True)
            profile = await self._linked_profile(db, client)
        except Exception as e:
            logger.error("Database error loading sync inputs for %s: %s", client.id, str(e))
            raise DatabaseError(
                message="Could not load measurements to compare. Please try again.",
                context={"client_id": str(client.id)},
            )
        comparison = compare_records(
            snapshot_envelope(snapshot),
            profile.measurements if profile is not None else None,
            default_unit=MeasurementUnit(settings.default_measurement_unit),
        )
        return comparison, profile, last_synced

    async def compare_for_client(
        self, db: AsyncSession, ctx: RequestContext, client_id: UUID
    ) -> ComparisonResponse:
        """Compare the client's latest snapshot with its linked profile."""
        client = await client_service.load_client(db, ctx, client_id)
        comparison, _, last_synced = await self._comparison(db, client)
        return ComparisonResponse.from_comparison(
            comparison,
            last_synced_at=last_synced.created_at if last_synced else None,
        )

    def compare_payloads(
        self,
        tailor_measurements: Any,
        client_measurements: Any,
        default_unit: Optional[MeasurementUnit] = None,
    ) -> ComparisonResponse:
        """Stateless comparison of two posted records."""
        comparison: MeasurementComparison = compare_records(
            tailor_measurements,
            client_measurements,
            default_unit=default_unit or MeasurementUnit(settings.default_measurement_unit),
        )
        return ComparisonResponse.from_comparison(comparison)

    async def sync_from_profile(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        client_id: UUID,
        request: SyncRequest,
    ) -> SyncResponse:
        """
        Reconcile the client's latest snapshot with its profile and commit.

        Raises:
            NotFoundError: client not in the caller's organization (→ 404)
            SyncUnavailableError: no linked profile, or profile has no fields (→ 409)
            ValidationError: use_tailor chosen, nothing would change (→ 400)
            DatabaseError: the insert failed; safe to retry (→ 500)
        """
        client = await client_service.load_client(db, ctx, client_id)
        if client.profile_id is None:
            raise SyncUnavailableError(
                message="This client is not linked to a customer profile",
                context={"client_id": str(client_id)},
            )
        comparison, _, _ = await self._comparison(db, client)

        workflow = SyncWorkflow(comparison)
        workflow.choose(request.strategy)
        if request.strategy is SyncStrategy.MERGE and request.merge_choices is not None:
            workflow.replace_choices(request.merge_choices)
        result = workflow.result()

        snapshot = await self.commit(db, client.id, result.values, result.unit, result.strategy)
        workflow.mark_committed()
        logger.info(
            "Client %s synced from profile with %s (%d of %d fields differed)",
            client.id,
            result.strategy.value,
            len(comparison.differing_keys),
            len(comparison.keys),
        )
        return SyncResponse(
            strategy=result.strategy,
            snapshot=MeasurementSnapshotResponse.model_validate(snapshot),
        )

    async def push_to_profile(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        client_id: UUID,
        request: PushToProfileRequest,
    ) -> PushToProfileResponse:
        """
        Overwrite the linked profile with the tailor's values.

        The profile receives a {values, unit, updatedAt} envelope and the
        client gets a local snapshot recording who pushed it.
        """
        client = await client_service.load_client(db, ctx, client_id)
        if client.profile_id is None:
            raise ValidationError(
                message="Client does not have a linked customer profile",
                field="profile_id",
                context={"client_id": str(client_id)},
            )
        values = normalize_values(decode_record(request.values).values)
        if not values:
            raise ValidationError(
                message="No measurement values to push",
                field="values",
                context={"client_id": str(client_id)},
            )

        try:
            profile = await self._linked_profile(db, client)
            if profile is None:
                raise NotFoundError(resource="profile", resource_id=str(client.profile_id))
            envelope = {
                "values": values,
                "unit": request.unit.value,
                "updatedAt": datetime.now(timezone.utc).isoformat(),
            }
            profile.measurements = envelope
            profile.updated_at = utcnow()
            await db.flush()
        except StitchCraftError:
            raise
        except Exception as e:
            logger.error("Failed to update profile %s: %s", client.profile_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not push measurements to the profile. Please try again.",
                context={"profile_id": str(client.profile_id)},
            )

        snapshot = await self.commit_snapshot(
            db,
            client.id,
            values,
            request.unit,
            notes=f"Pushed to client profile by {ctx.user_name or 'tailor'}",
        )
        logger.info("Client %s pushed %d fields to profile %s", client.id, len(values), profile.id)
        return PushToProfileResponse(
            client_id=client.id,
            profile_id=profile.id,
            measurements=envelope,
            snapshot=MeasurementSnapshotResponse.model_validate(snapshot),
        )

    # ── Offline drafts ────────────────────────────────────────────────────

    async def _upsert_draft(
        self, db: AsyncSession, ctx: RequestContext, item: OfflineMeasurement
    ) -> ClientMeasurement:
        client = await client_service.find_client(db, ctx, item.client_id)
        if client is None:
            raise NotFoundError(resource="client", resource_id=str(item.client_id))

        values = normalize_values(decode_record(item.values).values)
        result = await db.execute(
            select(ClientMeasurement).where(ClientMeasurement.client_side_id == item.client_side_id)
        )
        record = result.scalar_one_or_none()
        if record is not None:
            if record.client_id != client.id:
                raise ValidationError(
                    message="Draft belongs to a different client",
                    field="client_side_id",
                )
            record.values = values
            record.notes = item.notes
            record.sketch = item.sketch
        else:
            record = ClientMeasurement(
                id=uuid.uuid4(),
                client_id=client.id,
                client_side_id=item.client_side_id,
                values=values,
                unit=settings.default_measurement_unit,
                notes=item.notes,
                sketch=item.sketch,
                is_synced=True,
                created_at=datetime.fromtimestamp(item.created_at / 1000, tz=timezone.utc),
            )
            db.add(record)
        await db.flush()
        return record

    async def batch_sync(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        items: List[OfflineMeasurement],
    ) -> BatchSyncResponse:
        """
        Upload drafts captured offline, one savepoint per draft.

        Re-sending a draft with the same client_side_id updates the row it
        created earlier instead of adding a second one. A failing draft is
        reported in its result entry and does not affect the others.
        """
        results: List[BatchSyncItemResult] = []
        for item in items:
            try:
                async with db.begin_nested():
                    record = await self._upsert_draft(db, ctx, item)
            except NotFoundError:
                results.append(BatchSyncItemResult(
                    client_side_id=item.client_side_id, status="error", error="Client not found",
                ))
                continue
            except ValidationError as e:
                results.append(BatchSyncItemResult(
                    client_side_id=item.client_side_id, status="error", error=e.message,
                ))
                continue
            except Exception as e:
                logger.error(
                    "Failed to sync offline measurement %s: %s",
                    item.client_side_id,
                    str(e),
                    exc_info=True,
                )
                results.append(BatchSyncItemResult(
                    client_side_id=item.client_side_id,
                    status="error",
                    error="Could not sync this measurement. Please try again.",
                ))
                continue
            results.append(BatchSyncItemResult(
                client_side_id=item.client_side_id, server_id=record.id, status="synced",
            ))

        synced = sum(1 for r in results if r.status == "synced")
        logger.info("Offline batch sync: %d of %d drafts synced", synced, len(items))
        return BatchSyncResponse(results=results)


# ── Singleton Instance ────────────────────────────────────────────────────
measurement_service = MeasurementService()
