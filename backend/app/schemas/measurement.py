"""
StitchCraft Backend — Measurement Request/Response Schemas
===========================================================

What:  Pydantic models for snapshots, comparison, sync and offline batch sync.
Why:   Strict input validation, automatic serialization, and OpenAPI docs.

Measurement values are typed as Dict[str, Any] on purpose: stored records
and posted profiles come in several shapes, and the reconciliation layer
tolerates bad fields by leaving them out rather than rejecting the request.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from app.config import settings
from app.services.reconciliation import (
    MeasurementComparison,
    MeasurementUnit,
    MergeSource,
    SyncStrategy,
    parse_unit,
)


def _coerce_unit(v: Any) -> Any:
    # Accept "cm", "inches", "in" etc. before enum validation
    if v is None or isinstance(v, MeasurementUnit):
        return v
    unit = parse_unit(v)
    if unit is None:
        raise ValueError(f"Unknown unit '{v}'. Must be one of: CM, INCH")
    return unit


# ══════════════════════════════════════════════════════════════════════════
# Snapshots
# ══════════════════════════════════════════════════════════════════════════


class MeasurementSnapshotResponse(BaseModel):
    """One stored measurement snapshot."""
    id: uuid.UUID
    client_id: uuid.UUID
    values: Dict[str, Any] = Field(description="Flat {field: number | string} map")
    unit: str = Field(description="CM or INCH")
    notes: Optional[str] = Field(default=None, description="Provenance of this snapshot")
    sketch: Optional[str] = None
    is_synced: bool = False
    client_side_id: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RecordMeasurementRequest(BaseModel):
    """Body of POST /api/clients/{id}/measurements."""
    values: Dict[str, Any] = Field(description="Measurement values; numeric strings are stored as numbers")
    unit: Optional[MeasurementUnit] = Field(default=None, description="Defaults to the configured unit")
    notes: Optional[str] = Field(default=None, max_length=1000)
    sketch: Optional[str] = None

    @field_validator("unit", mode="before")
    @classmethod
    def validate_unit(cls, v: Any) -> Any:
        return _coerce_unit(v)

    @field_validator("values")
    @classmethod
    def require_values(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if not v:
            raise ValueError("values required")
        return v


class MeasurementHistoryResponse(BaseModel):
    """Cursor-paginated snapshot history, newest first."""
    snapshots: List[MeasurementSnapshotResponse]
    total_count: int = Field(description="Total snapshots for this client")
    next_cursor: Optional[str] = Field(
        default=None,
        description="Cursor for next page (ISO datetime). Null if no more pages."
    )
    has_more: bool


# ══════════════════════════════════════════════════════════════════════════
# Comparison & sync
# ══════════════════════════════════════════════════════════════════════════


class CompareRequest(BaseModel):
    """Body of POST /api/measurements/compare. Both sides accept any JSON shape."""
    tailor_measurements: Optional[Any] = None
    client_measurements: Optional[Any] = None
    default_unit: Optional[MeasurementUnit] = None

    @field_validator("default_unit", mode="before")
    @classmethod
    def validate_unit(cls, v: Any) -> Any:
        return _coerce_unit(v)


class ComparisonResponse(BaseModel):
    """
    Side-by-side view used to render the sync dialog.

    sync_available is False when the client profile has no comparable
    fields; the sync action must then be disabled.
    """
    tailor_values: Dict[str, Any]
    client_values: Dict[str, Any]
    tailor_unit: MeasurementUnit
    client_unit: MeasurementUnit
    keys: List[str] = Field(description="Comparable fields, sorted")
    differing_keys: List[str] = Field(description="Fields whose values differ, sorted")
    default_merge_choices: Dict[str, MergeSource]
    sync_available: bool
    has_differences: bool
    client_updated_at: Optional[str] = None
    last_synced_at: Optional[datetime] = None

    @classmethod
    def from_comparison(
        cls,
        comparison: MeasurementComparison,
        last_synced_at: Optional[datetime] = None,
    ) -> "ComparisonResponse":
        return cls(
            tailor_values=comparison.tailor_values,
            client_values=comparison.client_values,
            tailor_unit=comparison.tailor_unit,
            client_unit=comparison.client_unit,
            keys=list(comparison.keys),
            differing_keys=list(comparison.differing_keys),
            default_merge_choices=comparison.default_merge_choices(),
            sync_available=comparison.sync_available,
            has_differences=comparison.has_differences,
            client_updated_at=comparison.client_updated_at,
            last_synced_at=last_synced_at,
        )


class SyncRequest(BaseModel):
    """
    Body of POST /api/clients/{id}/measurements/sync.

    merge_choices is only read for the merge strategy. When omitted, the
    default choices (client where the client has a value) are used; when
    given, fields without a choice are left out of the result.
    """
    strategy: SyncStrategy
    merge_choices: Optional[Dict[str, MergeSource]] = None


class SyncResponse(BaseModel):
    message: str = "Measurements synced"
    strategy: SyncStrategy
    snapshot: MeasurementSnapshotResponse


class PushToProfileRequest(BaseModel):
    """Body of POST /api/clients/{id}/measurements/push-to-profile."""
    values: Dict[str, Any]
    unit: MeasurementUnit = MeasurementUnit.CM

    @field_validator("unit", mode="before")
    @classmethod
    def validate_unit(cls, v: Any) -> Any:
        return _coerce_unit(v) or MeasurementUnit.CM


class PushToProfileResponse(BaseModel):
    message: str = "Measurements pushed to client profile"
    client_id: uuid.UUID
    profile_id: uuid.UUID
    measurements: Dict[str, Any] = Field(description="The profile envelope now stored")
    snapshot: MeasurementSnapshotResponse


# ══════════════════════════════════════════════════════════════════════════
# Offline batch sync
# ══════════════════════════════════════════════════════════════════════════


class OfflineMeasurement(BaseModel):
    """A measurement draft captured while the tailor's device was offline."""
    client_side_id: str = Field(min_length=1, max_length=64)
    client_id: uuid.UUID
    values: Dict[str, Any]
    notes: Optional[str] = Field(default=None, max_length=1000)
    sketch: Optional[str] = None
    created_at: int = Field(ge=0, description="Draft creation time, epoch milliseconds")


class BatchSyncRequest(BaseModel):
    measurements: List[OfflineMeasurement]

    @field_validator("measurements")
    @classmethod
    def limit_batch(cls, v: List[OfflineMeasurement]) -> List[OfflineMeasurement]:
        if len(v) > settings.max_batch_sync_items:
            raise ValueError(
                f"At most {settings.max_batch_sync_items} measurements per batch"
            )
        return v


class BatchSyncItemResult(BaseModel):
    client_side_id: str
    server_id: Optional[uuid.UUID] = None
    status: Literal["synced", "error"]
    error: Optional[str] = None


class BatchSyncResponse(BaseModel):
    success: bool = True
    results: List[BatchSyncItemResult]
