"""
StitchCraft Backend — Client & Profile Schemas
===============================================

What:  Request/response models for clients and customer profiles.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.schemas.measurement import MeasurementSnapshotResponse


class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200, description="Client's display name")
    phone: Optional[str] = Field(default=None, max_length=50)
    profile_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Customer profile to link, enabling profile sync",
    )

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped


class ClientResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    phone: Optional[str] = None
    profile_id: Optional[uuid.UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ProfileCreate(BaseModel):
    display_name: str = Field(min_length=1, max_length=200)
    measurements: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Initial master measurements (raw map or envelope)",
    )


class ProfileResponse(BaseModel):
    id: uuid.UUID
    display_name: str
    measurements: Optional[Dict[str, Any]] = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProfileMeasurementsUpdate(BaseModel):
    """Body of PUT /api/profiles/{id}/measurements."""
    values: Dict[str, Any] = Field(description="New master measurement values")

    @field_validator("values")
    @classmethod
    def require_values(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if not v:
            raise ValueError("values required")
        return v


class ProfileLatest(BaseModel):
    values: Dict[str, Any]
    created_at: datetime
    notes: str = "Your Global Profile"


class ProfileHistoryItem(MeasurementSnapshotResponse):
    """A linked client's snapshot, labelled with the client record it came from."""
    client_name: str


class ProfileMeasurementsResponse(BaseModel):
    latest: ProfileLatest
    history: List[ProfileHistoryItem]


class ProfileUpdateResponse(BaseModel):
    profile: ProfileResponse
    synced_clients: int = Field(description="Linked clients that received a new snapshot")
