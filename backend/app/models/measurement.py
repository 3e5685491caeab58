"""
StitchCraft Backend — Client Measurement Snapshot Model
========================================================

What:  ORM model for the `client_measurements` table.
Why:   Every change to a client's measurements (order intake, manual edit,
       profile sync, profile fan-out) is stored as a new row, giving an
       append-only history per client.
Who:   Written by MeasurementService and ProfileService; read for comparison
       and history listing.

Snapshot rules:
    - Sync and manual edits only ever INSERT. The latest snapshot for a
      client is simply the newest row by created_at.
    - The one in-place update is the offline draft replay path, keyed by
      client_side_id: a draft uploaded twice must not produce two rows.

Index on (client_id, created_at DESC):
    Serves both "latest snapshot for client" (LIMIT 1) and the cursor
    paginated history listing.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.client import JSONType, utcnow


class ClientMeasurement(Base):
    """A single immutable measurement snapshot for one client."""

    __tablename__ = "client_measurements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Flat {field: number | string} map, already numerically normalized
    values: Mapped[Dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    # CM or INCH
    unit: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="CM",
        server_default=text("'CM'"),
    )

    # Provenance, e.g. 'Synced from profile using "merge" strategy'
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    sketch: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    client_side_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
        comment="Offline draft identifier; NULL for snapshots created online",
    )

    is_synced: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_client_measurements_client_created", client_id, created_at.desc()),
    )

    def __repr__(self) -> str:
        return (
            f"<ClientMeasurement(id={self.id}, client_id={self.client_id}, "
            f"unit='{self.unit}', created_at='{self.created_at}')>"
        )
