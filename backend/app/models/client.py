"""
StitchCraft Backend — Client & Customer Profile Models
=======================================================

What:  ORM models for the `customer_profiles` and `clients` tables.
Why:   A customer keeps one global measurement profile; every tailoring
       business (organization) that serves them keeps its own client record.
How:   `Client.profile_id` links a tenant-scoped client to the global profile.

Table Design Rationale:
    - clients.organization_id: every tenant-scoped query filters on it
    - customer_profiles.measurements: JSON, either a raw {field: value} map
      (profile edited by the customer) or an envelope {values, unit, updatedAt}
      (profile pushed by a tailor). Both shapes are decoded by the
      reconciliation layer, never inspected here.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CustomerProfile(Base):
    """
    A customer's global measurement profile, shared across organizations.

    Lifecycle:
        1. Created when the customer signs up (measurements may be empty)
        2. Updated in place by the customer (studio) or by a tailor's push
        3. Each update fans out new snapshots to linked clients; the
           profile itself only holds the current master values
    """

    __tablename__ = "customer_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    display_name: Mapped[str] = mapped_column(String(200), nullable=False)

    measurements: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
        comment="Master measurements: raw map or {values, unit, updatedAt} envelope",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<CustomerProfile(id={self.id}, display_name='{self.display_name}')>"


class Client(Base):
    """
    A client record owned by one organization (tailoring business).

    Query Patterns:
        - Tenant lookup: WHERE id = :id AND organization_id = :org
        - Profile fan-out: WHERE profile_id = :profile
    """

    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    profile_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("customer_profiles.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_clients_organization", "organization_id"),
        Index("idx_clients_profile", "profile_id"),
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, organization_id={self.organization_id}, name='{self.name}')>"
