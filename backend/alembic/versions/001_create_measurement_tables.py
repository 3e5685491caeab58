"""Create customer profile, client and measurement tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  customer_profiles (global), clients (tenant-scoped) and
       client_measurements (append-only snapshots).
How:   PostgreSQL UUID primary keys, JSONB measurement maps,
       TIMESTAMP WITH TIME ZONE.

Rollback: downgrade() drops all three tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "customer_profiles",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column(
            "measurements",
            postgresql.JSONB(),
            nullable=True,
            comment="Master measurements: raw map or {values, unit, updatedAt} envelope",
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "clients",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("profile_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["profile_id"], ["customer_profiles.id"], ondelete="SET NULL"
        ),
    )
    # Every tenant-scoped lookup filters on organization_id
    op.create_index("idx_clients_organization", "clients", ["organization_id"])
    # Profile updates fan out to linked clients
    op.create_index("idx_clients_profile", "clients", ["profile_id"])

    op.create_table(
        "client_measurements",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "values",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
            comment="Flat {field: number | string} map",
        ),
        sa.Column(
            "unit",
            sa.String(10),
            nullable=False,
            server_default=sa.text("'CM'"),
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("sketch", sa.Text(), nullable=True),
        sa.Column(
            "client_side_id",
            sa.String(64),
            nullable=True,
            comment="Offline draft identifier; NULL for snapshots created online",
        ),
        sa.Column(
            "is_synced",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("client_side_id"),
    )
    # "Latest snapshot" and history pages: WHERE client_id = ? ORDER BY created_at DESC
    op.create_index(
        "idx_client_measurements_client_created",
        "client_measurements",
        ["client_id", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    """WARNING: destructive. All measurement history is lost."""
    op.drop_index("idx_client_measurements_client_created", table_name="client_measurements")
    op.drop_table("client_measurements")
    op.drop_index("idx_clients_profile", table_name="clients")
    op.drop_index("idx_clients_organization", table_name="clients")
    op.drop_table("clients")
    op.drop_table("customer_profiles")
