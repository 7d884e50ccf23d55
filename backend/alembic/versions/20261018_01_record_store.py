"""Progress, profile and audit tables for the SQL record store."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261018_01_record_store"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_progress",
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("document", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("owner_id", name="pk_user_progress"),
    )

    op.create_table(
        "user_profiles",
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("document", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("owner_id", name="pk_user_profiles"),
    )

    op.create_table(
        "persistence_audit_events",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_persistence_audit_events"),
    )
    op.create_index(
        "ix_persistence_audit_events_owner_id",
        "persistence_audit_events",
        ["owner_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_persistence_audit_events_owner_id", table_name="persistence_audit_events")
    op.drop_table("persistence_audit_events")
    op.drop_table("user_profiles")
    op.drop_table("user_progress")
