"""Pin registry, daily aggregates and audit events

Revision ID: 0001
Revises:
Create Date: 2026-10-18

- pins: one row per tracked identifier, unique on identifier
- migration_stats / cleanup_stats: per-day accumulators keyed by stat_date
- events: append-only audit log
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "pins",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True),
        sa.Column("identifier", sa.Text(), nullable=False),
        sa.Column(
            "discovered_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column(
            "status",
            sa.String(16),
            server_default="pending",
            nullable=False,
        ),
        sa.Column("migrated", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("migrated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unpinned", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("unpinned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.UniqueConstraint("identifier", name="uq_pins_identifier"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')", name="ck_pins_status"
        ),
        sa.CheckConstraint("retry_count >= 0", name="ck_pins_retry_count"),
    )
    op.create_index("idx_pins_status_discovered", "pins", ["status", "discovered_at"])
    op.create_index(
        "idx_pins_migrated_discovered", "pins", ["migrated", "unpinned", "discovered_at"]
    )

    op.create_table(
        "migration_stats",
        sa.Column("stat_date", sa.Date(), primary_key=True),
        sa.Column("runs", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("pins_processed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("pins_succeeded", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("pins_failed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "pins_already_present", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("bytes_migrated", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "cleanup_stats",
        sa.Column("stat_date", sa.Date(), primary_key=True),
        sa.Column("runs", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "migrated_pins_unpinned", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column(
            "invalid_pins_removed", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column(
            "bytes_freed_migrated", sa.BigInteger(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column(
            "bytes_freed_invalid", sa.BigInteger(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("gc_runs", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "gc_duration_seconds", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("gc_bytes_freed", sa.BigInteger(), server_default=sa.text("0"), nullable=False),
        sa.Column("gc_errors", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(16), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
    )
    op.create_index("idx_events_type_created", "events", ["event_type", "created_at"])
    op.create_index("idx_events_severity_created", "events", ["severity", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_events_severity_created", table_name="events")
    op.drop_index("idx_events_type_created", table_name="events")
    op.drop_table("events")
    op.drop_table("cleanup_stats")
    op.drop_table("migration_stats")
    op.drop_index("idx_pins_migrated_discovered", table_name="pins")
    op.drop_index("idx_pins_status_discovered", table_name="pins")
    op.drop_table("pins")
