"""Create events, variants, reservations, registrations and teams tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    """Create the registration core tables."""
    # Events (only registration_count and form_locked change after creation)
    op.create_table(
        "events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("organizer_id", sa.String(100), nullable=False, index=True),
        sa.Column("event_type", sa.String(20), nullable=False, server_default="normal"),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft", index=True),
        sa.Column("eligibility", sa.String(20), nullable=False, server_default="all"),
        sa.Column("event_start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("registration_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("registration_limit", sa.Integer, nullable=False, server_default="100"),
        sa.Column("registration_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("registration_fee_minor", sa.Integer, nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("custom_fields", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("form_locked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("requires_payment_approval", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("purchase_limit", sa.Integer, nullable=False, server_default="5"),
        sa.Column("is_team_event", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("min_team_size", sa.Integer, nullable=False, server_default="2"),
        sa.Column("max_team_size", sa.Integer, nullable=False, server_default="4"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("registration_count >= 0", name="ck_events_registration_count"),
    )

    # Merchandise variants
    op.create_table(
        "event_variants",
        sa.Column(
            "event_id",
            sa.String(36),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("size", sa.String(50), nullable=True),
        sa.Column("color", sa.String(50), nullable=True),
        sa.Column("price_minor", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("stock", sa.Integer, nullable=False, server_default="0"),
        sa.Column("sold", sa.Integer, nullable=False, server_default="0"),
        sa.CheckConstraint("stock >= 0", name="ck_event_variants_stock"),
        sa.CheckConstraint("sold >= 0", name="ck_event_variants_sold"),
    )

    # Inventory ledger reservations
    op.create_table(
        "inventory_reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), nullable=False, index=True),
        sa.Column("variant_id", sa.String(100), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="held", index=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )

    # Registrations and merchandise purchases
    op.create_table(
        "registrations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("ticket_id", sa.String(40), nullable=False, unique=True),
        sa.Column("event_id", sa.String(36), nullable=False, index=True),
        sa.Column("participant_id", sa.String(100), nullable=False, index=True),
        sa.Column("registration_type", sa.String(20), nullable=False, server_default="normal"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="not_required"),
        sa.Column("form_responses", postgresql.JSONB, nullable=False, server_default="[]"),
        # Merchandise
        sa.Column("selected_variant_id", sa.String(100), nullable=True),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="1"),
        sa.Column("variant_details", postgresql.JSONB, nullable=True),
        sa.Column("total_amount_minor", sa.Integer, nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("reservation_id", sa.String(36), nullable=True),
        # Payment, team and attendance
        sa.Column("payment_proof_ref", sa.String(255), nullable=True),
        sa.Column("team_id", sa.String(36), nullable=True, index=True),
        sa.Column("attended", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("attended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("qr_code_data", sa.Text, nullable=True),
        sa.Column("attendance_override", postgresql.JSONB, nullable=True),
        sa.Column("attempt", sa.Integer, nullable=False, server_default="1"),
        sa.Column("status_history", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
    )

    # One active normal registration per participant and event
    op.create_index(
        "uq_registrations_active_normal",
        "registrations",
        ["event_id", "participant_id"],
        unique=True,
        postgresql_where=sa.text(
            "registration_type = 'normal' AND status NOT IN ('cancelled', 'rejected')"
        ),
    )

    # Teams
    op.create_table(
        "teams",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), nullable=False, index=True),
        sa.Column("team_name", sa.String(255), nullable=False),
        sa.Column("team_leader_id", sa.String(100), nullable=False, index=True),
        sa.Column("team_size", sa.Integer, nullable=False),
        sa.Column("invite_code", sa.String(16), nullable=False, unique=True),
        sa.Column("accepted_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_complete", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("registration_id", sa.String(36), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("accepted_count >= 0", name="ck_teams_accepted_count"),
        sa.CheckConstraint("accepted_count <= team_size - 1", name="ck_teams_capacity"),
    )

    op.create_table(
        "team_memberships",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "team_id",
            sa.String(36),
            sa.ForeignKey("teams.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("event_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False, index=True),
        sa.Column("role", sa.String(10), nullable=False, server_default="member"),
        sa.Column("status", sa.String(20), nullable=False, server_default="accepted"),
        sa.Column(
            "invited_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("event_id", "user_id", name="uq_team_memberships_event_user"),
    )


def downgrade() -> None:
    """Drop the registration core tables."""
    op.drop_table("team_memberships")
    op.drop_table("teams")
    op.drop_index("uq_registrations_active_normal", table_name="registrations")
    op.drop_table("registrations")
    op.drop_table("inventory_reservations")
    op.drop_table("event_variants")
    op.drop_table("events")
