"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "quests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("parent_quest_id", sa.String(length=36), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("participants_min", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("participants_max", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("standard_price_participants_max", sa.Integer(), nullable=True),
        sa.Column("extra_participants_max", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("extra_participant_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_quests_slug", "quests", ["slug"], unique=True)
    op.create_index("ix_quests_parent_quest_id", "quests", ["parent_quest_id"])

    op.create_table(
        "quest_extra_services",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("quest_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_quest_extra_services_quest_id", "quest_extra_services", ["quest_id"])

    op.create_table(
        "quest_slots",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("quest_id", sa.String(length=36), nullable=False),
        sa.Column("date_str", sa.String(length=10), nullable=False),
        sa.Column("start", sa.String(length=5), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_booked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("quest_id", "date_str", "start", name="uq_quest_slot_quest_date_start"),
    )
    op.create_index("ix_quest_slots_quest_id", "quest_slots", ["quest_id"])
    op.create_index("ix_quest_slots_date_str", "quest_slots", ["date_str"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("legacy_id", sa.Integer(), nullable=False),
        sa.Column("quest_id", sa.String(length=36), nullable=True),
        sa.Column("slot_id", sa.String(length=36), sa.ForeignKey("quest_slots.id"), nullable=True),
        sa.Column("customer_name", sa.String(length=200), nullable=False),
        sa.Column("customer_phone", sa.String(length=60), nullable=False, server_default=""),
        sa.Column("customer_email", sa.String(length=320), nullable=True),
        sa.Column("booking_date", sa.String(length=10), nullable=False),
        sa.Column("booking_time", sa.String(length=5), nullable=True),
        sa.Column("participants_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("extra_participants_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payment_type", sa.String(length=20), nullable=False, server_default="cash"),
        sa.Column("promo_code", sa.String(length=60), nullable=True),
        sa.Column("promo_discount_type", sa.String(length=10), nullable=True),
        sa.Column("promo_discount_value", sa.Integer(), nullable=True),
        sa.Column("promo_discount_amount", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("aggregator", sa.String(length=60), nullable=True),
        sa.Column("aggregator_unique_id", sa.String(length=120), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        # one booking per slot; the database is the arbiter under concurrency
        sa.UniqueConstraint("slot_id", name="uq_bookings_slot_id"),
    )
    op.create_index("ix_bookings_legacy_id", "bookings", ["legacy_id"], unique=True)
    op.create_index("ix_bookings_quest_id", "bookings", ["quest_id"])
    op.create_index("ix_bookings_booking_date", "bookings", ["booking_date"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_aggregator", "bookings", ["aggregator"])

    op.create_table(
        "booking_extra_services",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quest_extra_service_id", sa.String(length=36), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_booking_extra_services_booking_id", "booking_extra_services", ["booking_id"])

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=60), nullable=False),
        sa.Column("discount_type", sa.String(length=10), nullable=False, server_default="percent"),
        sa.Column("discount_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("valid_from", sa.String(length=10), nullable=False),
        sa.Column("valid_until", sa.String(length=10), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_promo_codes_code", "promo_codes", ["code"])

    op.create_table(
        "blacklist_entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("phones", sa.Text(), nullable=False, server_default=""),
        sa.Column("emails", sa.Text(), nullable=False, server_default=""),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "settings",
        sa.Column("key", sa.String(length=80), primary_key=True),
        sa.Column("int_value", sa.Integer(), nullable=True),
        sa.Column("str_value", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.execute(
        "INSERT INTO settings (key, int_value, created_at) VALUES ('BOOKING_LEGACY_SEQ', 0, CURRENT_TIMESTAMP)"
    )

    op.create_table(
        "email_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("to_email", sa.String(length=320), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="queued"),
        sa.Column("related_booking_id", sa.String(length=36), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_email_logs_to_email", "email_logs", ["to_email"])

def downgrade() -> None:
    op.drop_table("email_logs")
    op.drop_table("settings")
    op.drop_table("blacklist_entries")
    op.drop_table("promo_codes")
    op.drop_table("booking_extra_services")
    op.drop_table("bookings")
    op.drop_table("quest_slots")
    op.drop_table("quest_extra_services")
    op.drop_table("quests")
