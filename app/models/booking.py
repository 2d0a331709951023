from sqlalchemy import String, Integer, DateTime, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    legacy_id: Mapped[int] = mapped_column(Integer, unique=True, index=True)  # human-facing booking number

    quest_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    # unique: the database is the source of truth for slot exclusivity
    slot_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("quest_slots.id"), nullable=True, unique=True)

    customer_name: Mapped[str] = mapped_column(String(200))
    customer_phone: Mapped[str] = mapped_column(String(60), default="")
    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    booking_date: Mapped[str] = mapped_column(String(10), index=True)  # YYYY-MM-DD
    booking_time: Mapped[str | None] = mapped_column(String(5), nullable=True)  # HH:MM, snapshot of the slot time

    participants_count: Mapped[int] = mapped_column(Integer, default=1)
    extra_participants_count: Mapped[int] = mapped_column(Integer, default=0)
    total_price: Mapped[int] = mapped_column(Integer, default=0)

    payment_type: Mapped[str] = mapped_column(String(20), default="cash")  # cash|certificate|aggregator
    promo_code: Mapped[str | None] = mapped_column(String(60), nullable=True)
    promo_discount_type: Mapped[str | None] = mapped_column(String(10), nullable=True)  # percent|amount
    promo_discount_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    promo_discount_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(30), default="pending", index=True)  # pending, confirmed, completed, cancelled
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    aggregator: Mapped[str | None] = mapped_column(String(60), nullable=True, index=True)
    aggregator_unique_id: Mapped[str | None] = mapped_column(String(120), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))


class BookingExtraService(Base):
    """Priced line item copied onto the booking; survives catalog edits."""
    __tablename__ = "booking_extra_services"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), index=True)
    quest_extra_service_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    title: Mapped[str] = mapped_column(String(200))
    price: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
