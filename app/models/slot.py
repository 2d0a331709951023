from sqlalchemy import String, Integer, DateTime, UniqueConstraint, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class QuestSlot(Base):
    __tablename__ = "quest_slots"
    __table_args__ = (
        UniqueConstraint("quest_id", "date_str", "start", name="uq_quest_slot_quest_date_start"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    quest_id: Mapped[str] = mapped_column(String(36), index=True)

    date_str: Mapped[str] = mapped_column(String(10), index=True)  # YYYY-MM-DD
    start: Mapped[str] = mapped_column(String(5))  # HH:MM
    price: Mapped[int] = mapped_column(Integer, default=0)

    # true iff a non-cancelled booking references this slot
    is_booked: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
