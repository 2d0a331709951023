from sqlalchemy import String, Integer, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

DEFAULT_STANDARD_PRICE_PARTICIPANTS_MAX = 4

class Quest(Base):
    """Pricing-relevant subset of a quest; the content side owns the rest."""
    __tablename__ = "quests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(200), default="")

    # "child" variants take their prices from the parent quest
    parent_quest_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    price: Mapped[int] = mapped_column(Integer, default=0)
    participants_min: Mapped[int] = mapped_column(Integer, default=1)
    participants_max: Mapped[int] = mapped_column(Integer, default=1)
    standard_price_participants_max: Mapped[int | None] = mapped_column(Integer, nullable=True)  # head-count included in price
    extra_participants_max: Mapped[int] = mapped_column(Integer, default=0)
    extra_participant_price: Mapped[int] = mapped_column(Integer, default=0)

    is_visible: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def standard_participants(self) -> int:
        return self.standard_price_participants_max or DEFAULT_STANDARD_PRICE_PARTICIPANTS_MAX
