import logging
from datetime import datetime
from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.slot import QuestSlot
from app.services.booking_service import CANCELLED_STATUSES, STATUS_COMPLETED
from app.services.settings_service import local_now
from app.services.slot_service import slot_datetime

logger = logging.getLogger(__name__)


def complete_past_bookings(db: Session, now: datetime | None = None) -> dict:
    """Mark slot-bound bookings whose start time has passed as completed. Status only; slots stay occupied."""
    current = local_now(db, now)
    rows = (
        db.query(Booking, QuestSlot)
        .join(QuestSlot, QuestSlot.id == Booking.slot_id)
        .filter(Booking.status != STATUS_COMPLETED, Booking.status.notin_(CANCELLED_STATUSES))
        .all()
    )
    completed = 0
    for booking, slot in rows:
        if (booking.status or "").strip().lower() in CANCELLED_STATUSES:
            continue
        if slot_datetime(booking.booking_date, slot.start) <= current:
            booking.status = STATUS_COMPLETED
            completed += 1
    if completed:
        db.commit()
    logger.info("Lifecycle sweep: %s of %s open bookings completed", completed, len(rows))
    return {"checked": len(rows), "completed": completed}
