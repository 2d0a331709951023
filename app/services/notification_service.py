"""
Booking notifications.

The booking request only enqueues a celery task after commit; the worker
opens its own session and sends through the e-mail outbox. Failures on
either side are logged and dropped, a booking never fails because of mail.
"""
import logging
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.booking import Booking, BookingExtraService
from app.models.quest import Quest
from app.services.email_service import queue_email
from app.services.settings_service import get_notification_email

logger = logging.getLogger(__name__)


def dispatch_booking_created(booking_id: str) -> None:
    """Fire-and-forget: hand the booking to the worker, never raise."""
    if not settings.NOTIFICATIONS_ENABLED:
        return
    try:
        from app.tasks.jobs import send_booking_notification
        send_booking_notification.delay(booking_id)
    except Exception:
        logger.warning("Could not enqueue notification for booking %s", booking_id, exc_info=True)


def render_booking_email(db: Session, b: Booking) -> tuple[str, str]:
    quest = db.get(Quest, b.quest_id) if b.quest_id else None
    extras = db.query(BookingExtraService).filter(BookingExtraService.booking_id == b.id).all()
    when = f"{b.booking_date} {b.booking_time}" if b.booking_time else b.booking_date
    extras_text = ", ".join(f"{x.title} - {x.price}" for x in extras) or "none"
    subject = f"New booking #{b.legacy_id}: {b.customer_name}"
    body = "\n".join([
        "A new booking has been received.",
        f"Quest: {quest.title if quest else 'not specified'}",
        f"Name: {b.customer_name}",
        f"Phone: {b.customer_phone}",
        f"E-mail: {b.customer_email or 'not specified'}",
        f"Date: {when}",
        f"Participants: {b.participants_count}",
        f"Extra participants: {b.extra_participants_count}",
        f"Extra services: {extras_text}",
        f"Total: {b.total_price}",
        f"Status: {b.status}",
        f"Notes: {b.notes or '-'}",
    ])
    return subject, body


def send_booking_notifications(db: Session, booking_id: str) -> dict:
    b = db.get(Booking, booking_id)
    if not b:
        return {"sent": 0, "reason": "booking_not_found"}
    subject, body = render_booking_email(db, b)
    sent = 0
    admin_email = get_notification_email(db)
    if admin_email:
        queue_email(db, admin_email, subject, body, related_booking_id=b.id)
        sent += 1
    if b.customer_email:
        queue_email(db, b.customer_email, subject, body, related_booking_id=b.id)
        sent += 1
    return {"sent": sent}
