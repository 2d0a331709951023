import logging
from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError
from app.db.session import SessionLocal
from app.services import lifecycle_service, notification_service
from app.services.email_service import process_pending_emails

logger = logging.getLogger(__name__)


def complete_past_bookings() -> dict:
    """One sweep; a failure is logged and the next beat tick tries again."""
    db: Session = SessionLocal()
    try:
        try:
            return lifecycle_service.complete_past_bookings(db)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        except Exception:
            db.rollback()
            logger.exception("Lifecycle sweep failed")
            return {"skipped": True, "reason": "error"}
    finally:
        db.close()


def send_booking_notification(booking_id: str) -> dict:
    """Detached from the booking request: own session, errors stay here."""
    db: Session = SessionLocal()
    try:
        return notification_service.send_booking_notifications(db, booking_id)
    except Exception:
        db.rollback()
        logger.exception("Notification for booking %s failed", booking_id)
        return {"sent": 0, "reason": "error"}
    finally:
        db.close()


def process_email_queue(limit: int = 50) -> dict:
    """Process queued/failed emails (retry send). Run periodically via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return process_pending_emails(db, limit=limit)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()
