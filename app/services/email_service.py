from datetime import datetime, timezone
import logging
import smtplib
from email.message import EmailMessage
from sqlalchemy.orm import Session
import uuid
import requests

from app.core.config import settings
from app.models.email_log import EmailLog

logger = logging.getLogger(__name__)


def queue_email(db: Session, to_email: str, subject: str, body: str, related_booking_id: str = "") -> str:
    """Queue and attempt immediate send. Body is stored so the worker can retry on failure."""
    eid = str(uuid.uuid4())
    db.add(
        EmailLog(
            id=eid,
            to_email=to_email,
            subject=subject,
            body=body,
            status="queued",
            related_booking_id=related_booking_id,
        )
    )
    db.commit()

    log = db.get(EmailLog, eid)
    try:
        send_email(to_email, subject, body)
        log.status = "sent"
        log.sent_at = datetime.now(timezone.utc)
    except Exception:
        logger.warning("Sending e-mail %s to %s failed; left for retry", eid, to_email, exc_info=True)
        log.status = "failed"
    db.commit()
    return eid


def send_email(to_email: str, subject: str, body: str):
    """Send via SendGrid if configured, otherwise SMTP (MailHog recommended for local)."""
    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body)
        return

    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _send_via_sendgrid(to_email: str, subject: str, body: str):
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }
    r = requests.post(
        "https://api.sendgrid.com/v3/mail/send",
        json=payload,
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"SendGrid error {r.status_code}: {r.text}")


def process_pending_emails(db: Session, limit: int = 50) -> dict:
    """Retry up to `limit` queued or failed e-mails. Returns counts."""
    pending = (
        db.query(EmailLog)
        .filter(EmailLog.status.in_(["queued", "failed"]), EmailLog.body.isnot(None), EmailLog.body != "")
        .order_by(EmailLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent, failed = 0, 0
    for log in pending:
        try:
            send_email(log.to_email, log.subject, log.body)
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            sent += 1
        except Exception:
            logger.warning("Retry of e-mail %s failed", log.id, exc_info=True)
            log.status = "failed"
            failed += 1
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "failed": failed}
