import uuid
import logging
from datetime import datetime, timezone
from sqlalchemy.orm import Session

from app.core.errors import BlacklistEntryNotFound, ValidationFailed
from app.models.blacklist_entry import BlacklistEntry
from app.services.contact_normalizer import extract_email_candidates, extract_phone_candidates
from app.services.settings_service import get_block_blacklisted

logger = logging.getLogger(__name__)

CONTACT_SEPARATOR = ";"


def parse_stored_contacts(raw: str | None) -> list[str]:
    out: list[str] = []
    for item in (raw or "").split(CONTACT_SEPARATOR):
        item = item.strip()
        if item and item not in out:
            out.append(item)
    return out


def _normalize_phones(values: list[str] | None) -> list[str]:
    out: list[str] = []
    for value in values or []:
        for phone in sorted(extract_phone_candidates(value)):
            if phone not in out:
                out.append(phone)
    return out


def _normalize_emails(values: list[str] | None) -> list[str]:
    out: list[str] = []
    for value in values or []:
        for email in sorted(extract_email_candidates(value)):
            if email not in out:
                out.append(email)
    return out


def entry_to_dict(entry: BlacklistEntry) -> dict:
    return {
        "id": entry.id,
        "name": entry.name,
        "phones": parse_stored_contacts(entry.phones),
        "emails": parse_stored_contacts(entry.emails),
        "comment": entry.comment,
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
        "updatedAt": entry.updated_at.isoformat() if entry.updated_at else None,
    }


def list_entries(db: Session) -> list[BlacklistEntry]:
    return db.query(BlacklistEntry).order_by(BlacklistEntry.updated_at.desc()).all()


def _apply(entry: BlacklistEntry, name: str, phones: list[str] | None, emails: list[str] | None, comment: str | None):
    if not name or not name.strip():
        raise ValidationFailed("Blacklist entry name is required")
    norm_phones = _normalize_phones(phones)
    norm_emails = _normalize_emails(emails)
    if not norm_phones and not norm_emails:
        raise ValidationFailed("At least one phone or e-mail is required")
    entry.name = name.strip()
    entry.phones = CONTACT_SEPARATOR.join(norm_phones)
    entry.emails = CONTACT_SEPARATOR.join(norm_emails)
    entry.comment = comment.strip() if comment and comment.strip() else None


def create_entry(db: Session, name: str, phones: list[str] | None, emails: list[str] | None, comment: str | None = None) -> BlacklistEntry:
    entry = BlacklistEntry(id=str(uuid.uuid4()))
    _apply(entry, name, phones, emails, comment)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def update_entry(db: Session, entry_id: str, name: str, phones: list[str] | None, emails: list[str] | None, comment: str | None = None) -> BlacklistEntry:
    entry = db.get(BlacklistEntry, entry_id)
    if not entry:
        raise BlacklistEntryNotFound()
    _apply(entry, name, phones, emails, comment)
    entry.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(entry)
    return entry


def delete_entry(db: Session, entry_id: str) -> None:
    entry = db.get(BlacklistEntry, entry_id)
    if not entry:
        raise BlacklistEntryNotFound()
    db.delete(entry)
    db.commit()


def find_matches(db: Session, phone: str | None, email: str | None, entries: list[BlacklistEntry] | None = None) -> list[dict]:
    """
    Entries sharing at least one normalized contact with the given phone/email.

    `entries` lets list views load the blacklist once and match every booking against it.
    """
    candidate_phones = extract_phone_candidates(phone)
    candidate_emails = extract_email_candidates(email)
    if not candidate_phones and not candidate_emails:
        return []

    if entries is None:
        entries = db.query(BlacklistEntry).all()

    matches = []
    for entry in entries:
        matched_phones = [p for p in parse_stored_contacts(entry.phones) if p in candidate_phones]
        matched_emails = [e for e in parse_stored_contacts(entry.emails) if e in candidate_emails]
        if not matched_phones and not matched_emails:
            continue
        matches.append({
            "id": entry.id,
            "name": entry.name,
            "comment": entry.comment,
            "matchedPhones": matched_phones,
            "matchedEmails": matched_emails,
        })
    return matches


def is_booking_blocked(db: Session, phone: str | None, email: str | None, is_api_booking: bool) -> bool:
    if not get_block_blacklisted(db, is_api_booking):
        return False
    blocked = len(find_matches(db, phone, email)) > 0
    if blocked:
        logger.warning("Booking rejected by blacklist (api=%s)", is_api_booking)
    return blocked
