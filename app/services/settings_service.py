"""
Business settings stored in the `settings` key/value table.

A persisted row wins; without one the value falls back to the process
settings (env / .env). The booking core only reads these.
"""
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging
import re

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.setting import Setting

logger = logging.getLogger(__name__)

BLOCK_SITE_KEY = "BLOCK_BLACKLISTED_SITE_BOOKINGS"
BLOCK_API_KEY = "BLOCK_BLACKLISTED_API_BOOKINGS"
CUTOFF_KEY = "BOOKING_CUTOFF_MINUTES"
TIME_ZONE_KEY = "TIME_ZONE"
MD5_KEY = "AGGREGATOR_MD5_KEY"
PREPAY_MD5_KEY = "AGGREGATOR_PREPAY_MD5_KEY"
SLOT_ID_FORMAT_KEY = "AGGREGATOR_SLOT_ID_FORMAT"
NOTIFICATION_EMAIL_KEY = "NOTIFICATION_EMAIL"
LEGACY_SEQUENCE_KEY = "BOOKING_LEGACY_SEQ"

DEFAULT_CUTOFF_MINUTES = 10
SLOT_ID_FORMAT_NUMERIC = "numeric"
SLOT_ID_FORMAT_UUID = "uuid"

BOOL_KEYS = (BLOCK_SITE_KEY, BLOCK_API_KEY)
INT_KEYS = (CUTOFF_KEY,)
STR_KEYS = (TIME_ZONE_KEY, MD5_KEY, PREPAY_MD5_KEY, SLOT_ID_FORMAT_KEY, NOTIFICATION_EMAIL_KEY)


def _get_int(db: Session, key: str, default: int) -> int:
    s = db.get(Setting, key)
    if s and s.int_value is not None:
        return int(s.int_value)
    return default


def _get_str(db: Session, key: str, default: str) -> str:
    s = db.get(Setting, key)
    if s and s.str_value is not None:
        return s.str_value
    return default


def get_block_blacklisted(db: Session, is_api_booking: bool) -> bool:
    if is_api_booking:
        return bool(_get_int(db, BLOCK_API_KEY, int(settings.BLOCK_BLACKLISTED_API_BOOKINGS)))
    return bool(_get_int(db, BLOCK_SITE_KEY, int(settings.BLOCK_BLACKLISTED_SITE_BOOKINGS)))


def get_booking_cutoff_minutes(db: Session) -> int:
    cutoff = _get_int(db, CUTOFF_KEY, settings.BOOKING_CUTOFF_MINUTES)
    return cutoff if cutoff > 0 else DEFAULT_CUTOFF_MINUTES


def get_time_zone(db: Session) -> tzinfo:
    name = _get_str(db, TIME_ZONE_KEY, "").strip() or settings.TIME_ZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone %r, falling back to UTC", name)
        return timezone.utc


def local_now(db: Session, now: datetime | None = None) -> datetime:
    """Current wall-clock time in the business time zone, returned naive."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(get_time_zone(db)).replace(tzinfo=None)


def get_slot_id_format(db: Session) -> str:
    fmt = _get_str(db, SLOT_ID_FORMAT_KEY, "").strip() or settings.AGGREGATOR_SLOT_ID_FORMAT
    return (fmt or SLOT_ID_FORMAT_NUMERIC).strip().lower()


def parse_keys(value: str | None) -> list[str]:
    """Split a configured key list on commas, semicolons and whitespace; order kept, duplicates dropped."""
    keys: list[str] = []
    for key in re.split(r"[,;\s]+", value or ""):
        if key and key not in keys:
            keys.append(key)
    return keys


def get_md5_keys(db: Session) -> list[str]:
    return parse_keys(_get_str(db, MD5_KEY, settings.AGGREGATOR_MD5_KEY))


def get_prepay_md5_keys(db: Session) -> list[str]:
    return parse_keys(_get_str(db, PREPAY_MD5_KEY, settings.AGGREGATOR_PREPAY_MD5_KEY))


def get_notification_email(db: Session) -> str:
    return _get_str(db, NOTIFICATION_EMAIL_KEY, settings.NOTIFICATION_EMAIL)


def get_booking_settings(db: Session) -> dict:
    return {
        "blockBlacklistedSiteBookings": get_block_blacklisted(db, is_api_booking=False),
        "blockBlacklistedApiBookings": get_block_blacklisted(db, is_api_booking=True),
        "bookingCutoffMinutes": get_booking_cutoff_minutes(db),
        "timeZone": _get_str(db, TIME_ZONE_KEY, "").strip() or settings.TIME_ZONE,
        "aggregatorSlotIdFormat": get_slot_id_format(db),
        "aggregatorMd5Key": _get_str(db, MD5_KEY, settings.AGGREGATOR_MD5_KEY),
        "aggregatorPrepayMd5Key": _get_str(db, PREPAY_MD5_KEY, settings.AGGREGATOR_PREPAY_MD5_KEY),
        "notificationEmail": get_notification_email(db),
    }


def set_setting(db: Session, key: str, value) -> None:
    """Upsert one setting; bools and ints go to int_value, everything else to str_value. Caller commits."""
    s = db.get(Setting, key)
    if not s:
        s = Setting(key=key, int_value=None, str_value=None)
        db.add(s)
    if key in BOOL_KEYS or key in INT_KEYS:
        s.int_value = int(value)
        s.str_value = None
    else:
        s.str_value = None if value is None else str(value)
        s.int_value = None


def next_legacy_id(db: Session) -> int:
    """
    Atomically take the next booking number.

    UPDATE ... SET int_value = int_value + 1 holds the row lock until the
    surrounding transaction ends, so concurrent callers serialize here.
    The unique index on bookings.legacy_id is the final guard.
    """
    res = db.execute(
        update(Setting)
        .where(Setting.key == LEGACY_SEQUENCE_KEY)
        .values(int_value=Setting.int_value + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        from app.models.booking import Booking
        current = db.execute(select(func.max(Booking.legacy_id))).scalar() or 0
        db.add(Setting(key=LEGACY_SEQUENCE_KEY, int_value=int(current) + 1, str_value=None))
        db.flush()
    return int(db.execute(select(Setting.int_value).where(Setting.key == LEGACY_SEQUENCE_KEY)).scalar_one())


def advance_legacy_sequence(db: Session, at_least: int) -> None:
    """Make sure future numbers are issued above `at_least` (used after imports)."""
    res = db.execute(
        update(Setting)
        .where(Setting.key == LEGACY_SEQUENCE_KEY, Setting.int_value < at_least)
        .values(int_value=at_least)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0 and db.execute(select(Setting.key).where(Setting.key == LEGACY_SEQUENCE_KEY)).first() is None:
        db.add(Setting(key=LEGACY_SEQUENCE_KEY, int_value=int(at_least), str_value=None))
        db.flush()
