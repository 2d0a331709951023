"""
Bulk import of bookings exported from the legacy system.

Each row is classified on its own: a bad or duplicate row is recorded as an
issue and the rest of the file still imports. Everything commits once.
"""
import csv
import io
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ParticipantsOutOfRange
from app.models.booking import Booking
from app.models.quest import Quest
from app.schemas.booking import BookingImportIssue, BookingImportResult
from app.services.booking_service import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_CONFIRMED
from app.services.pricing_service import (
    PAYMENT_AGGREGATOR,
    PAYMENT_CASH,
    PAYMENT_CERTIFICATE,
    extra_participants_count,
    resolve_pricing_quest,
    validate_participants,
)
from app.services.settings_service import advance_legacy_sequence, get_time_zone
from app.services.slot_service import get_or_create_slot

logger = logging.getLogger(__name__)

LEGACY_PAYMENT_CODES = {
    "1": PAYMENT_CASH,
    "2": PAYMENT_CERTIFICATE,
    "3": PAYMENT_AGGREGATOR,
}
# column type of ids, counts and prices
MAX_DB_INT = 2**31 - 1

# canonical column -> accepted header spellings (compared lower-cased)
COLUMN_ALIASES = {
    "id": ("id", "legacy_id", "legacyid", "номер", "№"),
    "quest": ("quest", "quest_slug", "slug", "квест"),
    "name": ("name", "customer_name", "client", "имя", "клиент"),
    "phone": ("phone", "customer_phone", "телефон"),
    "email": ("email", "e-mail", "customer_email", "почта"),
    "created": ("created", "created_at", "createdat", "дата создания", "создано"),
    "date": ("date", "booking_date", "дата", "дата игры"),
    "time": ("time", "booking_time", "время"),
    "players": ("players", "participants", "participants_count", "игроки", "количество игроков"),
    "price": ("price", "total", "total_price", "цена", "сумма"),
    "payment": ("payment", "payment_type", "оплата"),
    "status": ("status", "статус"),
    "comment": ("comment", "notes", "комментарий"),
}

CREATED_FORMATS = (
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
)
BOOKING_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
)
BOOKING_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y")
BOOKING_TIME_FORMATS = ("%H:%M:%S", "%H:%M")


def normalize_content(content: str) -> str:
    # pasted exports sometimes arrive with escaped newlines only
    if "\n" not in content and "\\n" in content:
        content = content.replace("\\n", "\n")
    return content.replace("\r\n", "\n").replace("\r", "\n")


def detect_delimiter(header_line: str) -> str:
    counts = {d: header_line.count(d) for d in ("\t", ";", ",")}
    best = max(counts, key=lambda d: counts[d])
    return best if counts[best] > 0 else ","


def map_status(raw: str | None) -> str:
    s = (raw or "").strip().lower()
    if s.startswith(("отмен", "cancel")):
        return STATUS_CANCELLED
    if s.startswith(("заверш", "выполнен", "проведен", "complete")):
        return STATUS_COMPLETED
    return STATUS_CONFIRMED


def map_payment(raw: str | None) -> tuple[str, str | None]:
    payment_type = LEGACY_PAYMENT_CODES.get((raw or "").strip(), PAYMENT_CASH)
    return payment_type, settings.AGGREGATOR_NAME if payment_type == PAYMENT_AGGREGATOR else None


def _parse(value: str, formats: tuple[str, ...]) -> datetime | None:
    value = (value or "").strip()
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def _parse_booking_datetime(date_value: str, time_value: str) -> datetime | None:
    date_value = (date_value or "").strip()
    time_value = (time_value or "").strip()
    if not time_value:
        # combined "2024-03-01 18:30" in the date column
        return _parse(date_value, BOOKING_DATETIME_FORMATS)
    day = _parse(date_value, BOOKING_DATE_FORMATS) or _parse(date_value, BOOKING_DATETIME_FORMATS)
    at = _parse(time_value, BOOKING_TIME_FORMATS)
    if not day or not at:
        return None
    return datetime.combine(day.date(), at.time())


def _parse_int(value: str | None) -> int | None:
    try:
        number = int((value or "").strip())
    except ValueError:
        return None
    return number if abs(number) <= MAX_DB_INT else None


def _parse_price(value: str | None) -> int:
    """Row price in whole units; unreadable, non-positive or out-of-range values give 0."""
    text = (value or "").strip().replace(" ", "").replace(",", ".")
    try:
        price = Decimal(text)
    except InvalidOperation:
        return 0
    if not price.is_finite() or price <= 0 or price > MAX_DB_INT:
        return 0
    return int(price.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _header_index(header: list[str]) -> dict[str, int]:
    index: dict[str, int] = {}
    for pos, title in enumerate(header):
        title = title.strip().lstrip("\ufeff").lower()
        for column, aliases in COLUMN_ALIASES.items():
            if column not in index and title in aliases:
                index[column] = pos
    return index


def import_bookings(db: Session, content: str) -> BookingImportResult:
    result = BookingImportResult()
    lines = normalize_content(content or "").split("\n")
    header_at = next((i for i, line in enumerate(lines) if line.strip()), None)
    if header_at is None:
        result.errors.append("File is empty")
        return result

    delimiter = detect_delimiter(lines[header_at])
    reader = csv.reader(io.StringIO("\n".join(lines[header_at:])), delimiter=delimiter, quotechar='"', doublequote=True)
    header = next(reader)
    columns = _header_index(header)
    if "id" not in columns:
        result.errors.append("Header has no Id column")
        return result

    quests = {q.slug.lower(): q for q in db.query(Quest).all() if q.slug}
    existing_ids = {lid for (lid,) in db.query(Booking.legacy_id).all()}
    seen_ids: set[int] = set()
    max_legacy_id = 0

    def skip(row_number: int, legacy_id: int | None, reason: str):
        result.skipped += 1
        result.skippedRows.append(BookingImportIssue(rowNumber=row_number, legacyId=legacy_id, reason=reason))
        result.errors.append(f"Row {row_number}: {reason}")

    tz = get_time_zone(db)
    for row in reader:
        # 1-based line in the original text
        row_number = header_at + reader.line_num
        if not row or (len(row) == 1 and not row[0].strip()):
            continue
        result.totalRows += 1
        if not any(cell.strip() for cell in row):
            skip(row_number, None, "empty row")
            continue

        def col(name: str) -> str:
            pos = columns.get(name)
            return row[pos].strip() if pos is not None and pos < len(row) else ""

        phone, email = col("phone"), col("email")
        if not phone and not email:
            skip(row_number, _parse_int(col("id")), "no phone or e-mail")
            continue
        legacy_id = _parse_int(col("id"))
        if legacy_id is None or legacy_id <= 0:
            skip(row_number, None, "invalid legacy id")
            continue
        if legacy_id in seen_ids or legacy_id in existing_ids:
            result.duplicates += 1
            result.duplicateRows.append(BookingImportIssue(rowNumber=row_number, legacyId=legacy_id, reason="duplicate"))
            continue
        seen_ids.add(legacy_id)

        quest = quests.get(col("quest").lower())
        if not quest:
            skip(row_number, legacy_id, f"unknown quest '{col('quest')}'")
            continue
        created = _parse(col("created"), CREATED_FORMATS)
        if not created:
            skip(row_number, legacy_id, "invalid creation date")
            continue
        starts_at = _parse_booking_datetime(col("date"), col("time"))
        if not starts_at:
            skip(row_number, legacy_id, "invalid booking date or time")
            continue

        players = _parse_int(col("players")) or max(1, quest.participants_min or 1)
        try:
            validate_participants(quest, players)
        except ParticipantsOutOfRange as e:
            skip(row_number, legacy_id, e.message)
            continue

        pricing_quest = resolve_pricing_quest(db, quest)
        price = _parse_price(col("price"))
        status = map_status(col("status"))
        slot_id = None
        if status != STATUS_CANCELLED:
            slot, _ = get_or_create_slot(db, pricing_quest.id, starts_at.date(), starts_at.time(), price if price > 0 else pricing_quest.price)
            if slot.is_booked or db.query(Booking.id).filter(Booking.slot_id == slot.id).first():
                skip(row_number, legacy_id, "slot already booked")
                continue
            slot.is_booked = True
            slot_id = slot.id

        payment_type, aggregator = map_payment(col("payment"))
        db.add(Booking(
            id=str(uuid.uuid4()),
            legacy_id=legacy_id,
            quest_id=quest.id,
            slot_id=slot_id,
            customer_name=col("name") or "-",
            customer_phone=phone,
            customer_email=email or None,
            booking_date=starts_at.date().isoformat(),
            booking_time=starts_at.strftime("%H:%M"),
            participants_count=players,
            extra_participants_count=extra_participants_count(pricing_quest, players),
            total_price=price if price > 0 else pricing_quest.price,
            payment_type=payment_type,
            status=status,
            notes=col("comment") or None,
            aggregator=aggregator,
            created_at=created.replace(tzinfo=tz).astimezone(timezone.utc),
            updated_at=datetime.now(timezone.utc),
        ))
        db.flush()
        max_legacy_id = max(max_legacy_id, legacy_id)
        result.imported += 1

    if max_legacy_id:
        advance_legacy_sequence(db, max_legacy_id)
    db.commit()

    result.processed = result.imported + result.skipped + result.duplicates
    logger.info(
        "Import finished: %s rows, %s imported, %s skipped, %s duplicates",
        result.totalRows, result.imported, result.skipped, result.duplicates,
    )
    return result
