"""
Reservation aggregator ("mir-kvestov") protocol.

The partner pulls a per-quest schedule feed and tariffs, pushes orders and
confirms prepayments. Field names, the slot id encoding, the cutoff rule and
the md5 signatures are the partner's contract and must stay as they are.
Response messages are shown to the partner's operators, hence Russian.
"""
import hashlib
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    BookingBlocked,
    BookingError,
    NotFound,
    ParticipantsOutOfRange,
    SignatureInvalid,
    SlotAlreadyBooked,
)
from app.models.quest import Quest
from app.models.slot import QuestSlot
from app.schemas.booking import BookingCreate
from app.services import booking_service
from app.services.pricing_service import resolved_participants_max
from app.services.settings_service import (
    SLOT_ID_FORMAT_NUMERIC,
    get_booking_cutoff_minutes,
    get_md5_keys,
    get_prepay_md5_keys,
    get_slot_id_format,
    local_now,
)
from app.services.slot_service import DATE_FMT, TIME_FMT, find_slot, list_slots, slot_datetime

logger = logging.getLogger(__name__)

MSG_BAD_REQUEST = "Некорректный запрос"
MSG_QUEST_NOT_FOUND = "Квест не найден"
MSG_BAD_DATE_TIME = "Некорректные дата или время"
MSG_SLOT_NOT_FOUND = "Слот не найден"
MSG_SLOT_TAKEN = "Указанное время занято"
MSG_BAD_MD5 = "Ошибка проверки md5"
MSG_REQUIRED_FIELDS = "Не заполнены обязательные поля"
MSG_PLAYERS = "Количество игроков должно быть от {} до {}"
MSG_BLOCKED = "Бронирование недоступно. Пожалуйста, свяжитесь с нами по телефону."
MSG_NOT_CREATED = "Не удалось создать бронирование"

NUMERIC_SLOT_ID_FMT = "%Y%m%d%H%M"
SCHEDULE_DEFAULT_DAYS = 13

# (db, quest_id, day) -> generate that day's slots if the calendar has not yet
SlotMaterializer = Callable[[Session, str, date], None]


@dataclass
class OrderRequest:
    first_name: Optional[str] = None
    family_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    comment: Optional[str] = None
    source: Optional[str] = None
    md5: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    price: Optional[int] = None
    unique_id: Optional[str] = None
    your_slot_id: Optional[str] = None
    players: Optional[int] = None
    tariff: Optional[str] = None


ORDER_TEXT_FIELDS = (
    "first_name", "family_name", "phone", "email", "comment", "source",
    "md5", "date", "time", "unique_id", "your_slot_id", "tariff",
)
ORDER_INT_FIELDS = ("price", "players")


def parse_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def build_order_request(data: dict) -> OrderRequest:
    """Build from form fields or a JSON object; JSON keys match case-insensitively."""
    lowered = {str(k).lower(): v for k, v in data.items()}
    kwargs = {}
    for name in ORDER_TEXT_FIELDS:
        value = lowered.get(name)
        kwargs[name] = None if value is None else str(value)
    for name in ORDER_INT_FIELDS:
        kwargs[name] = parse_int(lowered.get(name))
    return OrderRequest(**kwargs)


@dataclass(frozen=True)
class DecodedSlotId:
    """External slot id, decoded. kind is "identity" (slot_id set) or "datetime" (day/at set)."""
    kind: str
    slot_id: Optional[str] = None
    day: Optional[date] = None
    at: Optional[time] = None


def encode_slot_id(slot: QuestSlot, fmt: str) -> str:
    if fmt == SLOT_ID_FORMAT_NUMERIC:
        return slot_datetime(slot.date_str, slot.start).strftime(NUMERIC_SLOT_ID_FMT)
    return slot.id


def decode_slot_id(value: Optional[str]) -> Optional[DecodedSlotId]:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return DecodedSlotId(kind="identity", slot_id=str(uuid.UUID(value)))
    except ValueError:
        pass
    if len(value) == 12 and value.isdigit():
        try:
            dt = datetime.strptime(value, NUMERIC_SLOT_ID_FMT)
        except ValueError:
            return None
        return DecodedSlotId(kind="datetime", day=dt.date(), at=dt.time())
    return None


def parse_date_time(date_value: Optional[str], time_value: Optional[str]) -> Optional[tuple[date, time]]:
    if not (date_value or "").strip() or not (time_value or "").strip():
        return None
    try:
        day = datetime.strptime(date_value.strip(), DATE_FMT).date()
        at = datetime.strptime(time_value.strip(), TIME_FMT).time()
    except ValueError:
        return None
    return day, at


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def _matches_any(signature: Optional[str], keys: list[str], payload: Callable[[str], str]) -> bool:
    if not keys:
        return True
    if not signature:
        return False
    signature = signature.strip().lower()
    return any(md5_hex(payload(key)) == signature for key in keys)


def is_order_signature_valid(db: Session, req: OrderRequest) -> bool:
    return _matches_any(
        req.md5,
        get_md5_keys(db),
        lambda key: f"{req.first_name or ''}{req.family_name or ''}{req.phone or ''}{req.email or ''}{key}",
    )


def verify_order_signature(db: Session, req: OrderRequest) -> None:
    if not is_order_signature_valid(db, req):
        raise SignatureInvalid(MSG_BAD_MD5)


def _get_quest(db: Session, slug: str) -> Optional[Quest]:
    return db.query(Quest).filter(Quest.slug == slug).first()


def _cutoff_time(db: Session, now: Optional[datetime]) -> datetime:
    return local_now(db, now) + timedelta(minutes=get_booking_cutoff_minutes(db))


def get_schedule(
    db: Session,
    quest_slug: str,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> list[dict]:
    quest = _get_quest(db, quest_slug)
    if not quest:
        return []
    today = local_now(db, now).date()
    from_date = from_date or today
    to_date = to_date or from_date + timedelta(days=SCHEDULE_DEFAULT_DAYS)
    cutoff = _cutoff_time(db, now)
    fmt = get_slot_id_format(db)

    out = []
    for slot in list_slots(db, quest.id, from_date, to_date):
        if slot_datetime(slot.date_str, slot.start) <= cutoff:
            continue
        out.append({
            "date": slot.date_str,
            "time": slot.start,
            "is_free": not slot.is_booked,
            "price": slot.price,
            "discount_price": None,
            "your_slot_id": encode_slot_id(slot, fmt),
        })
    return out


def _resolve_slot(db: Session, quest_id: str, req: OrderRequest, day: date, at: time) -> Optional[QuestSlot]:
    decoded = decode_slot_id(req.your_slot_id)
    if decoded and decoded.kind == "identity":
        slot = db.get(QuestSlot, decoded.slot_id)
        if slot and slot.quest_id == quest_id:
            return slot
    elif decoded and decoded.kind == "datetime":
        slot = find_slot(db, quest_id, decoded.day, decoded.at)
        if slot:
            return slot
    return find_slot(db, quest_id, day, at)


def customer_name(req: OrderRequest) -> str:
    first = (req.first_name or "").strip()
    last = (req.family_name or "").strip()
    return f"{first} {last}".strip()


def build_notes(req: OrderRequest) -> Optional[str]:
    parts = []
    if (req.comment or "").strip():
        parts.append(f"Комментарий: {req.comment}")
    if (req.source or "").strip():
        parts.append(f"Источник: {req.source}")
    if (req.unique_id or "").strip():
        parts.append(f"Mir-kvestov unique_id: {req.unique_id}")
    if (req.your_slot_id or "").strip():
        parts.append(f"your_slot_id: {req.your_slot_id}")
    if (req.tariff or "").strip():
        parts.append(f"Тариф: {req.tariff}")
    if req.price is not None:
        parts.append(f"Цена от агрегатора: {req.price}")
    return ". ".join(parts) if parts else None


def create_order(
    db: Session,
    quest_slug: str,
    req: OrderRequest,
    materialize_slots: Optional[SlotMaterializer] = None,
    now: Optional[datetime] = None,
) -> tuple[bool, Optional[str]]:
    """Returns (success, message). Never raises for business failures."""
    quest = _get_quest(db, quest_slug)
    if not quest:
        return _reject(quest_slug, MSG_QUEST_NOT_FOUND)

    parsed = parse_date_time(req.date, req.time)
    if not parsed:
        return _reject(quest_slug, MSG_BAD_DATE_TIME)
    day, at = parsed

    slot = _resolve_slot(db, quest.id, req, day, at)
    if not slot and materialize_slots is not None:
        materialize_slots(db, quest.id, day)
        slot = _resolve_slot(db, quest.id, req, day, at)
    if not slot:
        return _reject(quest_slug, MSG_SLOT_NOT_FOUND)
    if slot.is_booked:
        return _reject(quest_slug, MSG_SLOT_TAKEN)
    if slot_datetime(slot.date_str, slot.start) <= _cutoff_time(db, now):
        return _reject(quest_slug, MSG_SLOT_TAKEN)

    try:
        verify_order_signature(db, req)
    except SignatureInvalid as e:
        return _reject(quest_slug, e.message)

    name = customer_name(req)
    if not name or not (req.phone or "").strip():
        return _reject(quest_slug, MSG_REQUIRED_FIELDS)

    body = BookingCreate(
        questId=quest.id,
        slotId=slot.id,
        customerName=name,
        customerPhone=req.phone or "",
        customerEmail=req.email or None,
        participantsCount=req.players if req.players is not None else max(1, quest.participants_min or 0),
        notes=build_notes(req),
        aggregator=settings.AGGREGATOR_NAME,
        aggregatorUniqueId=(req.unique_id or "").strip() or None,
    )
    try:
        booking_service.create_booking(db, body, is_admin=False, now=now)
    except SlotAlreadyBooked:
        return _reject(quest_slug, MSG_SLOT_TAKEN)
    except ParticipantsOutOfRange:
        return _reject(quest_slug, MSG_PLAYERS.format(quest.participants_min or 0, resolved_participants_max(quest)))
    except BookingBlocked:
        return _reject(quest_slug, MSG_BLOCKED)
    except NotFound:
        return _reject(quest_slug, MSG_SLOT_NOT_FOUND)
    except BookingError as e:
        # partner operators only read Russian
        logger.warning("Aggregator order for %s failed: %s", quest_slug, e.message)
        return _reject(quest_slug, MSG_NOT_CREATED)
    return True, None


def _reject(quest_slug: str, message: str) -> tuple[bool, str]:
    logger.info("Aggregator order for %s rejected: %s", quest_slug, message)
    return False, message


def get_tariffs(db: Session, quest_slug: str, day: date, at: time) -> dict[str, int]:
    quest = _get_quest(db, quest_slug)
    if not quest:
        return {}
    slot = find_slot(db, quest.id, day, at)
    price = slot.price if slot else quest.price
    return {f"Базовая цена: {price} руб.": price}


def check_prepay(db: Session, quest_slug: str, md5: Optional[str], unique_id: Optional[str], prepay: Optional[int]) -> bool:
    if not _get_quest(db, quest_slug):
        return False
    return _matches_any(
        md5,
        get_prepay_md5_keys(db),
        lambda key: f"{key}{unique_id or ''}{'' if prepay is None else prepay}",
    )
