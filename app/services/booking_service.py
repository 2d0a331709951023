import uuid
import logging
from datetime import datetime, timezone
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    BookingBlocked,
    BookingNotFound,
    DuplicateLegacyId,
    QuestNotFound,
    SlotAlreadyBooked,
    SlotNotFound,
    ValidationFailed,
)
from app.models.blacklist_entry import BlacklistEntry
from app.models.booking import Booking, BookingExtraService
from app.models.quest import Quest
from app.models.quest_extra_service import QuestExtraService
from app.models.slot import QuestSlot
from app.schemas.booking import BookingCreate, BookingUpdate
from app.services import notification_service
from app.services.blacklist_service import find_matches, is_booking_blocked
from app.services.pricing_service import (
    PAYMENT_AGGREGATOR,
    compute_discount,
    compute_price,
    find_active_promo,
    normalize_payment_type,
    resolve_pricing_quest,
    validate_participants,
)
from app.services.settings_service import local_now, next_legacy_id
from app.services.slot_service import lock_slot, release_slot

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
CANCELLED_STATUSES = ("cancelled", "canceled", "отменено")


def normalize_status(status: str | None) -> str:
    if not status or not status.strip():
        return STATUS_PENDING
    s = status.strip().lower()
    return STATUS_CANCELLED if s in CANCELLED_STATUSES else s


def is_cancelled(status: str | None) -> bool:
    return (status or "").strip().lower() in CANCELLED_STATUSES


def _validate_date(value: str | None) -> str:
    try:
        return datetime.strptime((value or "").strip(), "%Y-%m-%d").date().isoformat()
    except ValueError:
        raise ValidationFailed("Booking date must be YYYY-MM-DD")


def _raise_for_integrity(e: IntegrityError):
    msg = str(getattr(e, "orig", e)).lower()
    if "legacy_id" in msg:
        raise DuplicateLegacyId() from e
    if "slot_id" in msg:
        raise SlotAlreadyBooked() from e
    raise e


def create_booking(db: Session, body: BookingCreate, is_admin: bool = False, now: datetime | None = None) -> Booking:
    try:
        # 1. slot, row-locked for the whole transaction
        slot = None
        if body.slotId:
            slot = lock_slot(db, body.slotId)
            if not slot:
                raise SlotNotFound()
            if slot.is_booked:
                raise SlotAlreadyBooked()

        # 2. quest
        quest_id = body.questId or (slot.quest_id if slot else None)
        quest = db.get(Quest, quest_id) if quest_id else None
        if not quest:
            raise QuestNotFound()

        # 3. blacklist
        is_api = bool(body.aggregator or body.aggregatorUniqueId)
        if not is_admin and is_booking_blocked(db, body.customerPhone, body.customerEmail, is_api):
            raise BookingBlocked()

        # 4. participants
        validate_participants(quest, body.participantsCount)

        # 5-6. price and promo
        pricing_quest = resolve_pricing_quest(db, quest)
        line_items = _collect_line_items(db, quest, body)
        payment_type = normalize_payment_type(body.paymentType or (PAYMENT_AGGREGATOR if is_api else None))
        promo = find_active_promo(db, body.promoCode, local_now(db, now).date())
        price = compute_price(pricing_quest, slot, body.participantsCount, [p for _, _, p in line_items], payment_type, promo)

        booking = Booking(
            id=str(uuid.uuid4()),
            legacy_id=next_legacy_id(db),
            quest_id=quest.id,
            slot_id=slot.id if slot else None,
            customer_name=body.customerName.strip(),
            customer_phone=(body.customerPhone or "").strip(),
            customer_email=(body.customerEmail or "").strip() or None,
            booking_date=slot.date_str if slot else _validate_date(body.bookingDate),
            booking_time=slot.start if slot else None,
            participants_count=body.participantsCount,
            extra_participants_count=price.extra_participants_count,
            total_price=price.total,
            payment_type=payment_type,
            promo_code=price.promo_code,
            promo_discount_type=price.promo_discount_type,
            promo_discount_value=price.promo_discount_value,
            promo_discount_amount=price.promo_discount_amount,
            status=STATUS_PENDING,
            notes=body.notes,
            aggregator=body.aggregator or None,
            aggregator_unique_id=body.aggregatorUniqueId or None,
        )
        db.add(booking)
        for catalog_id, title, item_price in line_items:
            db.add(BookingExtraService(
                id=str(uuid.uuid4()),
                booking_id=booking.id,
                quest_extra_service_id=catalog_id,
                title=title,
                price=item_price,
            ))
        if slot:
            slot.is_booked = True
        db.commit()
    except IntegrityError as e:
        db.rollback()
        _raise_for_integrity(e)
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info("Booking %s (#%s) created for quest %s, total %s", booking.id, booking.legacy_id, booking.quest_id, booking.total_price)
    notification_service.dispatch_booking_created(booking.id)
    return booking


def _collect_line_items(db: Session, quest: Quest, body: BookingCreate) -> list[tuple[str | None, str, int]]:
    items: list[tuple[str | None, str, int]] = []
    if body.extraServiceIds:
        catalog = {
            s.id: s
            for s in db.query(QuestExtraService).filter(QuestExtraService.id.in_(body.extraServiceIds)).all()
        }
        allowed_quests = {quest.id, quest.parent_quest_id}
        for sid in body.extraServiceIds:
            s = catalog.get(sid)
            if not s or s.quest_id not in allowed_quests:
                raise ValidationFailed("Unknown extra service selected")
            items.append((s.id, s.title, max(0, s.price)))
    for x in body.extraServices:
        items.append((x.id, x.title, max(0, x.price)))
    return items


def _recompute(db: Session, b: Booking, discount_override: tuple[str, int] | None, promo_changed: bool, now: datetime | None) -> None:
    quest = db.get(Quest, b.quest_id) if b.quest_id else None
    if not quest:
        return
    slot = db.get(QuestSlot, b.slot_id) if b.slot_id else None
    pricing_quest = resolve_pricing_quest(db, quest)
    extras = [x.price for x in db.query(BookingExtraService).filter(BookingExtraService.booking_id == b.id).all()]
    price = compute_price(pricing_quest, slot, b.participants_count, extras, b.payment_type)
    b.extra_participants_count = price.extra_participants_count

    # discount source: explicit override > freshly looked-up code > existing snapshot
    discount = None
    if discount_override is not None:
        discount = discount_override
    elif promo_changed:
        promo = find_active_promo(db, b.promo_code, local_now(db, now).date())
        if promo:
            b.promo_code = promo.code
            discount = (promo.discount_type, promo.discount_value)
    elif b.promo_discount_type and b.promo_discount_value is not None:
        discount = (b.promo_discount_type, b.promo_discount_value)

    if discount is None:
        if promo_changed:
            b.promo_code = None
        b.promo_discount_type = None
        b.promo_discount_value = None
        b.promo_discount_amount = None
        b.total_price = price.total_before_discount
        return
    b.promo_discount_type, b.promo_discount_value = discount
    b.promo_discount_amount = compute_discount(price.total_before_discount, discount[0], discount[1])
    b.total_price = max(0, price.total_before_discount - b.promo_discount_amount)


def update_booking(db: Session, booking_id: str, body: BookingUpdate, now: datetime | None = None) -> Booking:
    fields = body.model_fields_set
    try:
        b = db.query(Booking).filter(Booking.id == booking_id).with_for_update().one_or_none()
        if not b:
            raise BookingNotFound()

        needs_recompute = False
        if "questId" in fields and body.questId != b.quest_id:
            if body.questId and not db.get(Quest, body.questId):
                raise QuestNotFound()
            b.quest_id = body.questId
            needs_recompute = True

        if "slotId" in fields and body.slotId != b.slot_id:
            _rebind_slot(db, b, body.slotId)
            needs_recompute = True

        if "customerName" in fields and body.customerName is not None:
            b.customer_name = body.customerName.strip()
        if "customerPhone" in fields:
            b.customer_phone = (body.customerPhone or "").strip()
        if "customerEmail" in fields:
            b.customer_email = (body.customerEmail or "").strip() or None
        if "notes" in fields:
            b.notes = body.notes
        if "aggregator" in fields:
            b.aggregator = body.aggregator or None
        if "bookingDate" in fields and body.bookingDate and not b.slot_id:
            b.booking_date = _validate_date(body.bookingDate)

        if "participantsCount" in fields and body.participantsCount is not None:
            quest = db.get(Quest, b.quest_id) if b.quest_id else None
            if quest:
                validate_participants(quest, body.participantsCount)
            b.participants_count = body.participantsCount
            needs_recompute = True
        if "paymentType" in fields:
            b.payment_type = normalize_payment_type(body.paymentType)
            needs_recompute = True

        promo_changed = False
        if "promoCode" in fields:
            b.promo_code = (body.promoCode or "").strip() or None
            promo_changed = True
            needs_recompute = True
        discount_override = None
        if "promoDiscountType" in fields or "promoDiscountValue" in fields:
            dtype = body.promoDiscountType or b.promo_discount_type
            dvalue = body.promoDiscountValue if body.promoDiscountValue is not None else b.promo_discount_value
            if dtype and dvalue is not None:
                if dtype not in ("percent", "amount") or dvalue < 0:
                    raise ValidationFailed("Promo discount must be a non-negative percent or amount")
                discount_override = (dtype, dvalue)
            needs_recompute = True

        if "extraServices" in fields:
            db.query(BookingExtraService).filter(BookingExtraService.booking_id == b.id).delete(synchronize_session=False)
            for x in body.extraServices or []:
                db.add(BookingExtraService(
                    id=str(uuid.uuid4()),
                    booking_id=b.id,
                    quest_extra_service_id=x.id,
                    title=x.title,
                    price=max(0, x.price),
                ))
            db.flush()
            needs_recompute = True

        if needs_recompute:
            _recompute(db, b, discount_override, promo_changed, now)
        if "totalPrice" in fields and body.totalPrice is not None:
            if body.totalPrice < 0:
                raise ValidationFailed("Total price cannot be negative")
            b.total_price = body.totalPrice

        if "status" in fields and body.status is not None:
            new_status = normalize_status(body.status)
            if new_status == STATUS_CANCELLED and not is_cancelled(b.status):
                # free the slot for rebooking; the time stays on the booking
                release_slot(db, b.slot_id)
                b.slot_id = None
            b.status = new_status

        b.updated_at = datetime.now(timezone.utc)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        _raise_for_integrity(e)
    except Exception:
        db.rollback()
        raise
    db.refresh(b)
    logger.info("Booking %s updated (%s)", b.id, ", ".join(sorted(fields)))
    return b


def _rebind_slot(db: Session, b: Booking, slot_id: str | None) -> None:
    new_slot = None
    if slot_id:
        new_slot = lock_slot(db, slot_id)
        if not new_slot:
            raise SlotNotFound()
        if new_slot.is_booked:
            raise SlotAlreadyBooked()
    release_slot(db, b.slot_id)
    b.slot_id = None
    db.flush()
    if new_slot:
        if not is_cancelled(b.status):
            new_slot.is_booked = True
            b.slot_id = new_slot.id
        b.booking_date = new_slot.date_str
        b.booking_time = new_slot.start
        if not b.quest_id:
            b.quest_id = new_slot.quest_id


def delete_booking(db: Session, booking_id: str) -> None:
    try:
        b = db.query(Booking).filter(Booking.id == booking_id).with_for_update().one_or_none()
        if not b:
            raise BookingNotFound()
        release_slot(db, b.slot_id)
        db.query(BookingExtraService).filter(BookingExtraService.booking_id == b.id).delete(synchronize_session=False)
        db.delete(b)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Booking %s deleted", booking_id)


def get_booking(db: Session, booking_id: str) -> Booking:
    b = db.get(Booking, booking_id)
    if not b:
        raise BookingNotFound()
    return b


def booking_to_dict(db: Session, b: Booking, blacklist=None, extras: list[BookingExtraService] | None = None) -> dict:
    if extras is None:
        extras = db.query(BookingExtraService).filter(BookingExtraService.booking_id == b.id).order_by(BookingExtraService.created_at.asc()).all()
    return {
        "id": b.id,
        "legacyId": b.legacy_id,
        "questId": b.quest_id,
        "slotId": b.slot_id,
        "customerName": b.customer_name,
        "customerPhone": b.customer_phone,
        "customerEmail": b.customer_email,
        "bookingDate": b.booking_date,
        "bookingTime": b.booking_time,
        "participantsCount": b.participants_count,
        "extraParticipantsCount": b.extra_participants_count,
        "totalPrice": b.total_price,
        "paymentType": b.payment_type,
        "promoCode": b.promo_code,
        "promoDiscountType": b.promo_discount_type,
        "promoDiscountValue": b.promo_discount_value,
        "promoDiscountAmount": b.promo_discount_amount,
        "status": b.status,
        "notes": b.notes,
        "aggregator": b.aggregator,
        "aggregatorUniqueId": b.aggregator_unique_id,
        "extraServices": [{"id": x.id, "title": x.title, "price": x.price} for x in extras],
        "blacklistMatches": find_matches(db, b.customer_phone, b.customer_email, entries=blacklist),
        "createdAt": b.created_at.isoformat() if b.created_at else "",
        "updatedAt": b.updated_at.isoformat() if b.updated_at else "",
    }


NO_VALUE_FILTER = "__none__"

SORT_FIELDS = {
    "status": lambda b, ctx: b.status,
    "date": lambda b, ctx: b.booking_date,
    "time": lambda b, ctx: b.booking_time,
    "createdAt": lambda b, ctx: b.created_at,
    "questTitle": lambda b, ctx: ctx["quests"][b.quest_id].title if b.quest_id in ctx["quests"] else None,
    "questPrice": lambda b, ctx: ctx["pricing"][b.quest_id].price if b.quest_id in ctx["pricing"] else None,
    "participants": lambda b, ctx: b.participants_count,
    "extraParticipantPrice": lambda b, ctx: ctx["pricing"][b.quest_id].extra_participant_price if b.quest_id in ctx["pricing"] else None,
    "extraServicesTotal": lambda b, ctx: sum(x.price for x in ctx["extras"].get(b.id, [])),
    "aggregator": lambda b, ctx: b.aggregator,
    "promoCode": lambda b, ctx: b.promo_code,
    "totalPrice": lambda b, ctx: b.total_price,
    "customerName": lambda b, ctx: b.customer_name,
    "notes": lambda b, ctx: b.notes,
}
DEFAULT_SORT = [("createdAt", "desc"), ("date", "asc"), ("time", "asc")]


def parse_sort(sort: str | None) -> list[tuple[str, str]]:
    """'totalPrice:desc,date' -> [("totalPrice", "desc"), ("date", "asc")]; unknown fields are ignored."""
    out = []
    for part in (sort or "").split(","):
        field, _, direction = part.strip().partition(":")
        field = field.strip()
        if field not in SORT_FIELDS:
            continue
        direction = direction.strip().lower()
        out.append((field, "desc" if direction == "desc" else "asc"))
    return out or list(DEFAULT_SORT)


def _sort_value(value):
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, datetime) and value.tzinfo is None:
        # sqlite hands back naive datetimes
        return value.replace(tzinfo=timezone.utc)
    return value


def _sort_bookings(bookings: list[Booking], keys: list[tuple[str, str]], ctx: dict) -> list[Booking]:
    # stable sort, least significant key first; missing values go last
    result = list(bookings)
    for field, direction in reversed(keys):
        getter = SORT_FIELDS[field]
        present = [b for b in result if getter(b, ctx) is not None]
        missing = [b for b in result if getter(b, ctx) is None]
        present.sort(key=lambda b: _sort_value(getter(b, ctx)), reverse=direction == "desc")
        result = present + missing
    return result


def list_bookings(
    db: Session,
    status: str | None = None,
    quest_id: str | None = None,
    aggregator: str | None = None,
    promo_code: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    sort: str | None = None,
) -> list[dict]:
    q = db.query(Booking)
    if status:
        wanted = normalize_status(status)
        q = q.filter(Booking.status.in_(CANCELLED_STATUSES) if wanted == STATUS_CANCELLED else Booking.status == wanted)
    if quest_id:
        q = q.filter(Booking.quest_id == quest_id)
    if aggregator == NO_VALUE_FILTER:
        q = q.filter((Booking.aggregator == None) | (Booking.aggregator == ""))
    elif aggregator:
        q = q.filter(Booking.aggregator == aggregator)
    if promo_code == NO_VALUE_FILTER:
        q = q.filter((Booking.promo_code == None) | (Booking.promo_code == ""))
    elif promo_code:
        q = q.filter(func.lower(Booking.promo_code) == promo_code.strip().lower())
    if date_from:
        q = q.filter(Booking.booking_date >= date_from)
    if date_to:
        q = q.filter(Booking.booking_date <= date_to)
    bookings = q.all()

    quest_ids = {b.quest_id for b in bookings if b.quest_id}
    quests = {x.id: x for x in db.query(Quest).filter(Quest.id.in_(quest_ids)).all()} if quest_ids else {}
    pricing = {qid: resolve_pricing_quest(db, quest) for qid, quest in quests.items()}
    extras: dict[str, list[BookingExtraService]] = {}
    booking_ids = [b.id for b in bookings]
    if booking_ids:
        rows = (
            db.query(BookingExtraService)
            .filter(BookingExtraService.booking_id.in_(booking_ids))
            .order_by(BookingExtraService.created_at.asc())
            .all()
        )
        for x in rows:
            extras.setdefault(x.booking_id, []).append(x)

    ctx = {"quests": quests, "pricing": pricing, "extras": extras}
    bookings = _sort_bookings(bookings, parse_sort(sort), ctx)
    blacklist = db.query(BlacklistEntry).all()
    return [booking_to_dict(db, b, blacklist=blacklist, extras=extras.get(b.id, [])) for b in bookings]


def get_booking_filters_meta(db: Session) -> dict:
    status_by_quest: dict[str, dict[str, int]] = {}
    quest_by_status: dict[str, dict[str, int]] = {}
    rows = db.query(Booking.quest_id, Booking.status, func.count(Booking.id)).group_by(Booking.quest_id, Booking.status).all()
    for quest_id, status, count in rows:
        qkey = quest_id or NO_VALUE_FILTER
        skey = normalize_status(status)
        per_quest = status_by_quest.setdefault(qkey, {})
        per_quest[skey] = per_quest.get(skey, 0) + count
        per_status = quest_by_status.setdefault(skey, {})
        per_status[qkey] = per_status.get(qkey, 0) + count

    aggregators = sorted({a for (a,) in db.query(Booking.aggregator).distinct().all() if a})
    promo_codes = sorted({p.upper() for (p,) in db.query(Booking.promo_code).distinct().all() if p})
    return {
        "statusCountsByQuest": status_by_quest,
        "questCountsByStatus": quest_by_status,
        "aggregatorOptions": aggregators,
        "promoCodeOptions": promo_codes,
    }
