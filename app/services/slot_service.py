import uuid
from datetime import date, datetime, time
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.slot import QuestSlot

DATE_FMT = "%Y-%m-%d"
TIME_FMT = "%H:%M"


def slot_datetime(date_str: str, start: str) -> datetime:
    """Naive local start of a slot (business time zone)."""
    return datetime.combine(
        datetime.strptime(date_str, DATE_FMT).date(),
        datetime.strptime(start, TIME_FMT).time(),
    )


def lock_slot(db: Session, slot_id: str) -> QuestSlot | None:
    # Row lock held until commit so two bookings cannot both see the slot as free
    return db.execute(
        select(QuestSlot).where(QuestSlot.id == slot_id).with_for_update()
    ).scalar_one_or_none()


def find_slot(db: Session, quest_id: str, day: date, at: time, lock: bool = False) -> QuestSlot | None:
    stmt = select(QuestSlot).where(
        QuestSlot.quest_id == quest_id,
        QuestSlot.date_str == day.strftime(DATE_FMT),
        QuestSlot.start == at.strftime(TIME_FMT),
    )
    if lock:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def get_or_create_slot(db: Session, quest_id: str, day: date, at: time, price: int) -> tuple[QuestSlot, bool]:
    """Get existing slot or create one (import path). Returns (slot, created)."""
    slot = find_slot(db, quest_id, day, at, lock=True)
    if slot:
        return slot, False
    slot = QuestSlot(
        id=str(uuid.uuid4()),
        quest_id=quest_id,
        date_str=day.strftime(DATE_FMT),
        start=at.strftime(TIME_FMT),
        price=price,
        is_booked=False,
    )
    db.add(slot)
    db.flush()
    return slot, True


def list_slots(db: Session, quest_id: str, from_date: date, to_date: date) -> list[QuestSlot]:
    return (
        db.query(QuestSlot)
        .filter(
            QuestSlot.quest_id == quest_id,
            QuestSlot.date_str >= from_date.strftime(DATE_FMT),
            QuestSlot.date_str <= to_date.strftime(DATE_FMT),
        )
        .order_by(QuestSlot.date_str.asc(), QuestSlot.start.asc())
        .all()
    )


def release_slot(db: Session, slot_id: str | None) -> None:
    if not slot_id:
        return
    slot = lock_slot(db, slot_id)
    if slot:
        slot.is_booked = False
