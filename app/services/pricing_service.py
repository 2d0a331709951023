"""
Booking price computation, shared by every booking channel.

    total = base + extra participants * extra price + extras
    certificate payment: total = extras (the game itself is prepaid)
    promo code: percent (rounded half away from zero) or fixed amount, capped at total
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import ParticipantsOutOfRange
from app.models.promo_code import PromoCode
from app.models.quest import Quest
from app.models.slot import QuestSlot

PAYMENT_CASH = "cash"
PAYMENT_CERTIFICATE = "certificate"
PAYMENT_AGGREGATOR = "aggregator"
PAYMENT_TYPES = (PAYMENT_CASH, PAYMENT_CERTIFICATE, PAYMENT_AGGREGATOR)

DISCOUNT_PERCENT = "percent"
DISCOUNT_AMOUNT = "amount"


@dataclass
class PriceBreakdown:
    base_price: int
    extra_participants_count: int
    extra_participants_total: int
    extras_total: int
    total_before_discount: int
    promo_code: str | None = None
    promo_discount_type: str | None = None
    promo_discount_value: int | None = None
    promo_discount_amount: int | None = None

    @property
    def total(self) -> int:
        return max(0, self.total_before_discount - (self.promo_discount_amount or 0))


def normalize_payment_type(value: str | None) -> str:
    v = (value or "").strip().lower()
    return v if v in PAYMENT_TYPES else PAYMENT_CASH


def resolve_pricing_quest(db: Session, quest: Quest) -> Quest:
    """A child quest is priced by its parent."""
    if quest.parent_quest_id:
        parent = db.get(Quest, quest.parent_quest_id)
        if parent:
            return parent
    return quest


def resolved_participants_max(quest: Quest) -> int:
    return max(quest.participants_max or 0, quest.standard_participants + max(0, quest.extra_participants_max or 0))


def validate_participants(quest: Quest, participants_count: int) -> None:
    upper = resolved_participants_max(quest)
    lower = quest.participants_min or 0
    if participants_count < lower or participants_count > upper:
        raise ParticipantsOutOfRange(f"Participants count must be between {lower} and {upper}")


def extra_participants_count(pricing_quest: Quest, participants_count: int) -> int:
    return max(0, participants_count - pricing_quest.standard_participants)


def percent_discount(total: int, percent: int) -> int:
    amount = Decimal(total) * Decimal(percent) / Decimal(100)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_discount(total: int, discount_type: str, discount_value: int) -> int:
    if discount_type == DISCOUNT_PERCENT:
        discount = percent_discount(total, discount_value)
    else:
        discount = min(discount_value, total)
    return max(0, min(discount, total))


def find_active_promo(db: Session, code: str | None, today: date) -> PromoCode | None:
    if not code or not code.strip():
        return None
    day = today.isoformat()
    return (
        db.query(PromoCode)
        .filter(
            func.lower(PromoCode.code) == code.strip().lower(),
            PromoCode.is_active == True,
            PromoCode.valid_from <= day,
        )
        .filter((PromoCode.valid_until == None) | (PromoCode.valid_until >= day))
        .order_by(PromoCode.created_at.desc())
        .first()
    )


def compute_price(
    pricing_quest: Quest,
    slot: QuestSlot | None,
    participants_count: int,
    extra_service_prices: list[int],
    payment_type: str,
    promo: PromoCode | None = None,
) -> PriceBreakdown:
    extra_count = extra_participants_count(pricing_quest, participants_count)
    extra_total = extra_count * max(0, pricing_quest.extra_participant_price or 0)
    extras_total = sum(int(p or 0) for p in extra_service_prices)
    base = slot.price if slot is not None else (pricing_quest.price or 0)

    if payment_type == PAYMENT_CERTIFICATE:
        total = extras_total
    else:
        total = base + extra_total + extras_total
    total = max(0, total)

    breakdown = PriceBreakdown(
        base_price=base,
        extra_participants_count=extra_count,
        extra_participants_total=extra_total,
        extras_total=extras_total,
        total_before_discount=total,
    )
    if promo is not None:
        breakdown.promo_code = promo.code
        breakdown.promo_discount_type = promo.discount_type
        breakdown.promo_discount_value = promo.discount_value
        breakdown.promo_discount_amount = compute_discount(total, promo.discount_type, promo.discount_value)
    return breakdown
