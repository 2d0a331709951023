import pytest

from app.core.errors import ParticipantsOutOfRange
from app.models.quest import Quest
from app.schemas.booking import BookingCreate
from app.services import booking_service
from app.services.pricing_service import (
    compute_discount,
    percent_discount,
    resolved_participants_max,
    validate_participants,
)


def _create(db, quest, slot, **kw):
    values = dict(questId=quest.id, slotId=slot.id, customerName="Ivan", customerPhone="89135550102", participantsCount=6)
    values.update(kw)
    return booking_service.create_booking(db, BookingCreate(**values))


def test_direct_booking_total(db, make_quest, make_slot, make_extra_service):
    quest = make_quest()
    slot = make_slot(quest, price=2000)
    extra = make_extra_service(quest, price=500)

    b = _create(db, quest, slot, extraServiceIds=[extra.id])

    assert b.extra_participants_count == 2
    assert b.total_price == 2000 + 2 * 300 + 500
    assert b.payment_type == "cash"
    assert b.status == "pending"


def test_certificate_payment_covers_the_game(db, make_quest, make_slot):
    quest = make_quest()
    slot = make_slot(quest, price=2000)

    b = _create(db, quest, slot, paymentType="certificate")

    assert b.total_price == 0


def test_certificate_payment_still_charges_extras(db, make_quest, make_slot):
    quest = make_quest()
    slot = make_slot(quest)

    b = _create(db, quest, slot, paymentType="certificate", extraServices=[{"title": "Cake", "price": 700}])

    assert b.total_price == 700


def test_percent_promo_is_snapshotted(db, make_quest, make_slot, make_extra_service, make_promo):
    quest = make_quest()
    slot = make_slot(quest, price=2000)
    extra = make_extra_service(quest, price=500)
    make_promo(code="WINTER10", discount_type="percent", discount_value=10)

    b = _create(db, quest, slot, extraServiceIds=[extra.id], promoCode="winter10")

    assert b.promo_code == "WINTER10"
    assert b.promo_discount_type == "percent"
    assert b.promo_discount_value == 10
    assert b.promo_discount_amount == 310
    assert b.total_price == 2790


def test_amount_promo_is_capped_at_total(db, make_quest, make_slot, make_promo):
    quest = make_quest(price=400)
    slot = make_slot(quest, price=400)
    make_promo(code="GIFT500", discount_type="amount", discount_value=500)

    b = _create(db, quest, slot, participantsCount=2, promoCode="GIFT500")

    assert b.promo_discount_amount == 400
    assert b.total_price == 0


def test_inactive_or_expired_promo_is_ignored(db, make_quest, make_slot, make_promo):
    quest = make_quest()
    slot = make_slot(quest, price=2000)
    make_promo(code="OLD", valid_until="2024-12-31")
    make_promo(code="OFF", is_active=False)

    b = _create(db, quest, slot, participantsCount=4, promoCode="OLD")
    assert b.promo_code is None
    assert b.total_price == 2000

    slot2 = make_slot(quest, start="16:00", price=2000)
    b2 = _create(db, quest, slot2, participantsCount=4, promoCode="off")
    assert b2.total_price == 2000


def test_child_quest_is_priced_by_parent(db, make_quest, make_slot):
    parent = make_quest(price=3000, extra_participant_price=500, standard_price_participants_max=3)
    child = make_quest(parent_quest_id=parent.id, price=1, extra_participant_price=1)
    slot = make_slot(child, price=3000)

    b = _create(db, child, slot, participantsCount=5)

    assert b.extra_participants_count == 2
    assert b.total_price == 3000 + 2 * 500


def test_percent_rounds_half_away_from_zero():
    assert percent_discount(25, 10) == 3
    assert percent_discount(3100, 10) == 310
    assert compute_discount(400, "amount", 500) == 400
    assert compute_discount(1000, "percent", 150) == 1000


def test_participant_range_uses_extra_capacity():
    quest = Quest(participants_min=2, participants_max=4, standard_price_participants_max=None, extra_participants_max=3)
    # default standard head-count is 4
    assert resolved_participants_max(quest) == 7
    validate_participants(quest, 7)
    with pytest.raises(ParticipantsOutOfRange):
        validate_participants(quest, 8)
    with pytest.raises(ParticipantsOutOfRange):
        validate_participants(quest, 1)
