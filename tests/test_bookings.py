import pytest

from app.core.config import settings
from app.core.errors import SlotAlreadyBooked
from app.models.booking import Booking, BookingExtraService
from app.models.slot import QuestSlot
from app.schemas.booking import BookingCreate, BookingUpdate
from app.services import blacklist_service, booking_service, notification_service
from app.services.settings_service import BLOCK_SITE_KEY, advance_legacy_sequence, set_setting


def _payload(quest, slot=None, **kw):
    body = {
        "questId": quest.id,
        "customerName": "Ivan Petrov",
        "customerPhone": "+7 913 555 01 02",
        "customerEmail": "ivan@example.com",
        "participantsCount": 4,
    }
    if slot is not None:
        body["slotId"] = slot.id
    body.update(kw)
    return body


def test_public_booking_claims_the_slot(client, db, make_quest, make_slot):
    quest = make_quest()
    slot = make_slot(quest)

    r = client.post("/api/v1/public/bookings", json=_payload(quest, slot))

    assert r.status_code == 200
    data = r.json()
    assert data["legacyId"] == 1
    assert data["status"] == "pending"
    assert data["bookingDate"] == "2025-01-15"
    assert data["bookingTime"] == "14:00"
    assert data["totalPrice"] == 2000
    assert data["aggregator"] is None
    db.refresh(slot)
    assert slot.is_booked is True


def test_second_booking_for_same_slot_conflicts(client, make_quest, make_slot):
    quest = make_quest()
    slot = make_slot(quest)

    assert client.post("/api/v1/public/bookings", json=_payload(quest, slot)).status_code == 200
    r = client.post("/api/v1/public/bookings", json=_payload(quest, slot, customerName="Olga"))

    assert r.status_code == 409
    assert r.json()["detail"] == "The selected time is already booked"


def test_unique_slot_binding_wins_when_flag_is_stale(db, make_quest, make_slot):
    quest = make_quest()
    slot = make_slot(quest)
    body = BookingCreate(**_payload(quest, slot))
    booking_service.create_booking(db, body)

    # a racing writer that read the slot before the flag flipped
    slot.is_booked = False
    db.commit()

    with pytest.raises(SlotAlreadyBooked):
        booking_service.create_booking(db, body)
    assert db.query(Booking).count() == 1


def test_missing_slot_and_quest(client, make_quest):
    quest = make_quest()
    r = client.post("/api/v1/public/bookings", json=_payload(quest, slotId="nope"))
    assert r.status_code == 404

    r = client.post("/api/v1/public/bookings", json=_payload(quest, questId="nope", bookingDate="2025-01-15"))
    assert r.status_code == 404
    assert r.json()["detail"] == "Quest is not specified or does not exist"


def test_booking_without_slot_needs_a_date(client, make_quest):
    quest = make_quest()
    r = client.post("/api/v1/public/bookings", json=_payload(quest, bookingDate="15.01.2025"))
    assert r.status_code == 400

    r = client.post("/api/v1/public/bookings", json=_payload(quest, bookingDate="2025-01-15"))
    assert r.status_code == 200
    assert r.json()["slotId"] is None
    assert r.json()["totalPrice"] == 2000


def test_participants_out_of_range(client, make_quest, make_slot):
    quest = make_quest()
    slot = make_slot(quest)
    r = client.post("/api/v1/public/bookings", json=_payload(quest, slot, participantsCount=9))
    assert r.status_code == 400
    assert "between 2 and 8" in r.json()["detail"]


def test_blacklisted_customer_is_blocked_on_site_but_not_by_admin(client, db, admin_headers, make_quest, make_slot):
    quest = make_quest()
    slot = make_slot(quest)
    entry = blacklist_service.create_entry(db, "Troublemaker", ["89135550102"], [], "no-show")
    set_setting(db, BLOCK_SITE_KEY, True)
    db.commit()

    r = client.post("/api/v1/public/bookings", json=_payload(quest, slot))
    assert r.status_code == 403
    assert "Troublemaker" not in r.text

    r = client.post("/api/v1/admin/bookings", json=_payload(quest, slot), headers=admin_headers)
    assert r.status_code == 200
    matches = r.json()["blacklistMatches"]
    assert [m["id"] for m in matches] == [entry.id]
    assert matches[0]["matchedPhones"] == ["79135550102"]


def test_legacy_ids_continue_after_import(db, make_quest, make_slot):
    quest = make_quest()
    first = booking_service.create_booking(db, BookingCreate(**_payload(quest, make_slot(quest, start="10:00"))))
    advance_legacy_sequence(db, 500)
    db.commit()
    second = booking_service.create_booking(db, BookingCreate(**_payload(quest, make_slot(quest, start="12:00"))))

    assert first.legacy_id == 1
    assert second.legacy_id == 501


def test_notification_is_dispatched_after_commit(db, make_quest, make_slot, monkeypatch):
    calls = []
    monkeypatch.setattr(notification_service, "dispatch_booking_created", lambda booking_id: calls.append(booking_id))
    quest = make_quest()

    b = booking_service.create_booking(db, BookingCreate(**_payload(quest, make_slot(quest))))

    assert calls == [b.id]


def test_broker_failure_does_not_fail_the_booking(db, make_quest, make_slot, monkeypatch):
    from app.tasks import jobs

    def boom(*args, **kwargs):
        raise ConnectionError("broker down")

    monkeypatch.setattr(settings, "NOTIFICATIONS_ENABLED", True)
    monkeypatch.setattr(jobs.send_booking_notification, "delay", boom)
    quest = make_quest()

    b = booking_service.create_booking(db, BookingCreate(**_payload(quest, make_slot(quest))))

    assert db.get(Booking, b.id) is not None


def test_update_recomputes_and_honours_total_override(client, db, admin_headers, make_quest, make_slot):
    quest = make_quest()
    slot = make_slot(quest)
    booking_id = client.post("/api/v1/public/bookings", json=_payload(quest, slot)).json()["id"]

    r = client.patch(f"/api/v1/admin/bookings/{booking_id}", json={"participantsCount": 5}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["extraParticipantsCount"] == 1
    assert r.json()["totalPrice"] == 2300

    r = client.patch(
        f"/api/v1/admin/bookings/{booking_id}",
        json={"extraServices": [{"title": "Cake", "price": 700}], "totalPrice": 1000},
        headers=admin_headers,
    )
    assert r.json()["totalPrice"] == 1000
    assert [x["title"] for x in r.json()["extraServices"]] == ["Cake"]

    # fields absent from the body are left alone
    r = client.patch(f"/api/v1/admin/bookings/{booking_id}", json={"notes": "VIP"}, headers=admin_headers)
    assert r.json()["totalPrice"] == 1000
    assert r.json()["participantsCount"] == 5

    r = client.patch(f"/api/v1/admin/bookings/{booking_id}", json={"participantsCount": 20}, headers=admin_headers)
    assert r.status_code == 400


def test_update_promo_code_applies_and_clears_discount(db, make_quest, make_slot, make_promo):
    quest = make_quest()
    make_promo(code="WINTER10", discount_type="percent", discount_value=10)
    b = booking_service.create_booking(db, BookingCreate(**_payload(quest, make_slot(quest))))

    b = booking_service.update_booking(db, b.id, BookingUpdate(promoCode="winter10"))
    assert b.promo_discount_amount == 200
    assert b.total_price == 1800

    b = booking_service.update_booking(db, b.id, BookingUpdate(promoDiscountType="amount", promoDiscountValue=500))
    assert b.total_price == 1500

    b = booking_service.update_booking(db, b.id, BookingUpdate(promoCode=None))
    assert b.promo_code is None
    assert b.promo_discount_amount is None
    assert b.total_price == 2000


def test_cancel_releases_slot_and_keeps_time(client, db, admin_headers, make_quest, make_slot):
    quest = make_quest()
    slot = make_slot(quest)
    booking_id = client.post("/api/v1/public/bookings", json=_payload(quest, slot)).json()["id"]

    r = client.patch(f"/api/v1/admin/bookings/{booking_id}", json={"status": "Canceled"}, headers=admin_headers)

    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    assert r.json()["slotId"] is None
    assert r.json()["bookingTime"] == "14:00"
    db.refresh(slot)
    assert slot.is_booked is False

    # the slot can be sold again
    assert client.post("/api/v1/public/bookings", json=_payload(quest, slot, customerName="Olga")).status_code == 200


def test_move_booking_to_another_slot(db, make_quest, make_slot):
    quest = make_quest()
    old_slot = make_slot(quest, start="10:00", price=2000)
    new_slot = make_slot(quest, start="20:00", price=2500)
    b = booking_service.create_booking(db, BookingCreate(**_payload(quest, old_slot)))

    b = booking_service.update_booking(db, b.id, BookingUpdate(slotId=new_slot.id))

    assert b.slot_id == new_slot.id
    assert b.booking_time == "20:00"
    assert b.total_price == 2500
    assert db.get(QuestSlot, old_slot.id).is_booked is False
    assert db.get(QuestSlot, new_slot.id).is_booked is True


def test_delete_releases_slot(client, db, admin_headers, make_quest, make_slot, make_extra_service):
    quest = make_quest()
    slot = make_slot(quest)
    extra = make_extra_service(quest)
    booking_id = client.post("/api/v1/public/bookings", json=_payload(quest, slot, extraServiceIds=[extra.id])).json()["id"]

    assert client.delete(f"/api/v1/admin/bookings/{booking_id}", headers=admin_headers).status_code == 200

    db.refresh(slot)
    assert slot.is_booked is False
    assert db.query(BookingExtraService).count() == 0
    assert client.get(f"/api/v1/admin/bookings/{booking_id}", headers=admin_headers).status_code == 404
    assert client.delete(f"/api/v1/admin/bookings/{booking_id}", headers=admin_headers).status_code == 404


def test_list_filters_and_sort(client, db, admin_headers, make_quest, make_slot, make_promo):
    quest = make_quest(title="Alpha")
    other = make_quest(title="Bravo", price=3000)
    make_promo(code="WINTER10")
    cheap = booking_service.create_booking(db, BookingCreate(**_payload(quest, make_slot(quest, start="10:00"), promoCode="WINTER10")))
    pricey = booking_service.create_booking(db, BookingCreate(**_payload(other, make_slot(other, start="12:00"))))
    partner = booking_service.create_booking(
        db, BookingCreate(**_payload(quest, make_slot(quest, start="18:00"), aggregator="mir-kvestov"))
    )

    r = client.get("/api/v1/admin/bookings?sort=totalPrice:desc", headers=admin_headers)
    assert [b["id"] for b in r.json()][0] == pricey.id
    assert r.json()[-1]["id"] == cheap.id

    r = client.get("/api/v1/admin/bookings?aggregator=__none__", headers=admin_headers)
    assert {b["id"] for b in r.json()} == {cheap.id, pricey.id}

    r = client.get("/api/v1/admin/bookings?aggregator=mir-kvestov", headers=admin_headers)
    assert [b["id"] for b in r.json()] == [partner.id]
    assert r.json()[0]["paymentType"] == "aggregator"

    r = client.get("/api/v1/admin/bookings?promoCode=winter10", headers=admin_headers)
    assert [b["id"] for b in r.json()] == [cheap.id]

    r = client.get(f"/api/v1/admin/bookings?questId={other.id}&sort=questTitle", headers=admin_headers)
    assert [b["id"] for b in r.json()] == [pricey.id]

    r = client.get("/api/v1/admin/bookings?sort=questTitle:desc,date", headers=admin_headers)
    assert r.json()[0]["id"] == pricey.id


def test_filters_meta(client, db, admin_headers, make_quest, make_slot):
    quest = make_quest()
    booking_service.create_booking(db, BookingCreate(**_payload(quest, make_slot(quest, start="10:00"))))
    b = booking_service.create_booking(
        db, BookingCreate(**_payload(quest, make_slot(quest, start="12:00"), aggregator="mir-kvestov"))
    )
    booking_service.update_booking(db, b.id, BookingUpdate(status="отменено"))

    r = client.get("/api/v1/admin/bookings/filters-meta", headers=admin_headers)

    assert r.status_code == 200
    meta = r.json()
    assert meta["statusCountsByQuest"][quest.id] == {"pending": 1, "cancelled": 1}
    assert meta["questCountsByStatus"]["cancelled"] == {quest.id: 1}
    assert meta["aggregatorOptions"] == ["mir-kvestov"]


def test_admin_endpoints_reject_non_admin_role(client):
    from app.core.security import create_access_token
    token = create_access_token("user-1", "customer")
    r = client.get("/api/v1/admin/bookings", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 403
