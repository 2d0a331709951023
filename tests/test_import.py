from datetime import datetime

from app.models.booking import Booking
from app.models.slot import QuestSlot
from app.schemas.booking import BookingCreate
from app.services import booking_service
from app.services.import_service import detect_delimiter, import_bookings, map_payment, map_status, normalize_content

HEADER = "Id;Quest;Name;Phone;Email;Created;Date;Time;Players;Price;Payment;Status;Comment"


def _csv(*rows: str) -> str:
    return "\n".join((HEADER,) + rows)


def test_imports_valid_rows(db, make_quest):
    quest = make_quest(slug="pirates")
    content = _csv(
        "101;pirates;Ivan;89135550102;;10.01.2025 12:00;2025-01-15;14:00;4;2500;1;подтверждено;birthday",
        "102;Pirates;Olga;;olga@example.com;11.01.2025;2025-01-15;16:00;6;;3;;",
    )

    result = import_bookings(db, content)

    assert result.totalRows == 2
    assert result.imported == 2
    assert result.processed == 2
    assert result.errors == []

    first = db.query(Booking).filter(Booking.legacy_id == 101).one()
    assert first.total_price == 2500
    assert first.status == "confirmed"
    assert first.notes == "birthday"
    assert first.booking_time == "14:00"
    # created in the business time zone (UTC+7), stored as UTC
    assert first.created_at.replace(tzinfo=None) == datetime(2025, 1, 10, 5, 0)
    assert db.get(QuestSlot, first.slot_id).is_booked is True

    second = db.query(Booking).filter(Booking.legacy_id == 102).one()
    assert second.total_price == quest.price
    assert second.payment_type == "aggregator"
    assert second.aggregator == "mir-kvestov"
    assert second.extra_participants_count == 2


def test_new_bookings_are_numbered_after_imported_ones(db, make_quest, make_slot):
    quest = make_quest(slug="pirates")
    import_bookings(db, _csv("700;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;14:00;4;2000;1;;"))

    b = booking_service.create_booking(db, BookingCreate(
        questId=quest.id,
        slotId=make_slot(quest, start="18:00").id,
        customerName="Olga",
        customerPhone="89990001122",
        participantsCount=2,
    ))

    assert b.legacy_id == 701


def test_reimport_reports_duplicates(db, make_quest):
    make_quest(slug="pirates")
    content = _csv(
        "101;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;14:00;4;2000;1;;",
        "101;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;15:00;4;2000;1;;",
    )

    first = import_bookings(db, content)
    assert first.imported == 1
    assert first.duplicates == 1
    assert first.duplicateRows[0].rowNumber == 3

    again = import_bookings(db, content)
    assert again.imported == 0
    assert again.duplicates == 2
    assert again.processed == again.totalRows == 2
    assert db.query(Booking).count() == 1


def test_bad_rows_are_skipped_with_reasons(db, make_quest):
    make_quest(slug="pirates")
    content = _csv(
        "201;pirates;No contact;;;10.01.2025;2025-01-15;14:00;4;2000;1;;",
        "abc;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;14:00;4;2000;1;;",
        "202;unknown;Ivan;89135550102;;10.01.2025;2025-01-15;14:00;4;2000;1;;",
        "203;pirates;Ivan;89135550102;;yesterday;2025-01-15;14:00;4;2000;1;;",
        "204;pirates;Ivan;89135550102;;10.01.2025;someday;14:00;4;2000;1;;",
        ";;;;;;;;;;;;",
        "",
        "205;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;14:00;4;2000;1;;",
    )

    result = import_bookings(db, content)

    reasons = {issue.rowNumber: issue.reason for issue in result.skippedRows}
    assert reasons[2] == "no phone or e-mail"
    assert reasons[3] == "invalid legacy id"
    assert reasons[4] == "unknown quest 'unknown'"
    assert reasons[5] == "invalid creation date"
    assert reasons[6] == "invalid booking date or time"
    assert reasons[7] == "empty row"
    assert result.imported == 1
    assert result.skipped == 6
    # the blank line is not a row at all
    assert result.totalRows == 7
    assert result.processed == result.imported + result.skipped + result.duplicates
    assert len(result.errors) == 6


def test_second_row_for_same_time_is_skipped(db, make_quest):
    make_quest(slug="pirates")
    content = _csv(
        "301;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;14:00;4;2000;1;;",
        "302;pirates;Olga;89990001122;;10.01.2025;2025-01-15;14:00;4;2000;1;;",
    )

    result = import_bookings(db, content)

    assert result.imported == 1
    assert result.skippedRows[0].legacyId == 302
    assert result.skippedRows[0].reason == "slot already booked"


def test_cancelled_rows_do_not_hold_a_slot(db, make_quest):
    make_quest(slug="pirates")
    content = _csv(
        "401;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;14:00;4;2000;1;Отменено;",
        "402;pirates;Olga;89990001122;;10.01.2025;2025-01-15;14:00;4;2000;1;;",
    )

    result = import_bookings(db, content)

    assert result.imported == 2
    cancelled = db.query(Booking).filter(Booking.legacy_id == 401).one()
    assert cancelled.status == "cancelled"
    assert cancelled.slot_id is None
    assert cancelled.booking_time == "14:00"
    assert db.query(Booking).filter(Booking.legacy_id == 402).one().slot_id is not None


def test_escaped_newlines_and_comma_delimiter(db, make_quest):
    make_quest(slug="pirates")
    content = (
        "id,quest,name,phone,created,date,players\\n"
        "501,pirates,Ivan,89135550102,10.01.2025,2025-01-15 14:00,3"
    )

    result = import_bookings(db, content)

    assert result.imported == 1
    b = db.query(Booking).filter(Booking.legacy_id == 501).one()
    assert b.booking_date == "2025-01-15"
    assert b.booking_time == "14:00"
    assert b.participants_count == 3


def test_russian_headers(db, make_quest):
    make_quest(slug="pirates")
    content = "\ufeffНомер\tКвест\tИмя\tТелефон\tДата создания\tДата\tВремя\n601\tpirates\tИван\t89135550102\t10.01.2025\t15.01.2025\t14:00"

    result = import_bookings(db, content)

    assert result.imported == 1
    assert db.query(Booking).filter(Booking.legacy_id == 601).one().customer_name == "Иван"


def test_file_without_id_column(db):
    result = import_bookings(db, "name;phone\nIvan;89135550102")
    assert result.errors == ["Header has no Id column"]
    assert import_bookings(db, "   \n").errors == ["File is empty"]


def test_import_endpoint(client, admin_headers, make_quest):
    make_quest(slug="pirates")
    r = client.post(
        "/api/v1/admin/bookings/import",
        json={"content": _csv("801;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;14:00;4;2000;1;;")},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["imported"] == 1


def test_helpers():
    assert normalize_content("a\\nb") == "a\nb"
    assert normalize_content("a\r\nb\rc") == "a\nb\nc"
    assert detect_delimiter("a\tb\tc") == "\t"
    assert detect_delimiter("a;b,c;d") == ";"
    assert detect_delimiter("single") == ","
    assert map_status("Завершено") == "completed"
    assert map_status("cancelled") == "cancelled"
    assert map_status("") == "confirmed"
    assert map_payment("2") == ("certificate", None)
    assert map_payment("9") == ("cash", None)


def test_unreadable_prices_fall_back_to_quest_price(db, make_quest):
    quest = make_quest(slug="pirates")
    content = _csv(
        "901;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;12:00;4;2500;1;;",
        "902;pirates;Olga;89990001122;;10.01.2025;2025-01-15;14:00;4;1e400;1;;",
        "903;pirates;Anna;89990001133;;10.01.2025;2025-01-15;16:00;4;inf;1;;",
        "904;pirates;Petr;89990001144;;10.01.2025;2025-01-15;18:00;4;nan;1;;",
        "905;pirates;Oleg;89990001155;;10.01.2025;2025-01-15;20:00;4;2 499,5;1;;",
    )

    result = import_bookings(db, content)

    assert result.imported == 5
    totals = {b.legacy_id: b.total_price for b in db.query(Booking).all()}
    assert totals == {901: 2500, 902: quest.price, 903: quest.price, 904: quest.price, 905: 2500}


def test_participants_outside_quest_range_are_skipped(db, make_quest):
    make_quest(slug="pirates")
    content = _csv(
        "911;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;12:00;-3;2000;1;;",
        "912;pirates;Olga;89990001122;;10.01.2025;2025-01-15;14:00;99;2000;1;;",
        "913;pirates;Anna;89990001133;;10.01.2025;2025-01-15;16:00;8;2000;1;;",
    )

    result = import_bookings(db, content)

    assert result.imported == 1
    assert [(i.legacyId, i.reason) for i in result.skippedRows] == [
        (911, "Participants count must be between 2 and 8"),
        (912, "Participants count must be between 2 and 8"),
    ]
    assert [b.participants_count for b in db.query(Booking).all()] == [8]
    # rejected rows do not leave a slot occupied
    assert db.query(QuestSlot).count() == 1


def test_out_of_range_legacy_ids_are_invalid(db, make_quest):
    make_quest(slug="pirates")
    content = _csv(
        "0;pirates;Ivan;89135550102;;10.01.2025;2025-01-15;12:00;4;2000;1;;",
        "99999999999999999999;pirates;Olga;89990001122;;10.01.2025;2025-01-15;14:00;4;2000;1;;",
    )

    result = import_bookings(db, content)

    assert result.imported == 0
    assert [i.reason for i in result.skippedRows] == ["invalid legacy id", "invalid legacy id"]


def test_aggregator_payment_uses_configured_partner_name(monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "AGGREGATOR_NAME", "quest-partner")
    assert map_payment("3") == ("aggregator", "quest-partner")
    assert map_payment("1") == ("cash", None)
