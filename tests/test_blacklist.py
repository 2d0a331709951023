import pytest

from app.core.errors import BlacklistEntryNotFound, ValidationFailed
from app.services import blacklist_service
from app.services.settings_service import BLOCK_API_KEY, BLOCK_SITE_KEY, set_setting


def test_create_entry_normalizes_and_dedupes_contacts(db):
    entry = blacklist_service.create_entry(
        db,
        "  Troublemaker ",
        phones=["8 (913) 555-01-02", "+7 913 555 01 02"],
        emails=["Bad (at) Example (dot) com", "bad@example.com"],
        comment="broke the props",
    )
    data = blacklist_service.entry_to_dict(entry)
    assert data["name"] == "Troublemaker"
    assert data["phones"] == ["79135550102"]
    assert data["emails"] == ["bad@example.com"]


def test_create_entry_requires_name_and_contact(db):
    with pytest.raises(ValidationFailed):
        blacklist_service.create_entry(db, "", phones=["89135550102"], emails=[])
    with pytest.raises(ValidationFailed):
        blacklist_service.create_entry(db, "Nobody", phones=["12"], emails=["nope"])


def test_update_and_delete_missing_entry(db):
    with pytest.raises(BlacklistEntryNotFound):
        blacklist_service.update_entry(db, "missing", "X", ["89135550102"], [])
    with pytest.raises(BlacklistEntryNotFound):
        blacklist_service.delete_entry(db, "missing")


def test_find_matches_reports_overlapping_contacts(db):
    entry = blacklist_service.create_entry(db, "Troublemaker", ["89135550102"], ["bad@example.com"], "note")
    blacklist_service.create_entry(db, "Someone else", ["89990001122"], [])

    matches = blacklist_service.find_matches(db, "+7 (913) 555-01-02", "other@example.com")
    assert matches == [{
        "id": entry.id,
        "name": "Troublemaker",
        "comment": "note",
        "matchedPhones": ["79135550102"],
        "matchedEmails": [],
    }]
    assert blacklist_service.find_matches(db, None, None) == []


def test_is_booking_blocked_respects_channel_flags(db):
    blacklist_service.create_entry(db, "Troublemaker", ["89135550102"], [])

    # both flags off by default
    assert blacklist_service.is_booking_blocked(db, "89135550102", None, is_api_booking=False) is False

    set_setting(db, BLOCK_SITE_KEY, True)
    db.commit()
    assert blacklist_service.is_booking_blocked(db, "89135550102", None, is_api_booking=False) is True
    assert blacklist_service.is_booking_blocked(db, "89135550102", None, is_api_booking=True) is False
    assert blacklist_service.is_booking_blocked(db, "89990001122", None, is_api_booking=False) is False

    set_setting(db, BLOCK_API_KEY, True)
    db.commit()
    assert blacklist_service.is_booking_blocked(db, "89135550102", None, is_api_booking=True) is True


def test_blacklist_endpoints(client, admin_headers):
    r = client.post(
        "/api/v1/admin/blacklist",
        json={"name": "Troublemaker", "phones": ["8 913 555 01 02"], "emails": []},
        headers=admin_headers,
    )
    assert r.status_code == 200
    entry_id = r.json()["id"]

    r = client.post("/api/v1/admin/blacklist/check", json={"phone": "+79135550102"}, headers=admin_headers)
    assert r.status_code == 200
    assert [m["id"] for m in r.json()] == [entry_id]

    r = client.put(
        f"/api/v1/admin/blacklist/{entry_id}",
        json={"name": "Renamed", "phones": [], "emails": ["x@example.com"]},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["phones"] == []

    r = client.post("/api/v1/admin/blacklist", json={"name": "Empty", "phones": [], "emails": []}, headers=admin_headers)
    assert r.status_code == 400

    assert client.delete(f"/api/v1/admin/blacklist/{entry_id}", headers=admin_headers).status_code == 200
    assert client.get("/api/v1/admin/blacklist", headers=admin_headers).json() == []


def test_blacklist_endpoints_require_admin(client):
    assert client.get("/api/v1/admin/blacklist").status_code == 401
