import os

# Settings are read at import time; point them at an in-memory database first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["TIME_ZONE"] = "Asia/Krasnoyarsk"

import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.db.session import Base, get_db
from app.main import app
from app.models.blacklist_entry import BlacklistEntry  # noqa: F401
from app.models.booking import Booking, BookingExtraService  # noqa: F401
from app.models.email_log import EmailLog  # noqa: F401
from app.models.promo_code import PromoCode
from app.models.quest import Quest
from app.models.quest_extra_service import QuestExtraService
from app.models.setting import Setting  # noqa: F401
from app.models.slot import QuestSlot

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 2025-01-10 12:00 in Krasnoyarsk (UTC+7)
FIXED_NOW = datetime(2025, 1, 10, 5, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = create_access_token("admin-1", "admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_quest(db):
    def _make(**kw) -> Quest:
        values = dict(
            id=str(uuid.uuid4()),
            slug=f"quest-{uuid.uuid4().hex[:8]}",
            title="Escape",
            price=2000,
            participants_min=2,
            participants_max=8,
            standard_price_participants_max=4,
            extra_participants_max=4,
            extra_participant_price=300,
        )
        values.update(kw)
        quest = Quest(**values)
        db.add(quest)
        db.commit()
        return quest
    return _make


@pytest.fixture
def make_slot(db):
    def _make(quest: Quest, date_str: str = "2025-01-15", start: str = "14:00", price: int | None = None, is_booked: bool = False) -> QuestSlot:
        slot = QuestSlot(
            id=str(uuid.uuid4()),
            quest_id=quest.id,
            date_str=date_str,
            start=start,
            price=quest.price if price is None else price,
            is_booked=is_booked,
        )
        db.add(slot)
        db.commit()
        return slot
    return _make


@pytest.fixture
def make_extra_service(db):
    def _make(quest: Quest, title: str = "Photo session", price: int = 500) -> QuestExtraService:
        item = QuestExtraService(id=str(uuid.uuid4()), quest_id=quest.id, title=title, price=price)
        db.add(item)
        db.commit()
        return item
    return _make


@pytest.fixture
def make_promo(db):
    def _make(code: str = "WINTER10", discount_type: str = "percent", discount_value: int = 10, **kw) -> PromoCode:
        values = dict(
            id=str(uuid.uuid4()),
            code=code,
            discount_type=discount_type,
            discount_value=discount_value,
            valid_from="2000-01-01",
            valid_until=None,
            is_active=True,
        )
        values.update(kw)
        promo = PromoCode(**values)
        db.add(promo)
        db.commit()
        return promo
    return _make


@pytest.fixture
def fixed_now():
    return FIXED_NOW
