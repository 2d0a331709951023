from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import ADMIN_ROLES, Principal, require_roles
from app.schemas.booking import (
    BookingCreate,
    BookingFiltersMeta,
    BookingImportRequest,
    BookingImportResult,
    BookingOut,
    BookingUpdate,
)
from app.schemas.settings import BookingSettingsOut, BookingSettingsPatch
from app.services import booking_service, import_service, settings_service

router = APIRouter(tags=["admin"])

@router.get("/admin/bookings", response_model=list[BookingOut])
def list_bookings(status: str | None = None, questId: str | None = None, aggregator: str | None = None,
                  promoCode: str | None = None, dateFrom: str | None = None, dateTo: str | None = None,
                  sort: str | None = None,
                  db: Session = Depends(get_db),
                  me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    return booking_service.list_bookings(
        db,
        status=status,
        quest_id=questId,
        aggregator=aggregator,
        promo_code=promoCode,
        date_from=dateFrom,
        date_to=dateTo,
        sort=sort,
    )

@router.get("/admin/bookings/filters-meta", response_model=BookingFiltersMeta)
def bookings_filters_meta(db: Session = Depends(get_db),
                          me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    return booking_service.get_booking_filters_meta(db)

@router.post("/admin/bookings/import", response_model=BookingImportResult)
def import_bookings(body: BookingImportRequest, db: Session = Depends(get_db),
                    me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    return import_service.import_bookings(db, body.content)

@router.get("/admin/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db),
                me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    return booking_service.booking_to_dict(db, booking_service.get_booking(db, booking_id))

@router.post("/admin/bookings", response_model=BookingOut)
def create_booking(body: BookingCreate, db: Session = Depends(get_db),
                   me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    booking = booking_service.create_booking(db, body, is_admin=True)
    return booking_service.booking_to_dict(db, booking)

@router.patch("/admin/bookings/{booking_id}", response_model=BookingOut)
def update_booking(booking_id: str, body: BookingUpdate, db: Session = Depends(get_db),
                   me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    booking = booking_service.update_booking(db, booking_id, body)
    return booking_service.booking_to_dict(db, booking)

@router.delete("/admin/bookings/{booking_id}")
def delete_booking(booking_id: str, db: Session = Depends(get_db),
                   me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    booking_service.delete_booking(db, booking_id)
    return {"ok": True}

SETTINGS_FIELDS = {
    "blockBlacklistedSiteBookings": settings_service.BLOCK_SITE_KEY,
    "blockBlacklistedApiBookings": settings_service.BLOCK_API_KEY,
    "bookingCutoffMinutes": settings_service.CUTOFF_KEY,
    "timeZone": settings_service.TIME_ZONE_KEY,
    "aggregatorSlotIdFormat": settings_service.SLOT_ID_FORMAT_KEY,
    "aggregatorMd5Key": settings_service.MD5_KEY,
    "aggregatorPrepayMd5Key": settings_service.PREPAY_MD5_KEY,
    "notificationEmail": settings_service.NOTIFICATION_EMAIL_KEY,
}
SLOT_ID_FORMATS = (settings_service.SLOT_ID_FORMAT_NUMERIC, settings_service.SLOT_ID_FORMAT_UUID)

@router.get("/admin/settings/booking", response_model=BookingSettingsOut)
def get_booking_settings(db: Session = Depends(get_db),
                         me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    return settings_service.get_booking_settings(db)

@router.put("/admin/settings/booking", response_model=BookingSettingsOut)
def update_booking_settings(body: BookingSettingsPatch, db: Session = Depends(get_db),
                            me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    fmt = body.aggregatorSlotIdFormat
    if fmt is not None and fmt.strip().lower() not in SLOT_ID_FORMATS:
        raise HTTPException(status_code=400, detail="aggregatorSlotIdFormat must be numeric or uuid")
    for field in body.model_fields_set:
        value = getattr(body, field)
        if value is None:
            continue
        if field == "aggregatorSlotIdFormat":
            value = value.strip().lower()
        settings_service.set_setting(db, SETTINGS_FIELDS[field], value)
    db.commit()
    return settings_service.get_booking_settings(db)
