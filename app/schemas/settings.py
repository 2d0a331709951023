from pydantic import BaseModel
from typing import Optional

class BookingSettingsOut(BaseModel):
    blockBlacklistedSiteBookings: bool
    blockBlacklistedApiBookings: bool
    bookingCutoffMinutes: int
    timeZone: str
    aggregatorSlotIdFormat: str
    aggregatorMd5Key: str
    aggregatorPrepayMd5Key: str
    notificationEmail: str

class BookingSettingsPatch(BaseModel):
    blockBlacklistedSiteBookings: Optional[bool] = None
    blockBlacklistedApiBookings: Optional[bool] = None
    bookingCutoffMinutes: Optional[int] = None
    timeZone: Optional[str] = None
    aggregatorSlotIdFormat: Optional[str] = None
    aggregatorMd5Key: Optional[str] = None
    aggregatorPrepayMd5Key: Optional[str] = None
    notificationEmail: Optional[str] = None
