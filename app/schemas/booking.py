from pydantic import BaseModel, Field
from typing import List, Optional

class BookingExtraServiceIn(BaseModel):
    id: Optional[str] = None  # catalog item it was copied from, if any
    title: str
    price: int = 0

class BookingCreate(BaseModel):
    questId: Optional[str] = None
    slotId: Optional[str] = None
    customerName: str
    customerPhone: str = ""
    customerEmail: Optional[str] = None
    bookingDate: Optional[str] = None  # YYYY-MM-DD; taken from the slot when one is bound
    participantsCount: int = 1
    extraServiceIds: List[str] = []
    extraServices: List[BookingExtraServiceIn] = []  # ad-hoc priced items
    paymentType: Optional[str] = None  # cash|certificate|aggregator
    promoCode: Optional[str] = None
    notes: Optional[str] = None
    aggregator: Optional[str] = None
    aggregatorUniqueId: Optional[str] = None

class BookingUpdate(BaseModel):
    """Partial update: only fields present in the request body are applied."""
    questId: Optional[str] = None
    slotId: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    aggregator: Optional[str] = None
    customerName: Optional[str] = None
    customerPhone: Optional[str] = None
    customerEmail: Optional[str] = None
    participantsCount: Optional[int] = None
    bookingDate: Optional[str] = None
    totalPrice: Optional[int] = None  # explicit override, applied after recompute
    paymentType: Optional[str] = None
    promoCode: Optional[str] = None
    promoDiscountType: Optional[str] = None
    promoDiscountValue: Optional[int] = None
    extraServices: Optional[List[BookingExtraServiceIn]] = None

class BookingExtraServiceOut(BaseModel):
    id: str
    title: str
    price: int

class BlacklistMatchOut(BaseModel):
    id: str
    name: str
    comment: Optional[str] = None
    matchedPhones: List[str] = []
    matchedEmails: List[str] = []

class BookingOut(BaseModel):
    id: str
    legacyId: int
    questId: Optional[str] = None
    slotId: Optional[str] = None
    customerName: str
    customerPhone: str
    customerEmail: Optional[str] = None
    bookingDate: str
    bookingTime: Optional[str] = None
    participantsCount: int
    extraParticipantsCount: int
    totalPrice: int
    paymentType: str
    promoCode: Optional[str] = None
    promoDiscountType: Optional[str] = None
    promoDiscountValue: Optional[int] = None
    promoDiscountAmount: Optional[int] = None
    status: str
    notes: Optional[str] = None
    aggregator: Optional[str] = None
    aggregatorUniqueId: Optional[str] = None
    extraServices: List[BookingExtraServiceOut] = []
    blacklistMatches: List[BlacklistMatchOut] = []
    createdAt: str
    updatedAt: str

class BookingFiltersMeta(BaseModel):
    statusCountsByQuest: dict[str, dict[str, int]] = Field(default_factory=dict)
    questCountsByStatus: dict[str, dict[str, int]] = Field(default_factory=dict)
    aggregatorOptions: List[str] = []
    promoCodeOptions: List[str] = []

class BookingImportRequest(BaseModel):
    content: str

class BookingImportIssue(BaseModel):
    rowNumber: int
    legacyId: Optional[int] = None
    reason: str

class BookingImportResult(BaseModel):
    totalRows: int = 0
    processed: int = 0
    imported: int = 0
    skipped: int = 0
    duplicates: int = 0
    skippedRows: List[BookingImportIssue] = []
    duplicateRows: List[BookingImportIssue] = []
    errors: List[str] = []
