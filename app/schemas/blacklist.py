from pydantic import BaseModel
from typing import List, Optional

class BlacklistEntryIn(BaseModel):
    name: str
    phones: List[str] = []
    emails: List[str] = []
    comment: Optional[str] = None

class BlacklistEntryOut(BaseModel):
    id: str
    name: str
    phones: List[str] = []
    emails: List[str] = []
    comment: Optional[str] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None

class BlacklistCheckIn(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
