from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import ADMIN_ROLES, Principal, require_roles
from app.schemas.blacklist import BlacklistCheckIn, BlacklistEntryIn, BlacklistEntryOut
from app.schemas.booking import BlacklistMatchOut
from app.services import blacklist_service

router = APIRouter(tags=["blacklist"])

@router.get("/admin/blacklist", response_model=list[BlacklistEntryOut])
def list_entries(db: Session = Depends(get_db),
                 me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    return [blacklist_service.entry_to_dict(e) for e in blacklist_service.list_entries(db)]

@router.post("/admin/blacklist", response_model=BlacklistEntryOut)
def create_entry(body: BlacklistEntryIn, db: Session = Depends(get_db),
                 me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    entry = blacklist_service.create_entry(db, body.name, body.phones, body.emails, body.comment)
    return blacklist_service.entry_to_dict(entry)

@router.put("/admin/blacklist/{entry_id}", response_model=BlacklistEntryOut)
def update_entry(entry_id: str, body: BlacklistEntryIn, db: Session = Depends(get_db),
                 me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    entry = blacklist_service.update_entry(db, entry_id, body.name, body.phones, body.emails, body.comment)
    return blacklist_service.entry_to_dict(entry)

@router.delete("/admin/blacklist/{entry_id}")
def delete_entry(entry_id: str, db: Session = Depends(get_db),
                 me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    blacklist_service.delete_entry(db, entry_id)
    return {"ok": True}

@router.post("/admin/blacklist/check", response_model=list[BlacklistMatchOut])
def check_contacts(body: BlacklistCheckIn, db: Session = Depends(get_db),
                   me: Principal = Depends(require_roles(*ADMIN_ROLES))):
    return blacklist_service.find_matches(db, body.phone, body.email)
