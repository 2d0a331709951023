from dataclasses import dataclass
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from app.core.security import decode_token

bearer = HTTPBearer(auto_error=False)

ADMIN_ROLES = ("admin", "superadmin")


@dataclass
class Principal:
    subject: str
    role: str


def get_current_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> Principal:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("type") != "access" or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return Principal(subject=str(payload["sub"]), role=str(payload.get("role") or ""))


def require_roles(*roles: str):
    def _guard(me: Principal = Depends(get_current_principal)) -> Principal:
        if me.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return me
    return _guard
