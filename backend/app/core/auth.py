from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.core.permissions import Actor
from app.core.security import ADMIN_ROLE, decode_access_token
from app.models.admin_user import AdminUser

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AdminUser:
    if not credentials or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    payload = decode_access_token(credentials.credentials)
    if not payload or payload.get("role") != ADMIN_ROLE or "sub" not in payload:
        raise _unauthorized("Invalid or expired token")
    admin = db.query(AdminUser).filter(AdminUser.id == payload["sub"]).first()
    if not admin:
        raise _unauthorized("Admin not found")
    if not admin.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin account is inactive")
    return admin


def get_current_actor(admin: AdminUser = Depends(get_current_admin)) -> Actor:
    """Ledger-facing identity of the authenticated admin."""
    return Actor(id=admin.id, is_platform_admin=admin.is_active)
