"""Shared dependencies: DB session, current user, permission gate."""
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User, UserRole
from app.services.auth import decode_token_with_error
from app.services.errors import PermissionDeniedError

security = HTTPBearer(auto_error=False)


def get_current_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    token_str = (credentials.credentials or "").strip()
    payload, _ = decode_token_with_error(token_str)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def _require(role: UserRole):
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_role(role):
            raise PermissionDeniedError(f"{role.value.capitalize()} role required")
        return current_user
    return checker


require_manager = _require(UserRole.manager)
require_admin = _require(UserRole.admin)


def can_see_internal_notes(user: User) -> bool:
    return user.has_role(UserRole.manager)
