import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.core import config
from backend.database import get_db
from backend.models.user import User, UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _resolve_subject(credentials: HTTPAuthorizationCredentials | None) -> str:
    if credentials is None:
        if config.DEV_AUTH_EMAIL and config.is_development():
            return config.DEV_AUTH_EMAIL
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")
    return email


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    email = _resolve_subject(credentials)
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_role(*roles: UserRole):
    """Dependency factory: the caller must hold one of ``roles``."""

    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            logger.warning("User %s (%s) denied; requires %s", user.id, user.role.value, [role.value for role in roles])
            raise HTTPException(status_code=403, detail="Insufficient role")
        return user

    return _guard
