from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services.auth_service import decode_token


_http_bearer = HTTPBearer(auto_error=False)


def _extract_bearer_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    if credentials and credentials.scheme.lower() == "bearer":
        return credentials.credentials

    # Browser sessions may carry the token in a cookie instead of the header.
    cookie_token = request.cookies.get("auth_token")
    if cookie_token:
        return cookie_token

    return None


def _user_from_token(token: str, db: Session) -> User:
    try:
        payload = decode_token(token)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id or not str(user_id).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_http_bearer),
) -> User:
    token = _extract_bearer_token(request, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _user_from_token(token, db)


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_http_bearer),
) -> Optional[User]:
    token = _extract_bearer_token(request, credentials)
    if not token:
        return None
    return _user_from_token(token, db)


def require_roles(*roles: str, detail: Optional[str] = None) -> Callable[..., User]:
    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail=detail or f"User role {user.role} is not authorized")
        return user

    return dependency


require_admin = require_roles("admin", detail="Admin access required")
require_staff = require_roles("admin", "manager", "technician")
require_admin_or_manager = require_roles("admin", "manager", detail="Admin or Manager role required.")


def require_business_reviewer(user: User = Depends(get_current_user)) -> User:
    if not user.is_business_reviewer:
        raise HTTPException(status_code=403, detail="Business reviewer access required")
    return user
