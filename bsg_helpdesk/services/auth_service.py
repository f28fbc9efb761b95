import datetime as dt
from typing import Any, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import or_
from sqlalchemy.orm import Session

from bsg_helpdesk.core.config import settings
from bsg_helpdesk.core.errors import Conflict, ValidationFailed
from bsg_helpdesk.models.organization import Department, Unit
from bsg_helpdesk.models.user import User


# PBKDF2-SHA256 avoids bcrypt backend/version issues and the 72-byte input limit.
_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def create_access_token(
    *,
    subject: str,
    claims: Optional[dict[str, Any]] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    expire_minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = now + dt.timedelta(minutes=int(expire_minutes))

    payload: dict[str, Any] = dict(claims or {})
    payload.update(
        {
            "sub": subject,
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }
    )
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise ValueError("Invalid token") from e


def token_for_user(user: User) -> str:
    return create_access_token(
        subject=str(user.id),
        claims={
            "username": user.username,
            "role": user.role,
            "email": user.email,
            "department_id": user.department_id,
            "unit_id": user.unit_id,
            "is_kasda_user": user.is_kasda_user,
            "is_business_reviewer": user.is_business_reviewer,
        },
    )


def register_user(db: Session, data) -> User:
    """Create an account after checking department, unit and manager references."""
    existing = (
        db.query(User)
        .filter(or_(User.username == data.username, User.email == data.email))
        .first()
    )
    if existing:
        raise Conflict("User with this username or email already exists.")

    department = db.query(Department).filter(Department.id == data.department_id).first()
    if not department:
        raise ValidationFailed("Invalid department.")

    if data.unit_id is not None:
        unit = db.query(Unit).filter(Unit.id == data.unit_id).first()
        if not unit or unit.department_id != department.id:
            raise ValidationFailed("Unit does not belong to the selected department.")

    if data.manager_id is not None:
        manager = db.query(User).filter(User.id == data.manager_id).first()
        if not manager:
            raise ValidationFailed("Selected manager does not exist.")

    user = User(
        username=data.username,
        email=data.email,
        password_hash=hash_password(data.password),
        role=data.role,
        department_id=department.id,
        unit_id=data.unit_id,
        manager_id=data.manager_id,
        workload_capacity=data.workload_capacity,
        is_business_reviewer=data.is_business_reviewer,
        is_kasda_user=data.is_kasda_user,
        primary_skill=data.primary_skill if data.role == "technician" else None,
        experience_level=data.experience_level if data.role == "technician" else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.email == email).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
