from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import get_current_user
from bsg_helpdesk.models.organization import Unit
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.auth_schema import (
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UnitResponse,
    UserBrief,
    UserResponse,
)
from bsg_helpdesk.services.auth_service import authenticate, register_user, token_for_user


router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=201)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    return register_user(db, request)


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate(db, request.email, request.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials.")
    return TokenResponse(access_token=token_for_user(user), user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.get("/units/{department_id}", response_model=List[UnitResponse])
def units_for_department(department_id: int, db: Session = Depends(get_db)):
    """Active units of a department, used by the registration form."""
    return (
        db.query(Unit)
        .filter(Unit.department_id == department_id, Unit.is_active == True)  # noqa: E712
        .order_by(Unit.sort_order, Unit.name)
        .all()
    )


@router.get("/managers/{department_id}", response_model=List[UserBrief])
def managers_for_department(department_id: int, db: Session = Depends(get_db)):
    return (
        db.query(User)
        .filter(
            User.department_id == department_id,
            User.role.in_(("manager", "admin")),
            User.is_active == True,  # noqa: E712
        )
        .order_by(User.username)
        .all()
    )
