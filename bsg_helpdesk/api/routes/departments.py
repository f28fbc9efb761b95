from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func as sqlfunc
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import require_admin
from bsg_helpdesk.models.organization import Department
from bsg_helpdesk.models.service_catalog import ServiceCatalog
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.auth_schema import (
    DepartmentCreate,
    DepartmentDetailResponse,
    DepartmentResponse,
    DepartmentUpdate,
)

router = APIRouter()


def _name_taken(db: Session, name: str, exclude_id=None) -> bool:
    q = db.query(Department.id).filter(sqlfunc.lower(Department.name) == name.strip().lower())
    if exclude_id is not None:
        q = q.filter(Department.id != exclude_id)
    return q.first() is not None


@router.get("", response_model=List[DepartmentResponse])
def list_departments(db: Session = Depends(get_db)):
    return db.query(Department).order_by(Department.name).all()


@router.get("/{department_id}", response_model=DepartmentDetailResponse)
def get_department(department_id: int, db: Session = Depends(get_db)):
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department:
        raise HTTPException(status_code=404, detail="Department not found")
    users = db.query(sqlfunc.count(User.id)).filter(User.department_id == department.id).scalar() or 0
    catalogs = (
        db.query(sqlfunc.count(ServiceCatalog.id))
        .filter(ServiceCatalog.department_id == department.id, ServiceCatalog.is_active == True)  # noqa: E712
        .scalar()
        or 0
    )
    return DepartmentDetailResponse(
        **DepartmentResponse.model_validate(department).model_dump(),
        user_count=users,
        catalog_count=catalogs,
    )


@router.post("", response_model=DepartmentResponse, status_code=201)
def create_department(request: DepartmentCreate, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    if _name_taken(db, request.name):
        raise HTTPException(status_code=409, detail="Department name already exists")
    department = Department(**request.model_dump())
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


@router.put("/{department_id}", response_model=DepartmentResponse)
def update_department(
    department_id: int,
    request: DepartmentUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department:
        raise HTTPException(status_code=404, detail="Department not found")
    changes = request.model_dump(exclude_unset=True)
    if changes.get("name") and _name_taken(db, changes["name"], exclude_id=department.id):
        raise HTTPException(status_code=409, detail="Department name already exists")
    for key, value in changes.items():
        setattr(department, key, value)
    db.commit()
    db.refresh(department)
    return department
