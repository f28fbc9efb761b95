from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import get_current_user, require_admin, require_admin_or_manager, require_staff
from bsg_helpdesk.models.cmdb import ConfigurationItem
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.cmdb_schema import (
    ChangeCreate,
    ChangeResponse,
    CICreate,
    CIDetailResponse,
    CIListResponse,
    CIResponse,
    CITypeCreate,
    CITypeResponse,
    CIUpdate,
    CMDBDashboardResponse,
    IncidentLinkCreate,
    IncidentLinkResponse,
    RelationshipCreate,
    RelationshipMap,
    RelationshipResponse,
)
from bsg_helpdesk.services import cmdb_service

router = APIRouter()


# ----------------------------------
# CI types
# ----------------------------------

@router.get("/ci-types", response_model=List[CITypeResponse])
def list_ci_types(
    category: Optional[str] = None,
    is_active: Optional[bool] = True,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [
        CITypeResponse.model_validate(ci_type).model_copy(update={"ci_count": count})
        for ci_type, count in cmdb_service.list_ci_types(db, category=category, is_active=is_active)
    ]


@router.post("/ci-types", response_model=CITypeResponse, status_code=201)
def create_ci_type(request: CITypeCreate, db: Session = Depends(get_db), user: User = Depends(require_admin)):
    return cmdb_service.create_ci_type(db, request.model_dump())


# ----------------------------------
# Configuration items
# ----------------------------------

@router.get("/cis", response_model=CIListResponse)
def list_cis(
    search: Optional[str] = None,
    ci_type_id: Optional[int] = None,
    status: Optional[str] = None,
    business_criticality: Optional[str] = None,
    environment: Optional[str] = None,
    location_id: Optional[int] = None,
    owner_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    q = cmdb_service.build_ci_query(
        db,
        search=search,
        ci_type_id=ci_type_id,
        status=status,
        business_criticality=business_criticality,
        environment=environment,
        location_id=location_id,
        owner_id=owner_id,
    )
    total = q.count()
    cis = (
        q.order_by(ConfigurationItem.updated_at.desc(), ConfigurationItem.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"cis": cis, "total": total, "page": page, "limit": limit}


@router.get("/dashboard", response_model=CMDBDashboardResponse)
def dashboard(
    period_days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return cmdb_service.dashboard(db, period_days)


@router.post("/cis", response_model=CIResponse, status_code=201)
def create_ci(request: CICreate, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    return cmdb_service.create_ci(db, user, request.model_dump())


@router.get("/cis/{ci_pk}", response_model=CIDetailResponse)
def get_ci(ci_pk: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return cmdb_service.ci_details(db, cmdb_service.get_ci(db, ci_pk))


@router.put("/cis/{ci_pk}", response_model=CIResponse)
def update_ci(ci_pk: int, request: CIUpdate, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    return cmdb_service.update_ci(db, ci_pk, request.model_dump(exclude_unset=True))


# ----------------------------------
# Relationships, incidents and changes
# ----------------------------------

@router.get("/cis/{ci_pk}/relationships", response_model=RelationshipMap)
def get_relationships(ci_pk: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return cmdb_service.relationship_map(db, ci_pk)


@router.post("/cis/{ci_pk}/relationships", response_model=RelationshipResponse, status_code=201)
def add_relationship(
    ci_pk: int,
    request: RelationshipCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return cmdb_service.add_relationship(db, ci_pk, request.model_dump())


@router.post("/cis/{ci_pk}/incidents", response_model=IncidentLinkResponse, status_code=201)
def link_incident(
    ci_pk: int,
    request: IncidentLinkCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return cmdb_service.link_incident(db, ci_pk, request.ticket_id, request.impact)


@router.post("/cis/{ci_pk}/changes", response_model=ChangeResponse, status_code=201)
def request_change(
    ci_pk: int,
    request: ChangeCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return cmdb_service.request_change(db, user, ci_pk, request.model_dump())


@router.put("/changes/{change_id}/approve", response_model=ChangeResponse)
def approve_change(change_id: int, db: Session = Depends(get_db), user: User = Depends(require_admin_or_manager)):
    return cmdb_service.approve_change(db, user, change_id)
