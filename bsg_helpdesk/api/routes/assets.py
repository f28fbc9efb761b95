from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import get_current_user, require_admin_or_manager, require_staff
from bsg_helpdesk.models.asset import Asset, AssetLocation, AssetMaintenance, AssetType
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.asset_schema import (
    AssetCreate,
    AssetDashboardResponse,
    AssetDetailResponse,
    AssetListResponse,
    AssetReportResponse,
    AssetResponse,
    AssetTypeCreate,
    AssetTypeResponse,
    AssetUpdate,
    LinkTicketRequest,
    LocationCreate,
    LocationResponse,
    MaintenanceCreate,
    MaintenanceResponse,
    MaintenanceUpdate,
    TransferCreate,
    TransferDecision,
    TransferResponse,
)
from bsg_helpdesk.services import asset_service

router = APIRouter()


# ----------------------------------
# Reference data
# ----------------------------------

@router.get("/types", response_model=List[AssetTypeResponse])
def list_types(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return db.query(AssetType).order_by(AssetType.name).all()


@router.post("/types", response_model=AssetTypeResponse, status_code=201)
def create_type(request: AssetTypeCreate, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    if db.query(AssetType.id).filter(AssetType.name == request.name).first():
        raise HTTPException(status_code=409, detail="Asset type already exists")
    asset_type = AssetType(**request.model_dump())
    db.add(asset_type)
    db.commit()
    db.refresh(asset_type)
    return asset_type


@router.get("/locations", response_model=List[LocationResponse])
def list_locations(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return db.query(AssetLocation).order_by(AssetLocation.name).all()


@router.post("/locations", response_model=LocationResponse, status_code=201)
def create_location(request: LocationCreate, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    location = AssetLocation(**request.model_dump())
    db.add(location)
    db.commit()
    db.refresh(location)
    return location


# ----------------------------------
# Assets
# ----------------------------------

@router.get("", response_model=AssetListResponse)
def list_assets(
    search: Optional[str] = None,
    asset_type_id: Optional[int] = None,
    status: Optional[str] = None,
    condition: Optional[str] = None,
    location_id: Optional[int] = None,
    assigned_to_user_id: Optional[int] = None,
    category: Optional[str] = None,
    warranty_expiring: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    q = asset_service.build_search_query(
        db,
        search=search,
        asset_type_id=asset_type_id,
        status=status,
        condition=condition,
        location_id=location_id,
        assigned_to_user_id=assigned_to_user_id,
        category=category,
        warranty_expiring=warranty_expiring,
    )
    total = q.count()
    assets = q.order_by(Asset.created_at.desc(), Asset.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"assets": assets, "total": total, "page": page, "limit": limit}


@router.get("/dashboard", response_model=AssetDashboardResponse)
def dashboard(db: Session = Depends(get_db), user: User = Depends(require_staff)):
    return asset_service.dashboard(db)


@router.get("/report", response_model=AssetReportResponse)
def report(
    period_days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return asset_service.generate_report(db, period_days)


@router.put("/maintenance/{maintenance_id}", response_model=MaintenanceResponse)
def update_maintenance(
    maintenance_id: int,
    request: MaintenanceUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return asset_service.update_maintenance(db, maintenance_id, request.model_dump(exclude_unset=True))


@router.put("/transfer/{transfer_id}/approve", response_model=TransferResponse)
def approve_transfer(
    transfer_id: int,
    request: Optional[TransferDecision] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin_or_manager),
):
    approve = request.approve if request else True
    return asset_service.decide_transfer(db, user, transfer_id, approve)


@router.post("", response_model=AssetResponse, status_code=201)
def create_asset(request: AssetCreate, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    return asset_service.create_asset(db, request.model_dump())


@router.get("/{asset_id}", response_model=AssetDetailResponse)
def get_asset(asset_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    asset = asset_service.get_asset(db, asset_id)
    return asset_service.asset_details(db, asset)


@router.put("/{asset_id}", response_model=AssetResponse)
def update_asset(
    asset_id: int,
    request: AssetUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return asset_service.update_asset(db, asset_id, request.model_dump(exclude_unset=True))


@router.delete("/{asset_id}")
def delete_asset(asset_id: int, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    asset_service.delete_asset(db, asset_id)
    return {"message": "Asset deleted successfully"}


@router.get("/{asset_id}/maintenance", response_model=List[MaintenanceResponse])
def list_maintenance(asset_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    asset = asset_service.get_asset(db, asset_id)
    return (
        db.query(AssetMaintenance)
        .filter(AssetMaintenance.asset_id == asset.id)
        .order_by(AssetMaintenance.scheduled_date.desc(), AssetMaintenance.id.desc())
        .all()
    )


@router.post("/{asset_id}/maintenance", response_model=MaintenanceResponse, status_code=201)
def add_maintenance(
    asset_id: int,
    request: MaintenanceCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return asset_service.add_maintenance(db, user, asset_id, request.model_dump())


@router.post("/{asset_id}/transfer", response_model=TransferResponse, status_code=201)
def request_transfer(
    asset_id: int,
    request: TransferCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    return asset_service.request_transfer(db, user, asset_id, request.model_dump())


@router.post("/{asset_id}/link-ticket", status_code=201)
def link_ticket(
    asset_id: int,
    request: LinkTicketRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    link = asset_service.link_ticket(db, asset_id, request.ticket_id)
    return {"id": link.id, "asset_id": link.asset_id, "ticket_id": link.ticket_id}
