import datetime as dt
import json
import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import func as sqlfunc, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.core.errors import NotFound, ServiceError, ValidationFailed
from bsg_helpdesk.models.asset import (
    Asset,
    AssetContract,
    AssetLocation,
    AssetMaintenance,
    AssetTransfer,
    AssetType,
    TicketAsset,
)
from bsg_helpdesk.models.ticket import Ticket
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services.ticket_workflow import get_ticket

logger = logging.getLogger(__name__)

TAG_PREFIXES = {
    "hardware": "HW",
    "software": "SW",
    "network": "NW",
    "security": "SC",
    "facilities": "FC",
}
CONDITION_PENALTIES = {
    "new": 0,
    "excellent": 0,
    "good": 10,
    "fair": 25,
    "poor": 40,
    "damaged": 60,
    "non_functional": 80,
}
OPEN_TICKET_STATUSES = ("open", "assigned", "in_progress")
TCO_CONTRACT_TYPES = ("maintenance", "support")


# ----------------------------------
# Pure helpers
# ----------------------------------

def _age_years(start: dt.date, today: dt.date) -> float:
    return max((today - start).days, 0) / 365.25


def calculate_depreciation(
    purchase_price: Optional[float],
    depreciation_rate: Optional[float],
    purchase_date: Optional[dt.date],
    today: Optional[dt.date] = None,
) -> Optional[float]:
    """Straight-line book value; None when the asset lacks the inputs."""
    if purchase_price is None or depreciation_rate is None or purchase_date is None:
        return None
    today = today or utcnow().date()
    annual = purchase_price * depreciation_rate / 100
    accumulated = min(annual * _age_years(purchase_date, today), purchase_price)
    return round(max(purchase_price - accumulated, 0.0), 2)


def calculate_health_score(
    *,
    purchase_date: Optional[dt.date],
    condition: Optional[str],
    maintenance_last_year: int,
    open_tickets: int,
    warranty_expiry: Optional[dt.date],
    today: Optional[dt.date] = None,
) -> int:
    today = today or utcnow().date()
    score = 100.0
    if purchase_date is not None:
        age = _age_years(purchase_date, today)
        if age > 3:
            score -= min(20.0, (age - 3) * 5)
    score -= CONDITION_PENALTIES.get(condition, 0)
    if maintenance_last_year > 5:
        score -= min(15, (maintenance_last_year - 5) * 3)
    if open_tickets > 0:
        score -= min(20, open_tickets * 5)
    if warranty_expiry is not None and warranty_expiry < today:
        score -= 10
    return int(round(max(0.0, min(100.0, score))))


def validate_asset_data(data: Dict[str, Any], *, partial: bool = False) -> List[str]:
    errors: List[str] = []
    if not partial or "name" in data:
        if not (data.get("name") or "").strip():
            errors.append("Asset name is required.")
    if not partial or "asset_type_id" in data:
        if not data.get("asset_type_id"):
            errors.append("Asset type is required.")
    price = data.get("purchase_price")
    if price is not None and price < 0:
        errors.append("Purchase price cannot be negative.")
    rate = data.get("depreciation_rate")
    if rate is not None and not 0 <= rate <= 100:
        errors.append("Depreciation rate must be between 0 and 100.")
    purchase, warranty = data.get("purchase_date"), data.get("warranty_expiry")
    if purchase and warranty and warranty < purchase:
        errors.append("Warranty expiry cannot be before the purchase date.")
    if purchase and purchase > utcnow().date():
        errors.append("Purchase date cannot be in the future.")
    return errors


def generate_qr_data(asset: Asset) -> str:
    return json.dumps(
        {
            "id": asset.id,
            "asset_tag": asset.asset_tag,
            "name": asset.name,
            "type": asset.asset_type.name if asset.asset_type else None,
            "location": asset.location.name if asset.location else None,
            "url": f"/assets/{asset.id}",
        },
        separators=(",", ":"),
    )


# ----------------------------------
# Queries
# ----------------------------------

def generate_asset_tag(db: Session, asset_type: Optional[AssetType], now: Optional[dt.datetime] = None) -> str:
    now = now or utcnow()
    prefix = TAG_PREFIXES.get(asset_type.category if asset_type else "", "AS")
    stem = f"{prefix}{now.year}"
    try:
        tags = [t for (t,) in db.query(Asset.asset_tag).filter(Asset.asset_tag.like(f"{stem}%")).all()]
    except SQLAlchemyError:
        logger.exception("Could not read asset tags for %s; using timestamp tag", stem)
        return f"AS{int(now.timestamp())}"
    sequences = [int(t[len(stem):]) for t in tags if re.fullmatch(r"\d+", t[len(stem):] or "")]
    next_seq = max(sequences, default=0) + 1
    # three digits minimum, longer once a year passes 999 assets
    return f"{stem}{next_seq:03d}"


def get_asset(db: Session, asset_id: int) -> Asset:
    asset = (
        db.query(Asset)
        .options(joinedload(Asset.asset_type), joinedload(Asset.location))
        .filter(Asset.id == asset_id, Asset.is_deleted == False)  # noqa: E712
        .first()
    )
    if not asset:
        raise NotFound("Asset not found")
    return asset


def _asset_type(db: Session, asset_type_id: int) -> AssetType:
    asset_type = db.query(AssetType).filter(AssetType.id == asset_type_id).first()
    if not asset_type:
        raise ValidationFailed("Asset type not found.")
    return asset_type


def create_asset(db: Session, data: Dict[str, Any]) -> Asset:
    errors = validate_asset_data(data)
    if errors:
        raise ValidationFailed(errors[0], errors)
    asset_type = _asset_type(db, data["asset_type_id"])
    if data.get("location_id") is not None:
        if not db.query(AssetLocation.id).filter(AssetLocation.id == data["location_id"]).first():
            raise ValidationFailed("Location not found.")

    asset = Asset(**data)
    asset.asset_tag = generate_asset_tag(db, asset_type)
    db.add(asset)
    db.commit()
    db.refresh(asset)
    logger.info("Asset %s created with tag %s", asset.id, asset.asset_tag)
    return asset


def update_asset(db: Session, asset_id: int, changes: Dict[str, Any]) -> Asset:
    asset = get_asset(db, asset_id)
    merged = {
        "purchase_date": asset.purchase_date,
        "warranty_expiry": asset.warranty_expiry,
        **changes,
    }
    errors = validate_asset_data(merged, partial=True)
    if errors:
        raise ValidationFailed(errors[0], errors)
    if "asset_type_id" in changes:
        _asset_type(db, changes["asset_type_id"])
    for key, value in changes.items():
        setattr(asset, key, value)
    db.commit()
    db.refresh(asset)
    return asset


def delete_asset(db: Session, asset_id: int) -> None:
    asset = get_asset(db, asset_id)
    asset.is_deleted = True
    asset.status = "disposed" if asset.status == "retired" else asset.status
    db.commit()


def build_search_query(
    db: Session,
    *,
    search: Optional[str] = None,
    asset_type_id: Optional[int] = None,
    status: Optional[str] = None,
    condition: Optional[str] = None,
    location_id: Optional[int] = None,
    assigned_to_user_id: Optional[int] = None,
    category: Optional[str] = None,
    warranty_expiring: bool = False,
):
    q = db.query(Asset).filter(Asset.is_deleted == False)  # noqa: E712
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                Asset.name.ilike(pattern),
                Asset.asset_tag.ilike(pattern),
                Asset.serial_number.ilike(pattern),
                Asset.model.ilike(pattern),
                Asset.manufacturer.ilike(pattern),
                Asset.description.ilike(pattern),
            )
        )
    if asset_type_id is not None:
        q = q.filter(Asset.asset_type_id == asset_type_id)
    if status:
        q = q.filter(Asset.status == status)
    if condition:
        q = q.filter(Asset.condition == condition)
    if location_id is not None:
        q = q.filter(Asset.location_id == location_id)
    if assigned_to_user_id is not None:
        q = q.filter(Asset.assigned_to_user_id == assigned_to_user_id)
    if category:
        q = q.join(AssetType, AssetType.id == Asset.asset_type_id).filter(AssetType.category == category)
    if warranty_expiring:
        today = utcnow().date()
        q = q.filter(Asset.warranty_expiry >= today, Asset.warranty_expiry <= today + dt.timedelta(days=30))
    return q


def open_ticket_count(db: Session, asset_id: int) -> int:
    return (
        db.query(sqlfunc.count(TicketAsset.id))
        .join(Ticket, Ticket.id == TicketAsset.ticket_id)
        .filter(
            TicketAsset.asset_id == asset_id,
            Ticket.status.in_(OPEN_TICKET_STATUSES),
            Ticket.is_deleted == False,  # noqa: E712
        )
        .scalar()
        or 0
    )


def calculate_tco(db: Session, asset: Asset) -> float:
    maintenance = (
        db.query(sqlfunc.coalesce(sqlfunc.sum(AssetMaintenance.cost), 0.0))
        .filter(AssetMaintenance.asset_id == asset.id)
        .scalar()
    )
    contracts = (
        db.query(sqlfunc.coalesce(sqlfunc.sum(AssetContract.cost), 0.0))
        .filter(AssetContract.asset_id == asset.id, AssetContract.contract_type.in_(TCO_CONTRACT_TYPES))
        .scalar()
    )
    return round(float(asset.purchase_price or 0) + float(maintenance or 0) + float(contracts or 0), 2)


def asset_health(db: Session, asset: Asset) -> int:
    year_ago = utcnow().date() - dt.timedelta(days=365)
    recent_maintenance = (
        db.query(sqlfunc.count(AssetMaintenance.id))
        .filter(
            AssetMaintenance.asset_id == asset.id,
            or_(
                AssetMaintenance.completed_date >= year_ago,
                AssetMaintenance.scheduled_date >= year_ago,
            ),
        )
        .scalar()
        or 0
    )
    return calculate_health_score(
        purchase_date=asset.purchase_date,
        condition=asset.condition,
        maintenance_last_year=recent_maintenance,
        open_tickets=open_ticket_count(db, asset.id),
        warranty_expiry=asset.warranty_expiry,
    )


def asset_details(db: Session, asset: Asset) -> Dict[str, Any]:
    return {
        "asset": asset,
        "current_value": calculate_depreciation(asset.purchase_price, asset.depreciation_rate, asset.purchase_date),
        "total_cost_of_ownership": calculate_tco(db, asset),
        "health_score": asset_health(db, asset),
        "qr_data": generate_qr_data(asset),
        "open_tickets": open_ticket_count(db, asset.id),
    }


def add_maintenance(db: Session, user: User, asset_id: int, data: Dict[str, Any]) -> AssetMaintenance:
    asset = get_asset(db, asset_id)
    record = AssetMaintenance(asset_id=asset.id, created_by_user_id=user.id, **data)
    if record.status == "in_progress":
        asset.status = "in_maintenance"
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def update_maintenance(db: Session, maintenance_id: int, changes: Dict[str, Any]) -> AssetMaintenance:
    record = db.query(AssetMaintenance).filter(AssetMaintenance.id == maintenance_id).first()
    if not record:
        raise NotFound("Maintenance record not found")
    for key, value in changes.items():
        setattr(record, key, value)
    if record.status == "completed":
        record.completed_date = record.completed_date or utcnow().date()
        if record.asset.status == "in_maintenance":
            record.asset.status = "active"
    elif record.status == "in_progress":
        record.asset.status = "in_maintenance"
    db.commit()
    db.refresh(record)
    return record


def request_transfer(db: Session, user: User, asset_id: int, data: Dict[str, Any]) -> AssetTransfer:
    asset = get_asset(db, asset_id)
    to_user_id, to_location_id = data.get("to_user_id"), data.get("to_location_id")
    if to_user_id is None and to_location_id is None:
        raise ValidationFailed("A transfer needs a target user or location.")
    if to_user_id is not None and not db.query(User.id).filter(User.id == to_user_id).first():
        raise ValidationFailed("Target user not found.")
    if to_location_id is not None and not db.query(AssetLocation.id).filter(AssetLocation.id == to_location_id).first():
        raise ValidationFailed("Target location not found.")

    transfer = AssetTransfer(
        asset_id=asset.id,
        from_user_id=asset.assigned_to_user_id,
        to_user_id=to_user_id,
        from_location_id=asset.location_id,
        to_location_id=to_location_id,
        reason=data.get("reason"),
        requested_by_user_id=user.id,
    )
    db.add(transfer)
    db.commit()
    db.refresh(transfer)
    return transfer


def decide_transfer(db: Session, approver: User, transfer_id: int, approve: bool = True) -> AssetTransfer:
    transfer = db.query(AssetTransfer).filter(AssetTransfer.id == transfer_id).first()
    if not transfer:
        raise NotFound("Transfer not found")
    if transfer.status != "pending":
        raise ServiceError("Transfer has already been processed.")

    transfer.status = "approved" if approve else "rejected"
    transfer.approved_by_user_id = approver.id
    if approve:
        asset = get_asset(db, transfer.asset_id)
        if transfer.to_user_id is not None:
            asset.assigned_to_user_id = transfer.to_user_id
            asset.status = "active"
        if transfer.to_location_id is not None:
            asset.location_id = transfer.to_location_id
        transfer.transferred_at = utcnow()
    db.commit()
    db.refresh(transfer)
    return transfer


def link_ticket(db: Session, asset_id: int, ticket_id: int) -> TicketAsset:
    asset = get_asset(db, asset_id)
    ticket = get_ticket(db, ticket_id)
    existing = (
        db.query(TicketAsset)
        .filter(TicketAsset.asset_id == asset.id, TicketAsset.ticket_id == ticket.id)
        .first()
    )
    if existing:
        return existing
    link = TicketAsset(asset_id=asset.id, ticket_id=ticket.id)
    db.add(link)
    db.commit()
    db.refresh(link)
    return link


def dashboard(db: Session) -> Dict[str, Any]:
    base = db.query(Asset).filter(Asset.is_deleted == False)  # noqa: E712
    by_status = dict(base.with_entities(Asset.status, sqlfunc.count(Asset.id)).group_by(Asset.status).all())
    by_category = dict(
        base.join(AssetType, AssetType.id == Asset.asset_type_id)
        .with_entities(AssetType.category, sqlfunc.count(Asset.id))
        .group_by(AssetType.category)
        .all()
    )
    today = utcnow().date()
    expiring = build_search_query(db, warranty_expiring=True).count()
    pending_maintenance = (
        db.query(sqlfunc.count(AssetMaintenance.id))
        .filter(AssetMaintenance.status.in_(("scheduled", "in_progress")))
        .scalar()
        or 0
    )
    pending_transfers = (
        db.query(sqlfunc.count(AssetTransfer.id)).filter(AssetTransfer.status == "pending").scalar() or 0
    )
    total_value = 0.0
    for asset in base.all():
        value = calculate_depreciation(asset.purchase_price, asset.depreciation_rate, asset.purchase_date, today)
        total_value += value if value is not None else float(asset.purchase_price or 0)
    return {
        "total_assets": sum(by_status.values()),
        "by_status": by_status,
        "by_category": by_category,
        "warranty_expiring": expiring,
        "pending_maintenance": pending_maintenance,
        "pending_transfers": pending_transfers,
        "total_current_value": round(total_value, 2),
    }


def generate_report(db: Session, period_days: int = 30) -> Dict[str, Any]:
    now = utcnow()
    since = now - dt.timedelta(days=period_days)
    summary = dashboard(db)
    acquisitions = (
        db.query(sqlfunc.count(Asset.id))
        .filter(Asset.is_deleted == False, Asset.created_at >= since)  # noqa: E712
        .scalar()
        or 0
    )
    maintenance_cost = (
        db.query(sqlfunc.coalesce(sqlfunc.sum(AssetMaintenance.cost), 0.0))
        .filter(AssetMaintenance.created_at >= since)
        .scalar()
    )
    total_purchase = (
        db.query(sqlfunc.coalesce(sqlfunc.sum(Asset.purchase_price), 0.0))
        .filter(Asset.is_deleted == False)  # noqa: E712
        .scalar()
    )
    return {
        "period_days": period_days,
        "generated_at": now,
        "summary": summary,
        "new_assets": acquisitions,
        "maintenance_cost": round(float(maintenance_cost or 0), 2),
        "total_purchase_value": round(float(total_purchase or 0), 2),
    }
