import datetime as dt
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func as sqlfunc, or_
from sqlalchemy.orm import Session, joinedload

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.core.errors import Conflict, NotFound, ServiceError, ValidationFailed
from bsg_helpdesk.models.asset import Asset, AssetLocation
from bsg_helpdesk.models.cmdb import (
    CIAttribute,
    CIAttributeValue,
    CIChange,
    CIIncident,
    CIRelationship,
    CIType,
    ConfigurationItem,
)
from bsg_helpdesk.models.ticket import Ticket
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services.asset_service import OPEN_TICKET_STATUSES
from bsg_helpdesk.services.ticket_workflow import get_ticket

logger = logging.getLogger(__name__)

CI_ID_PREFIX = "CI-"
RECENT_LIMIT = 10


# ----------------------------------
# CI types
# ----------------------------------

def list_ci_types(
    db: Session, *, category: Optional[str] = None, is_active: Optional[bool] = True
) -> List[Tuple[CIType, int]]:
    counts = dict(
        db.query(ConfigurationItem.ci_type_id, sqlfunc.count(ConfigurationItem.id))
        .group_by(ConfigurationItem.ci_type_id)
        .all()
    )
    q = db.query(CIType).options(joinedload(CIType.attributes))
    if category:
        q = q.filter(CIType.category == category)
    if is_active is not None:
        q = q.filter(CIType.is_active == is_active)
    return [(t, counts.get(t.id, 0)) for t in q.order_by(CIType.name).all()]


def create_ci_type(db: Session, data: Dict[str, Any]) -> CIType:
    if db.query(CIType.id).filter(CIType.name == data["name"]).first():
        raise Conflict("CI type already exists")
    attributes = data.pop("attributes", None) or []
    ci_type = CIType(**data)
    ci_type.attributes = [CIAttribute(**attr) for attr in attributes]
    db.add(ci_type)
    db.commit()
    db.refresh(ci_type)
    logger.info("CI type %s created with %d attributes", ci_type.name, len(attributes))
    return ci_type


# ----------------------------------
# Configuration items
# ----------------------------------

def generate_ci_id(db: Session) -> str:
    """Next ``CI-000042`` style identifier."""
    ids = [c for (c,) in db.query(ConfigurationItem.ci_id).filter(ConfigurationItem.ci_id.like(f"{CI_ID_PREFIX}%")).all()]
    sequences = [int(c[len(CI_ID_PREFIX):]) for c in ids if re.fullmatch(r"\d+", c[len(CI_ID_PREFIX):] or "")]
    return f"{CI_ID_PREFIX}{max(sequences, default=0) + 1:06d}"


def get_ci(db: Session, ci_pk: int) -> ConfigurationItem:
    ci = (
        db.query(ConfigurationItem)
        .options(joinedload(ConfigurationItem.ci_type), joinedload(ConfigurationItem.attribute_values))
        .filter(ConfigurationItem.id == ci_pk)
        .first()
    )
    if not ci:
        raise NotFound("Configuration item not found")
    return ci


def _check_references(db: Session, data: Dict[str, Any]) -> None:
    if data.get("asset_id") is not None:
        if not db.query(Asset.id).filter(Asset.id == data["asset_id"], Asset.is_deleted == False).first():  # noqa: E712
            raise ValidationFailed("Asset not found.")
    if data.get("location_id") is not None:
        if not db.query(AssetLocation.id).filter(AssetLocation.id == data["location_id"]).first():
            raise ValidationFailed("Location not found.")
    if data.get("owner_id") is not None:
        if not db.query(User.id).filter(User.id == data["owner_id"]).first():
            raise ValidationFailed("Owner not found.")


def _attribute_values(ci_type: CIType, values: List[Dict[str, Any]]) -> List[CIAttributeValue]:
    """Check submitted attribute values against the type's attribute list."""
    by_id = {a.id: a for a in ci_type.attributes}
    errors: List[str] = []
    given: Dict[int, Optional[str]] = {}
    for item in values:
        if item["attribute_id"] not in by_id:
            errors.append(f"Attribute {item['attribute_id']} does not belong to CI type '{ci_type.name}'.")
            continue
        given[item["attribute_id"]] = item.get("value")
    for attr in ci_type.attributes:
        if attr.is_required and not (given.get(attr.id) or "").strip():
            errors.append(f"Attribute '{attr.display_name}' is required.")
    if errors:
        raise ValidationFailed(errors[0], errors)
    return [CIAttributeValue(attribute_id=attr_id, value=value) for attr_id, value in given.items()]


def create_ci(db: Session, user: User, data: Dict[str, Any]) -> ConfigurationItem:
    ci_type = (
        db.query(CIType)
        .filter(CIType.id == data["ci_type_id"], CIType.is_active == True)  # noqa: E712
        .first()
    )
    if not ci_type:
        raise ValidationFailed("CI type not found.")
    _check_references(db, data)
    values = _attribute_values(ci_type, data.pop("attribute_values", None) or [])

    ci = ConfigurationItem(**data, ci_id=generate_ci_id(db), created_by_user_id=user.id)
    ci.attribute_values = values
    db.add(ci)
    db.commit()
    db.refresh(ci)
    logger.info("Configuration item %s (%s) created by user %s", ci.ci_id, ci.name, user.id)
    return ci


def update_ci(db: Session, ci_pk: int, changes: Dict[str, Any]) -> ConfigurationItem:
    ci = get_ci(db, ci_pk)
    _check_references(db, changes)
    values = changes.pop("attribute_values", None)
    if values is not None:
        # the submitted list replaces every stored value; old rows go first for the unique key
        replacement = _attribute_values(ci.ci_type, values)
        ci.attribute_values.clear()
        db.flush()
        ci.attribute_values = replacement
    for key, value in changes.items():
        setattr(ci, key, value)
    db.commit()
    db.refresh(ci)
    return ci


def build_ci_query(
    db: Session,
    *,
    search: Optional[str] = None,
    ci_type_id: Optional[int] = None,
    status: Optional[str] = None,
    business_criticality: Optional[str] = None,
    environment: Optional[str] = None,
    location_id: Optional[int] = None,
    owner_id: Optional[int] = None,
):
    q = db.query(ConfigurationItem)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(
            or_(
                ConfigurationItem.name.ilike(pattern),
                ConfigurationItem.ci_id.ilike(pattern),
                ConfigurationItem.description.ilike(pattern),
                ConfigurationItem.hostname.ilike(pattern),
                ConfigurationItem.ip_address.ilike(pattern),
            )
        )
    if ci_type_id is not None:
        q = q.filter(ConfigurationItem.ci_type_id == ci_type_id)
    if status:
        q = q.filter(ConfigurationItem.status == status)
    if business_criticality:
        q = q.filter(ConfigurationItem.business_criticality == business_criticality)
    if environment:
        q = q.filter(ConfigurationItem.environment == environment)
    if location_id is not None:
        q = q.filter(ConfigurationItem.location_id == location_id)
    if owner_id is not None:
        q = q.filter(ConfigurationItem.owner_id == owner_id)
    return q


def ci_details(db: Session, ci: ConfigurationItem) -> Dict[str, Any]:
    dependency_count = db.query(sqlfunc.count(CIRelationship.id)).filter(CIRelationship.child_ci_id == ci.id).scalar()
    dependent_count = db.query(sqlfunc.count(CIRelationship.id)).filter(CIRelationship.parent_ci_id == ci.id).scalar()
    incidents = (
        db.query(CIIncident)
        .filter(CIIncident.ci_id == ci.id)
        .order_by(CIIncident.created_at.desc(), CIIncident.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    changes = (
        db.query(CIChange)
        .filter(CIChange.ci_id == ci.id)
        .order_by(CIChange.created_at.desc(), CIChange.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    return {
        "ci": ci,
        "ci_type": ci.ci_type,
        "dependency_count": dependency_count or 0,
        "dependent_count": dependent_count or 0,
        "recent_incidents": incidents,
        "recent_changes": changes,
    }


# ----------------------------------
# Relationships
# ----------------------------------

def relationship_map(db: Session, ci_pk: int) -> Dict[str, List[CIRelationship]]:
    """``dependencies`` are the CIs this one sits under; ``dependents`` sit under it."""
    ci = get_ci(db, ci_pk)
    q = db.query(CIRelationship).options(joinedload(CIRelationship.parent), joinedload(CIRelationship.child))
    return {
        "dependencies": q.filter(CIRelationship.child_ci_id == ci.id).order_by(CIRelationship.id).all(),
        "dependents": q.filter(CIRelationship.parent_ci_id == ci.id).order_by(CIRelationship.id).all(),
    }


def add_relationship(db: Session, ci_pk: int, data: Dict[str, Any]) -> CIRelationship:
    parent = get_ci(db, ci_pk)
    child_id = data["child_ci_id"]
    if child_id == parent.id:
        raise ValidationFailed("A configuration item cannot be related to itself.")
    if not db.query(ConfigurationItem.id).filter(ConfigurationItem.id == child_id).first():
        raise ValidationFailed("Child configuration item not found.")
    existing = (
        db.query(CIRelationship.id)
        .filter(
            CIRelationship.parent_ci_id == parent.id,
            CIRelationship.child_ci_id == child_id,
            CIRelationship.relationship_type == data["relationship_type"],
        )
        .first()
    )
    if existing:
        raise ValidationFailed("Relationship already exists")

    rel = CIRelationship(parent_ci_id=parent.id, **data)
    db.add(rel)
    db.commit()
    db.refresh(rel)
    return rel


# ----------------------------------
# Incidents and changes
# ----------------------------------

def link_incident(db: Session, ci_pk: int, ticket_id: int, impact: str = "low") -> CIIncident:
    ci = get_ci(db, ci_pk)
    ticket = get_ticket(db, ticket_id)
    if db.query(CIIncident.id).filter(CIIncident.ci_id == ci.id, CIIncident.ticket_id == ticket.id).first():
        raise ValidationFailed("CI is already linked to this incident")
    link = CIIncident(ci_id=ci.id, ticket_id=ticket.id, impact=impact)
    db.add(link)
    db.commit()
    db.refresh(link)
    return link


def request_change(db: Session, user: User, ci_pk: int, data: Dict[str, Any]) -> CIChange:
    ci = get_ci(db, ci_pk)
    change = CIChange(ci_id=ci.id, requested_by_user_id=user.id, status="planning", **data)
    db.add(change)
    db.commit()
    db.refresh(change)
    logger.info("Change %s requested on %s by user %s", change.id, ci.ci_id, user.id)
    return change


def approve_change(db: Session, approver: User, change_id: int) -> CIChange:
    change = db.query(CIChange).filter(CIChange.id == change_id).first()
    if not change:
        raise NotFound("Change request not found")
    if change.status != "planning":
        raise ServiceError("Change request is not in planning status")
    change.status = "approved"
    change.approved_by_user_id = approver.id
    change.approved_at = utcnow()
    db.commit()
    db.refresh(change)
    return change


# ----------------------------------
# Dashboard
# ----------------------------------

def _grouped(db: Session, column) -> Dict[str, int]:
    return {
        (key or "unknown"): count
        for key, count in db.query(column, sqlfunc.count(ConfigurationItem.id)).group_by(column).all()
    }


def dashboard(db: Session, period_days: int = 30) -> Dict[str, Any]:
    since = utcnow() - dt.timedelta(days=period_days)
    by_type = (
        db.query(CIType.id, CIType.name, sqlfunc.count(ConfigurationItem.id))
        .join(ConfigurationItem, ConfigurationItem.ci_type_id == CIType.id)
        .group_by(CIType.id, CIType.name)
        .order_by(sqlfunc.count(ConfigurationItem.id).desc(), CIType.name)
        .limit(RECENT_LIMIT)
        .all()
    )
    by_status = _grouped(db, ConfigurationItem.status)
    relationship_stats = dict(
        db.query(CIRelationship.relationship_type, sqlfunc.count(CIRelationship.id))
        .group_by(CIRelationship.relationship_type)
        .all()
    )
    recent_changes = (
        db.query(CIChange)
        .filter(CIChange.created_at >= since)
        .order_by(CIChange.created_at.desc(), CIChange.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    active = (
        db.query(CIIncident)
        .join(Ticket, Ticket.id == CIIncident.ticket_id)
        .filter(Ticket.status.in_(OPEN_TICKET_STATUSES), Ticket.is_deleted == False)  # noqa: E712
    )
    pending_changes = db.query(sqlfunc.count(CIChange.id)).filter(CIChange.status == "planning").scalar() or 0
    return {
        "total_cis": sum(by_status.values()),
        "by_type": [{"ci_type_id": t_id, "type_name": name, "count": n} for t_id, name, n in by_type],
        "by_status": by_status,
        "by_environment": _grouped(db, ConfigurationItem.environment),
        "by_criticality": _grouped(db, ConfigurationItem.business_criticality),
        "relationship_stats": relationship_stats,
        "recent_changes": recent_changes,
        "active_incidents": active.order_by(CIIncident.id.desc()).limit(RECENT_LIMIT).all(),
        "alerts": {
            "pending_changes": pending_changes,
            "active_incidents": active.count(),
            "failed_cis": by_status.get("failed", 0),
        },
    }
