from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func as sqlfunc, or_
from sqlalchemy.orm import Session, joinedload

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.core.errors import NotFound, PermissionDenied, ServiceError, ValidationFailed
from bsg_helpdesk.models.service_catalog import ServiceItem
from bsg_helpdesk.models.ticket import ClassificationAudit, Ticket
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services.ticket_workflow import get_ticket

ISSUE_CATEGORIES = [
    {"value": "request", "label": "Service Request", "description": "Need new service or changes to existing service"},
    {"value": "complaint", "label": "Service Complaint", "description": "Dissatisfied with service quality or delivery"},
    {"value": "problem", "label": "Technical Problem", "description": "Something is broken or not working properly"},
]
ROOT_CAUSES = [
    {"value": "human_error", "label": "User/Process Error", "description": "Wrong procedure, user mistake, or process issue"},
    {"value": "system_error", "label": "Technical/System Error", "description": "Software bug, hardware failure, or system issue"},
    {"value": "external_factor", "label": "External Issue", "description": "Vendor, network, or environmental factors"},
    {"value": "undetermined", "label": "Needs Investigation", "description": "Root cause requires further analysis"},
]
ISSUE_CATEGORY_VALUES = tuple(c["value"] for c in ISSUE_CATEGORIES)
ROOT_CAUSE_VALUES = tuple(c["value"] for c in ROOT_CAUSES)

KASDA_CATALOGS = ("kasda", "kasda support", "bsgdirect support")
TECHNICAL_CATALOGS = ("error surrounding", "error user aplikasi", "hardware & infrastructure", "network issues")
CLASSIFIER_ROLES = ("admin", "manager", "technician")


def suggest_for_item(db: Session, item_id: int) -> Dict[str, Any]:
    item = (
        db.query(ServiceItem)
        .options(joinedload(ServiceItem.catalog))
        .filter(ServiceItem.id == item_id)
        .first()
    )
    if not item:
        raise NotFound("Item not found")

    catalog_name = (item.catalog.name if item.catalog else "").strip().lower()
    name = item.name.lower()
    issue_category, root_cause = "request", "undetermined"

    is_kasda = item.is_kasda_related or catalog_name in KASDA_CATALOGS
    if is_kasda and ("user" in name or "account" in name):
        root_cause = "human_error"
    if catalog_name in TECHNICAL_CATALOGS:
        issue_category, root_cause = "problem", "system_error"
    if "password" in name or "reset" in name:
        root_cause = "human_error"
    if "error" in name or "gangguan" in name:
        issue_category, root_cause = "problem", "system_error"

    return {
        "item": {
            "id": item.id,
            "name": item.name,
            "catalog_name": item.catalog.name if item.catalog else None,
            "department_name": item.catalog.department.name if item.catalog and item.catalog.department else None,
            "is_kasda_related": is_kasda,
        },
        "suggestions": {
            "issue_category": issue_category,
            "root_cause": root_cause,
            "confidence": "medium",
        },
        "options": {"issue_categories": ISSUE_CATEGORIES, "root_causes": ROOT_CAUSES},
    }


def _validate_values(root_cause: Optional[str], issue_category: Optional[str]) -> None:
    if root_cause is None and issue_category is None:
        raise ValidationFailed("Provide a root cause or an issue category.")
    if root_cause is not None and root_cause not in ROOT_CAUSE_VALUES:
        raise ValidationFailed(f"Invalid root cause '{root_cause}'.")
    if issue_category is not None and issue_category not in ISSUE_CATEGORY_VALUES:
        raise ValidationFailed(f"Invalid issue category '{issue_category}'.")


def _set_audited(db: Session, ticket: Ticket, user: User, field: str, value: str, reason: Optional[str]) -> bool:
    old = getattr(ticket, field)
    if old == value:
        return False
    setattr(ticket, field, value)
    db.add(
        ClassificationAudit(
            ticket_id=ticket.id,
            changed_by_user_id=user.id,
            field_name=field,
            old_value=old,
            new_value=value,
            reason=reason,
        )
    )
    return True


def _apply_staff_classification(
    db: Session, ticket: Ticket, user: User, root_cause: Optional[str], issue_category: Optional[str], reason
) -> bool:
    changed = False
    if root_cause is not None:
        changed |= _set_audited(db, ticket, user, "tech_root_cause", root_cause, reason)
        changed |= _set_audited(db, ticket, user, "confirmed_root_cause", root_cause, reason)
    if issue_category is not None:
        changed |= _set_audited(db, ticket, user, "tech_issue_category", issue_category, reason)
        changed |= _set_audited(db, ticket, user, "confirmed_issue_category", issue_category, reason)
    return changed


def classify_ticket(
    db: Session,
    user: User,
    ticket_id: int,
    *,
    root_cause: Optional[str] = None,
    issue_category: Optional[str] = None,
    reason: Optional[str] = None,
) -> Ticket:
    """Record a classification; staff values win over requester values."""
    _validate_values(root_cause, issue_category)
    ticket = get_ticket(db, ticket_id)
    if ticket.classification_locked:
        raise ServiceError("Ticket classification is locked.")

    if user.role in CLASSIFIER_ROLES:
        changed = _apply_staff_classification(db, ticket, user, root_cause, issue_category, reason)
    elif ticket.created_by_user_id == user.id or user.is_business_reviewer:
        changed = False
        if root_cause is not None:
            changed |= _set_audited(db, ticket, user, "user_root_cause", root_cause, reason)
            if ticket.tech_root_cause is None:
                changed |= _set_audited(db, ticket, user, "confirmed_root_cause", root_cause, reason)
        if issue_category is not None:
            changed |= _set_audited(db, ticket, user, "user_issue_category", issue_category, reason)
            if ticket.tech_issue_category is None:
                changed |= _set_audited(db, ticket, user, "confirmed_issue_category", issue_category, reason)
    else:
        raise PermissionDenied("You are not allowed to categorize this ticket.")

    if changed:
        ticket.classified_at = utcnow()
        ticket.classified_by_user_id = user.id
    db.commit()
    db.refresh(ticket)
    return ticket


def bulk_classify(
    db: Session,
    user: User,
    ticket_ids: List[int],
    *,
    root_cause: Optional[str] = None,
    issue_category: Optional[str] = None,
    reason: Optional[str] = None,
) -> Tuple[List[int], List[int]]:
    _validate_values(root_cause, issue_category)
    tickets = (
        db.query(Ticket)
        .filter(Ticket.id.in_(ticket_ids), Ticket.is_deleted == False)  # noqa: E712
        .all()
    )
    found = {t.id: t for t in tickets}
    updated: List[int] = []
    skipped: List[int] = [tid for tid in ticket_ids if tid not in found]
    now = utcnow()
    for tid in ticket_ids:
        ticket = found.get(tid)
        if ticket is None:
            continue
        if ticket.classification_locked:
            skipped.append(tid)
            continue
        if _apply_staff_classification(db, ticket, user, root_cause, issue_category, reason):
            ticket.classified_at = now
            ticket.classified_by_user_id = user.id
        updated.append(tid)
    db.commit()
    return updated, skipped


def list_uncategorized(db: Session, *, limit: int = 20, offset: int = 0) -> Tuple[List[Ticket], int]:
    q = db.query(Ticket).filter(
        Ticket.is_deleted == False,  # noqa: E712
        or_(Ticket.confirmed_root_cause.is_(None), Ticket.confirmed_issue_category.is_(None)),
    )
    total = q.count()
    rows = q.order_by(Ticket.created_at.desc(), Ticket.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def lock_classification(db: Session, ticket_id: int, locked: bool = True) -> Ticket:
    ticket = get_ticket(db, ticket_id)
    ticket.classification_locked = locked
    db.commit()
    db.refresh(ticket)
    return ticket


def classification_history(db: Session, ticket_id: int) -> List[ClassificationAudit]:
    get_ticket(db, ticket_id)
    return (
        db.query(ClassificationAudit)
        .filter(ClassificationAudit.ticket_id == ticket_id)
        .order_by(ClassificationAudit.id.desc())
        .all()
    )


def classification_stats(db: Session) -> Dict[str, Any]:
    base = db.query(Ticket).filter(Ticket.is_deleted == False)  # noqa: E712
    by_category = dict(
        base.with_entities(Ticket.confirmed_issue_category, sqlfunc.count(Ticket.id))
        .group_by(Ticket.confirmed_issue_category)
        .all()
    )
    by_cause = dict(
        base.with_entities(Ticket.confirmed_root_cause, sqlfunc.count(Ticket.id))
        .group_by(Ticket.confirmed_root_cause)
        .all()
    )
    return {
        "by_issue_category": {k or "uncategorized": v for k, v in by_category.items()},
        "by_root_cause": {k or "uncategorized": v for k, v in by_cause.items()},
        "total": sum(by_category.values()),
    }
