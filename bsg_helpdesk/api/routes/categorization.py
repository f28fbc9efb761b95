from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import get_current_user, require_admin_or_manager, require_staff
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.categorization_schema import (
    AuditResponse,
    BulkClassifyRequest,
    BulkClassifyResponse,
    ClassificationResponse,
    ClassifyRequest,
    LockRequest,
    UncategorizedResponse,
)
from bsg_helpdesk.services import categorization_service

router = APIRouter()


@router.get("/suggestions/{item_id}")
def suggestions(item_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)) -> Dict[str, Any]:
    return categorization_service.suggest_for_item(db, item_id)


@router.post("/bulk", response_model=BulkClassifyResponse)
def bulk_classify(request: BulkClassifyRequest, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    updated, skipped = categorization_service.bulk_classify(
        db,
        user,
        request.ticket_ids,
        root_cause=request.root_cause,
        issue_category=request.issue_category,
        reason=request.reason,
    )
    return BulkClassifyResponse(updated=updated, skipped=skipped)


@router.get("/uncategorized", response_model=UncategorizedResponse)
def uncategorized(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    tickets, total = categorization_service.list_uncategorized(db, limit=limit, offset=offset)
    return {"tickets": tickets, "total": total, "limit": limit, "offset": offset}


@router.get("/stats")
def stats(db: Session = Depends(get_db), user: User = Depends(require_staff)) -> Dict[str, Any]:
    return categorization_service.classification_stats(db)


@router.put("/{ticket_id}", response_model=ClassificationResponse)
def classify(
    ticket_id: int,
    request: ClassifyRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return categorization_service.classify_ticket(
        db,
        user,
        ticket_id,
        root_cause=request.root_cause,
        issue_category=request.issue_category,
        reason=request.reason,
    )


@router.post("/{ticket_id}/lock", response_model=ClassificationResponse)
def lock(
    ticket_id: int,
    request: LockRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin_or_manager),
):
    return categorization_service.lock_classification(db, ticket_id, request.locked)


@router.get("/{ticket_id}/history", response_model=List[AuditResponse])
def history(ticket_id: int, db: Session = Depends(get_db), user: User = Depends(require_staff)):
    return categorization_service.classification_history(db, ticket_id)
