from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import get_current_user, require_business_reviewer
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.ticket_schema import (
    BusinessApprovalRequest,
    PendingBusinessApproval,
    ServiceTicketCreate,
    ServiceTicketCreatedResponse,
    TicketDetailResponse,
)
from bsg_helpdesk.services import approval_service, ticket_service

router = APIRouter()


@router.post("", response_model=ServiceTicketCreatedResponse, status_code=201)
def create_service_ticket(
    request: ServiceTicketCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ticket, routing = ticket_service.create_service_ticket(db, user, request)
    return {"ticket": ticket, "routing": routing}


@router.get("/pending-business-approvals", response_model=List[PendingBusinessApproval])
def pending_business_approvals(db: Session = Depends(get_db), reviewer: User = Depends(require_business_reviewer)):
    approvals = approval_service.pending_business_approvals(db, reviewer)
    return [{"approval": a, "ticket": a.ticket} for a in approvals]


@router.post("/business-approval/{ticket_id}", response_model=TicketDetailResponse)
def business_approval(
    ticket_id: int,
    request: BusinessApprovalRequest,
    db: Session = Depends(get_db),
    reviewer: User = Depends(require_business_reviewer),
):
    return approval_service.business_decision(
        db,
        reviewer,
        ticket_id,
        request.action,
        request.comments,
        request.gov_docs_verified,
    )


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
def get_service_ticket(ticket_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ticket_service.get_visible_ticket(db, user, ticket_id, department_wide=True)
