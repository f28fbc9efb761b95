from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bsg_helpdesk.api.dependencies import get_db
from bsg_helpdesk.api.security import get_current_user, require_admin, require_admin_or_manager
from bsg_helpdesk.models.user import User
from bsg_helpdesk.schemas.ticket_schema import (
    ApprovalRequest,
    CommentCreate,
    CommentResponse,
    CommentsRequest,
    CommentUpdate,
    TicketCreate,
    TicketDetailResponse,
    TicketListResponse,
    TicketResponse,
    TicketUpdate,
)
from bsg_helpdesk.services import comment_service, ticket_service
from bsg_helpdesk.services.approval_service import manager_decision

router = APIRouter()


@router.post("", response_model=TicketDetailResponse, status_code=201)
def create_ticket(request: TicketCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ticket_service.create_ticket(db, user, request)


@router.get("", response_model=TicketListResponse)
def list_tickets(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return ticket_service.list_tickets(
        db,
        user,
        page=page,
        limit=limit,
        status=status,
        priority=priority,
        search=search,
        category=category,
    )


@router.get("/pending-approvals", response_model=List[TicketResponse])
def pending_approvals(db: Session = Depends(get_db), user: User = Depends(require_admin_or_manager)):
    return ticket_service.pending_manager_approvals(db, user)


@router.put("/comments/{comment_id}", response_model=CommentResponse)
def update_comment(
    comment_id: int,
    request: CommentUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return comment_service.update_comment(db, user, comment_id, request.content)


@router.delete("/comments/{comment_id}")
def delete_comment(comment_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    comment_service.delete_comment(db, user, comment_id)
    return {"message": "Comment deleted successfully"}


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
def get_ticket(ticket_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ticket_service.get_visible_ticket(db, user, ticket_id)


@router.put("/{ticket_id}", response_model=TicketDetailResponse)
def update_ticket(
    ticket_id: int,
    request: TicketUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return ticket_service.update_ticket(db, user, ticket_id, request.model_dump(exclude_unset=True))


@router.delete("/{ticket_id}")
def delete_ticket(ticket_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    ticket_service.delete_ticket(db, ticket_id)
    return {"message": "Ticket deleted successfully"}


@router.put("/{ticket_id}/approval", response_model=TicketDetailResponse)
def decide_approval(
    ticket_id: int,
    request: ApprovalRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin_or_manager),
):
    return manager_decision(db, user, ticket_id, request.action, request.comments)


@router.post("/{ticket_id}/approve", response_model=TicketDetailResponse)
def approve_ticket(
    ticket_id: int,
    request: Optional[CommentsRequest] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin_or_manager),
):
    comments = request.comments if request else None
    return manager_decision(db, user, ticket_id, "approve", comments)


@router.post("/{ticket_id}/reject", response_model=TicketDetailResponse)
def reject_ticket(
    ticket_id: int,
    request: CommentsRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_admin_or_manager),
):
    return manager_decision(db, user, ticket_id, "reject", request.comments)


@router.get("/{ticket_id}/comments", response_model=List[CommentResponse])
def list_comments(
    ticket_id: int,
    include_internal: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return comment_service.list_comments(db, user, ticket_id, include_internal)


@router.post("/{ticket_id}/comments", response_model=CommentResponse, status_code=201)
def add_comment(
    ticket_id: int,
    request: CommentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return comment_service.add_comment(
        db,
        user,
        ticket_id,
        request.content,
        is_internal=request.is_internal,
        parent_comment_id=request.parent_comment_id,
    )
