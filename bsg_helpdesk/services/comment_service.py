from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from bsg_helpdesk.core.errors import NotFound, PermissionDenied, ValidationFailed
from bsg_helpdesk.models.ticket import TicketComment
from bsg_helpdesk.models.user import User
from bsg_helpdesk.services.ticket_workflow import ensure_can_view, get_ticket


def list_comments(db: Session, user: User, ticket_id: int, include_internal: bool = False) -> List[TicketComment]:
    ticket = get_ticket(db, ticket_id)
    ensure_can_view(user, ticket)

    q = (
        db.query(TicketComment)
        .options(joinedload(TicketComment.author))
        .filter(TicketComment.ticket_id == ticket.id, TicketComment.is_deleted == False)  # noqa: E712
    )
    if not (user.is_staff and include_internal):
        q = q.filter(TicketComment.is_internal == False)  # noqa: E712
    return q.order_by(TicketComment.created_at.asc(), TicketComment.id.asc()).all()


def add_comment(
    db: Session,
    user: User,
    ticket_id: int,
    content: str,
    *,
    is_internal: bool = False,
    parent_comment_id: Optional[int] = None,
) -> TicketComment:
    if not content or not content.strip():
        raise ValidationFailed("Comment content is required.")
    ticket = get_ticket(db, ticket_id)
    ensure_can_view(user, ticket)

    if parent_comment_id is not None:
        parent = db.query(TicketComment).filter(TicketComment.id == parent_comment_id).first()
        if not parent or parent.ticket_id != ticket.id:
            raise ValidationFailed("Parent comment does not belong to this ticket.")

    comment = TicketComment(
        ticket_id=ticket.id,
        author_id=user.id,
        content=content.strip(),
        is_internal=bool(is_internal and user.is_staff),
        parent_comment_id=parent_comment_id,
    )
    db.add(comment)
    db.commit()
    db.refresh(comment)
    return comment


def _editable_comment(db: Session, user: User, comment_id: int) -> TicketComment:
    comment = (
        db.query(TicketComment)
        .filter(TicketComment.id == comment_id, TicketComment.is_deleted == False)  # noqa: E712
        .first()
    )
    if not comment:
        raise NotFound("Comment not found")
    if comment.author_id != user.id and not user.is_admin:
        raise PermissionDenied("You can only modify your own comments.")
    return comment


def update_comment(db: Session, user: User, comment_id: int, content: str) -> TicketComment:
    if not content or not content.strip():
        raise ValidationFailed("Comment content is required.")
    comment = _editable_comment(db, user, comment_id)
    comment.content = content.strip()
    db.commit()
    db.refresh(comment)
    return comment


def delete_comment(db: Session, user: User, comment_id: int) -> None:
    comment = _editable_comment(db, user, comment_id)
    comment.is_deleted = True
    db.commit()
