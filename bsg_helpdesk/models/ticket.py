from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from bsg_helpdesk.core.database import Base

TICKET_STATUSES = (
    "open",
    "pending_approval",
    "awaiting_changes",
    "approved",
    "rejected",
    "assigned",
    "in_progress",
    "resolved",
    "closed",
)
TICKET_PRIORITIES = ("low", "medium", "high", "urgent")
BUSINESS_IMPACTS = ("low", "medium", "high", "critical")
APPROVAL_STATUSES = ("pending", "approved", "rejected", "changes_requested")


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String(32), default="open", nullable=False, index=True)
    priority = Column(String(16), default="medium", nullable=False, index=True)

    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_to_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)

    service_item_id = Column(Integer, ForeignKey("service_items.id"), nullable=True)
    service_template_id = Column(Integer, ForeignKey("service_templates.id"), nullable=True)
    bsg_template_id = Column(Integer, ForeignKey("bsg_templates.id"), nullable=True)

    business_impact = Column(String(16), nullable=True)
    is_kasda_ticket = Column(Boolean, default=False, nullable=False)
    requires_business_approval = Column(Boolean, default=False, nullable=False)
    manager_comments = Column(Text, nullable=True)

    sla_due_date = Column(DateTime, nullable=True, index=True)
    escalated_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    # Classification: user_* from the requester, tech_* from staff, confirmed_* is authoritative
    user_root_cause = Column(String(32), nullable=True)
    user_issue_category = Column(String(32), nullable=True)
    tech_root_cause = Column(String(32), nullable=True)
    tech_issue_category = Column(String(32), nullable=True)
    confirmed_root_cause = Column(String(32), nullable=True)
    confirmed_issue_category = Column(String(32), nullable=True, index=True)
    classification_locked = Column(Boolean, default=False, nullable=False)
    classified_at = Column(DateTime, nullable=True)
    classified_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), index=True)
    updated_at = Column(DateTime, onupdate=func.now())

    created_by = relationship("User", foreign_keys=[created_by_user_id])
    assigned_to = relationship("User", foreign_keys=[assigned_to_user_id])
    department = relationship("Department")
    service_item = relationship("ServiceItem")
    service_template = relationship("ServiceTemplate")
    bsg_template = relationship("BSGTemplate")
    field_values = relationship("TicketFieldValue", back_populates="ticket", cascade="all, delete-orphan")
    bsg_field_values = relationship("TicketBSGFieldValue", back_populates="ticket", cascade="all, delete-orphan")
    approvals = relationship("BusinessApproval", back_populates="ticket", cascade="all, delete-orphan")


class TicketFieldValue(Base):
    __tablename__ = "ticket_field_values"
    __table_args__ = (UniqueConstraint("ticket_id", "field_definition_id", name="uq_ticket_field_value"),)

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    field_definition_id = Column(Integer, ForeignKey("custom_field_definitions.id"), nullable=False)
    value = Column(Text, nullable=True)

    ticket = relationship("Ticket", back_populates="field_values")
    field_definition = relationship("CustomFieldDefinition")


class TicketBSGFieldValue(Base):
    __tablename__ = "ticket_bsg_field_values"
    __table_args__ = (UniqueConstraint("ticket_id", "field_id", name="uq_ticket_bsg_field_value"),)

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    field_id = Column(Integer, ForeignKey("bsg_template_fields.id"), nullable=False)
    value = Column(Text, nullable=True)

    ticket = relationship("Ticket", back_populates="bsg_field_values")
    field = relationship("BSGTemplateField")


class BusinessApproval(Base):
    """One reviewer's decision on a ticket (manager approval or business approval)."""

    __tablename__ = "business_approvals"
    __table_args__ = (UniqueConstraint("ticket_id", "business_reviewer_id", name="uq_approval_ticket_reviewer"),)

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    business_reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    approval_type = Column(String(16), default="business", nullable=False)  # manager | business
    approval_status = Column(String(32), default="pending", nullable=False)
    business_comments = Column(Text, nullable=True)
    gov_docs_verified = Column(Boolean, default=False, nullable=False)
    approved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    ticket = relationship("Ticket", back_populates="approvals")
    reviewer = relationship("User")


class TicketComment(Base):
    __tablename__ = "ticket_comments"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    parent_comment_id = Column(Integer, ForeignKey("ticket_comments.id"), nullable=True)
    content = Column(Text, nullable=False)
    is_internal = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    author = relationship("User")


class ClassificationAudit(Base):
    __tablename__ = "ticket_classification_audits"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    changed_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    field_name = Column(String(64), nullable=False)
    old_value = Column(String(64), nullable=True)
    new_value = Column(String(64), nullable=True)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
