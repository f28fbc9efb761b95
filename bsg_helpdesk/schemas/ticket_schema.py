from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict

from bsg_helpdesk.schemas.auth_schema import UserBrief

Priority = Literal["low", "medium", "high", "urgent"]
Status = Literal[
    "open",
    "pending_approval",
    "awaiting_changes",
    "approved",
    "rejected",
    "assigned",
    "in_progress",
    "resolved",
    "closed",
]
BusinessImpact = Literal["low", "medium", "high", "critical"]


class CustomFieldValueIn(BaseModel):
    field_definition_id: int
    value: Any = None


class TicketCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=1)
    item_id: int
    template_id: Optional[int] = None
    priority: Priority = "medium"
    custom_field_values: List[CustomFieldValueIn] = Field(default_factory=list)


class TicketUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1)
    priority: Optional[Priority] = None
    item_id: Optional[int] = None
    template_id: Optional[int] = None
    custom_field_values: Optional[List[CustomFieldValueIn]] = None
    status: Optional[Status] = None
    assigned_to_user_id: Optional[int] = None


class ApprovalRequest(BaseModel):
    action: Literal["approve", "reject", "request_changes"]
    comments: Optional[str] = Field(default=None, max_length=4000)


class CommentsRequest(BaseModel):
    comments: Optional[str] = Field(default=None, max_length=4000)


class FieldValueResponse(BaseModel):
    field_definition_id: int
    value: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BSGFieldValueResponse(BaseModel):
    field_id: int
    value: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ApprovalResponse(BaseModel):
    id: int
    ticket_id: int
    business_reviewer_id: int
    approval_type: str
    approval_status: str
    business_comments: Optional[str] = None
    gov_docs_verified: bool
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TicketResponse(BaseModel):
    id: int
    title: str
    description: str
    status: str
    priority: str
    created_by_user_id: int
    assigned_to_user_id: Optional[int] = None
    department_id: Optional[int] = None
    service_item_id: Optional[int] = None
    service_template_id: Optional[int] = None
    bsg_template_id: Optional[int] = None
    business_impact: Optional[str] = None
    is_kasda_ticket: bool
    requires_business_approval: bool
    manager_comments: Optional[str] = None
    sla_due_date: Optional[datetime] = None
    escalated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    user_issue_category: Optional[str] = None
    user_root_cause: Optional[str] = None
    confirmed_issue_category: Optional[str] = None
    confirmed_root_cause: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TicketDetailResponse(TicketResponse):
    created_by: Optional[UserBrief] = None
    assigned_to: Optional[UserBrief] = None
    tech_issue_category: Optional[str] = None
    tech_root_cause: Optional[str] = None
    classification_locked: bool = False
    field_values: List[FieldValueResponse] = []
    bsg_field_values: List[BSGFieldValueResponse] = []
    approvals: List[ApprovalResponse] = []


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    current_page: int
    total_pages: int
    total_tickets: int


class ServiceTicketCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=1)
    service_item_id: int
    service_template_id: Optional[int] = None
    bsg_template_id: Optional[int] = None
    business_impact: BusinessImpact = "medium"
    custom_field_values: Dict[int, Any] = Field(default_factory=dict)
    bsg_field_values: Dict[str, Any] = Field(default_factory=dict)


class TicketRouting(BaseModel):
    target_department: str
    requires_business_approval: bool
    is_kasda_ticket: bool
    estimated_resolution: str


class ServiceTicketCreatedResponse(BaseModel):
    ticket: TicketDetailResponse
    routing: TicketRouting


class BusinessApprovalRequest(BaseModel):
    action: Literal["approve", "reject", "review_required"]
    comments: Optional[str] = Field(default=None, max_length=4000)
    gov_docs_verified: bool = False


class PendingBusinessApproval(BaseModel):
    approval: ApprovalResponse
    ticket: TicketResponse


class CommentCreate(BaseModel):
    content: str = Field(..., max_length=10000)
    is_internal: bool = False
    parent_comment_id: Optional[int] = None


class CommentUpdate(BaseModel):
    content: str = Field(..., max_length=10000)


class CommentResponse(BaseModel):
    id: int
    ticket_id: int
    author_id: int
    author: Optional[UserBrief] = None
    parent_comment_id: Optional[int] = None
    content: str
    is_internal: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
