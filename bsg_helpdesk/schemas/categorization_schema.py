from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict

from bsg_helpdesk.schemas.ticket_schema import TicketResponse

IssueCategory = Literal["request", "complaint", "problem"]
RootCause = Literal["human_error", "system_error", "external_factor", "undetermined"]


class ClassifyRequest(BaseModel):
    root_cause: Optional[RootCause] = None
    issue_category: Optional[IssueCategory] = None
    reason: Optional[str] = Field(default=None, max_length=1000)


class BulkClassifyRequest(ClassifyRequest):
    ticket_ids: List[int] = Field(..., min_length=1, max_length=100)


class BulkClassifyResponse(BaseModel):
    updated: List[int]
    skipped: List[int]


class LockRequest(BaseModel):
    locked: bool = True


class ClassificationResponse(BaseModel):
    id: int
    user_root_cause: Optional[str] = None
    user_issue_category: Optional[str] = None
    tech_root_cause: Optional[str] = None
    tech_issue_category: Optional[str] = None
    confirmed_root_cause: Optional[str] = None
    confirmed_issue_category: Optional[str] = None
    classification_locked: bool
    classified_at: Optional[datetime] = None
    classified_by_user_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class AuditResponse(BaseModel):
    id: int
    ticket_id: int
    changed_by_user_id: int
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UncategorizedResponse(BaseModel):
    tickets: List[TicketResponse]
    total: int
    limit: int
    offset: int
