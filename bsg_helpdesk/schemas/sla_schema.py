import datetime as dt
from datetime import datetime, time
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict, model_validator


class BusinessHoursEntry(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def _check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class BusinessHoursUpdate(BaseModel):
    days: List[BusinessHoursEntry]


class HolidayCreate(BaseModel):
    date: dt.date
    name: str = Field(..., min_length=2, max_length=255)
    department_id: Optional[int] = None


class HolidayResponse(BaseModel):
    id: int
    date: dt.date
    name: str
    department_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class SlaCalculateRequest(BaseModel):
    business_impact: Literal["low", "medium", "high", "critical"] = "medium"
    department_id: Optional[int] = None
    is_kasda: bool = False
    start: Optional[datetime] = None


class SlaCalculateResponse(BaseModel):
    start: datetime
    sla_hours: int
    due_date: datetime
    business_hours_applied: bool


class SlaStatusResponse(BaseModel):
    ticket_id: int
    sla_due_date: Optional[datetime] = None
    remaining_minutes: Optional[int] = None
    is_breached: bool
    is_escalated: bool
    status: str
    priority: str


class EscalationRunResponse(BaseModel):
    escalated_ticket_ids: List[int]
