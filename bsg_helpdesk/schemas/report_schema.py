from typing import Dict, List, Optional

from pydantic import BaseModel

from bsg_helpdesk.schemas.ticket_schema import TicketResponse


class SummaryResponse(BaseModel):
    by_status: Dict[str, int]
    by_priority: Dict[str, int]


class DashboardResponse(BaseModel):
    total_tickets: int
    open_tickets: int
    overdue_tickets: int
    escalated_tickets: int
    sla_compliance_rate: Optional[float]
    avg_resolution_hours: Optional[float]
    by_status: Dict[str, int]
    by_priority: Dict[str, int]
    by_department: Dict[str, int]
    recent_tickets: List[TicketResponse]
