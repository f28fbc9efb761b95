from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict

CIStatus = Literal["active", "inactive", "maintenance", "retired", "failed"]
Criticality = Literal["low", "medium", "high", "critical"]
Environment = Literal["production", "staging", "development", "test"]
RelationshipType = Literal["depends_on", "runs_on", "hosted_on", "connects_to", "part_of", "uses"]
Impact = Literal["low", "medium", "high", "critical"]


class CIAttributeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    display_name: str = Field(..., min_length=1, max_length=255)
    attribute_type: Literal["text", "number", "date", "boolean"] = "text"
    is_required: bool = False
    sort_order: int = 0


class CIAttributeResponse(BaseModel):
    id: int
    name: str
    display_name: str
    attribute_type: str
    is_required: bool
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class CITypeCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=128)
    category: str = Field(..., min_length=2, max_length=64)
    description: Optional[str] = None
    icon: Optional[str] = Field(default=None, max_length=64)
    attributes: List[CIAttributeCreate] = Field(default_factory=list)


class CITypeResponse(BaseModel):
    id: int
    name: str
    category: str
    description: Optional[str] = None
    icon: Optional[str] = None
    is_active: bool
    attributes: List[CIAttributeResponse] = Field(default_factory=list)
    ci_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class AttributeValueIn(BaseModel):
    attribute_id: int
    value: Optional[str] = None


class AttributeValueOut(BaseModel):
    attribute_id: int
    value: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CICreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    ci_type_id: int
    description: Optional[str] = None
    asset_id: Optional[int] = None
    location_id: Optional[int] = None
    owner_id: Optional[int] = None
    status: CIStatus = "active"
    environment: Optional[Environment] = None
    business_criticality: Criticality = "medium"
    version: Optional[str] = Field(default=None, max_length=64)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    hostname: Optional[str] = Field(default=None, max_length=255)
    operating_system: Optional[str] = Field(default=None, max_length=128)
    notes: Optional[str] = None
    attribute_values: List[AttributeValueIn] = Field(default_factory=list)


class CIUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    asset_id: Optional[int] = None
    location_id: Optional[int] = None
    owner_id: Optional[int] = None
    status: Optional[CIStatus] = None
    environment: Optional[Environment] = None
    business_criticality: Optional[Criticality] = None
    version: Optional[str] = Field(default=None, max_length=64)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    hostname: Optional[str] = Field(default=None, max_length=255)
    operating_system: Optional[str] = Field(default=None, max_length=128)
    notes: Optional[str] = None
    attribute_values: Optional[List[AttributeValueIn]] = None


class CIRef(BaseModel):
    id: int
    ci_id: str
    name: str
    status: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CIResponse(BaseModel):
    id: int
    ci_id: str
    name: str
    description: Optional[str] = None
    ci_type_id: int
    asset_id: Optional[int] = None
    location_id: Optional[int] = None
    owner_id: Optional[int] = None
    status: str
    environment: Optional[str] = None
    business_criticality: str
    version: Optional[str] = None
    ip_address: Optional[str] = None
    hostname: Optional[str] = None
    operating_system: Optional[str] = None
    notes: Optional[str] = None
    attribute_values: List[AttributeValueOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CIListResponse(BaseModel):
    cis: List[CIResponse]
    total: int
    page: int
    limit: int


class RelationshipCreate(BaseModel):
    child_ci_id: int
    relationship_type: RelationshipType
    description: Optional[str] = None


class RelationshipResponse(BaseModel):
    id: int
    parent_ci_id: int
    child_ci_id: int
    relationship_type: str
    description: Optional[str] = None
    parent: Optional[CIRef] = None
    child: Optional[CIRef] = None

    model_config = ConfigDict(from_attributes=True)


class RelationshipMap(BaseModel):
    dependencies: List[RelationshipResponse]
    dependents: List[RelationshipResponse]


class IncidentLinkCreate(BaseModel):
    ticket_id: int
    impact: Impact = "low"


class IncidentLinkResponse(BaseModel):
    id: int
    ci_id: int
    ticket_id: int
    impact: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ChangeCreate(BaseModel):
    change_type: str = Field(..., min_length=1, max_length=64)
    change_description: str = Field(..., min_length=1)
    planned_date: Optional[datetime] = None
    impact: Impact = "low"
    notes: Optional[str] = None


class ChangeResponse(BaseModel):
    id: int
    ci_id: int
    change_type: str
    change_description: str
    planned_date: Optional[datetime] = None
    impact: str
    status: str
    notes: Optional[str] = None
    requested_by_user_id: int
    approved_by_user_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CIDetailResponse(BaseModel):
    ci: CIResponse
    ci_type: CITypeResponse
    dependency_count: int
    dependent_count: int
    recent_incidents: List[IncidentLinkResponse]
    recent_changes: List[ChangeResponse]


class TypeCount(BaseModel):
    ci_type_id: int
    type_name: str
    count: int


class CMDBAlerts(BaseModel):
    pending_changes: int
    active_incidents: int
    failed_cis: int


class CMDBDashboardResponse(BaseModel):
    total_cis: int
    by_type: List[TypeCount]
    by_status: Dict[str, int]
    by_environment: Dict[str, int]
    by_criticality: Dict[str, int]
    relationship_stats: Dict[str, int]
    recent_changes: List[ChangeResponse]
    active_incidents: List[IncidentLinkResponse]
    alerts: CMDBAlerts
