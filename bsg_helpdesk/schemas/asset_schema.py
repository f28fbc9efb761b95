from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict

AssetCategory = Literal["hardware", "software", "network", "security", "facilities", "other"]
AssetStatus = Literal["active", "in_stock", "in_maintenance", "retired", "disposed"]
AssetCondition = Literal["new", "excellent", "good", "fair", "poor", "damaged", "non_functional"]
MaintenanceStatus = Literal["scheduled", "in_progress", "completed", "cancelled"]


class AssetTypeCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=128)
    category: AssetCategory = "other"
    description: Optional[str] = None


class AssetTypeResponse(BaseModel):
    id: int
    name: str
    category: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LocationCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    address: Optional[str] = None
    department_id: Optional[int] = None


class LocationResponse(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    department_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class AssetCreate(BaseModel):
    name: str = Field(..., max_length=255)
    asset_type_id: int
    description: Optional[str] = None
    location_id: Optional[int] = None
    assigned_to_user_id: Optional[int] = None
    serial_number: Optional[str] = Field(default=None, max_length=128)
    model: Optional[str] = Field(default=None, max_length=128)
    manufacturer: Optional[str] = Field(default=None, max_length=128)
    status: AssetStatus = "in_stock"
    condition: AssetCondition = "new"
    purchase_date: Optional[date] = None
    purchase_price: Optional[float] = None
    depreciation_rate: Optional[float] = None
    warranty_expiry: Optional[date] = None

    model_config = ConfigDict(protected_namespaces=())


class AssetUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    asset_type_id: Optional[int] = None
    description: Optional[str] = None
    location_id: Optional[int] = None
    assigned_to_user_id: Optional[int] = None
    serial_number: Optional[str] = Field(default=None, max_length=128)
    model: Optional[str] = Field(default=None, max_length=128)
    manufacturer: Optional[str] = Field(default=None, max_length=128)
    status: Optional[AssetStatus] = None
    condition: Optional[AssetCondition] = None
    purchase_date: Optional[date] = None
    purchase_price: Optional[float] = None
    depreciation_rate: Optional[float] = None
    warranty_expiry: Optional[date] = None

    model_config = ConfigDict(protected_namespaces=())


class AssetResponse(BaseModel):
    id: int
    asset_tag: str
    name: str
    description: Optional[str] = None
    asset_type_id: int
    location_id: Optional[int] = None
    assigned_to_user_id: Optional[int] = None
    serial_number: Optional[str] = None
    model: Optional[str] = None
    manufacturer: Optional[str] = None
    status: str
    condition: str
    purchase_date: Optional[date] = None
    purchase_price: Optional[float] = None
    depreciation_rate: Optional[float] = None
    warranty_expiry: Optional[date] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class AssetDetailResponse(BaseModel):
    asset: AssetResponse
    current_value: Optional[float] = None
    total_cost_of_ownership: float
    health_score: int
    qr_data: str
    open_tickets: int


class AssetListResponse(BaseModel):
    assets: List[AssetResponse]
    total: int
    page: int
    limit: int


class MaintenanceCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    maintenance_type: Literal["preventive", "corrective", "upgrade", "inspection"] = "preventive"
    description: Optional[str] = None
    status: MaintenanceStatus = "scheduled"
    cost: Optional[float] = Field(default=None, ge=0)
    scheduled_date: Optional[date] = None
    completed_date: Optional[date] = None
    performed_by: Optional[str] = None


class MaintenanceUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=255)
    description: Optional[str] = None
    status: Optional[MaintenanceStatus] = None
    cost: Optional[float] = Field(default=None, ge=0)
    scheduled_date: Optional[date] = None
    completed_date: Optional[date] = None
    performed_by: Optional[str] = None


class MaintenanceResponse(BaseModel):
    id: int
    asset_id: int
    maintenance_type: str
    title: str
    description: Optional[str] = None
    status: str
    cost: Optional[float] = None
    scheduled_date: Optional[date] = None
    completed_date: Optional[date] = None
    performed_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TransferCreate(BaseModel):
    to_user_id: Optional[int] = None
    to_location_id: Optional[int] = None
    reason: Optional[str] = None


class TransferDecision(BaseModel):
    approve: bool = True


class TransferResponse(BaseModel):
    id: int
    asset_id: int
    from_user_id: Optional[int] = None
    to_user_id: Optional[int] = None
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    status: str
    reason: Optional[str] = None
    requested_by_user_id: int
    approved_by_user_id: Optional[int] = None
    transferred_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LinkTicketRequest(BaseModel):
    ticket_id: int


class AssetDashboardResponse(BaseModel):
    total_assets: int
    by_status: Dict[str, int]
    by_category: Dict[str, int]
    warranty_expiring: int
    pending_maintenance: int
    pending_transfers: int
    total_current_value: float


class AssetReportResponse(BaseModel):
    period_days: int
    generated_at: datetime
    summary: AssetDashboardResponse
    new_assets: int
    maintenance_cost: float
    total_purchase_value: float
