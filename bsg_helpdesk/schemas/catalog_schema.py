from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict

FieldType = Literal[
    "text",
    "textarea",
    "number",
    "currency",
    "date",
    "datetime",
    "email",
    "phone",
    "dropdown",
    "radio",
    "checkbox",
]
RequestType = Literal["service_request", "incident"]


class CatalogCreate(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    department_id: int


class CatalogUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    department_id: Optional[int] = None
    is_active: Optional[bool] = None


class CatalogResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    department_id: int
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CatalogStatistics(BaseModel):
    item_count: int
    template_count: int
    ticket_count: int


class CatalogAdminResponse(CatalogResponse):
    department_name: Optional[str] = None
    statistics: CatalogStatistics


class CatalogSummary(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    department_id: int
    department_name: Optional[str] = None
    service_count: int


class ItemCreate(BaseModel):
    catalog_id: int
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    request_type: RequestType = "service_request"
    is_kasda_related: bool = False
    requires_gov_approval: bool = False
    sort_order: int = 0


class ItemUpdate(BaseModel):
    catalog_id: Optional[int] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    request_type: Optional[RequestType] = None
    is_kasda_related: Optional[bool] = None
    requires_gov_approval: Optional[bool] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class ItemResponse(BaseModel):
    id: int
    catalog_id: int
    name: str
    description: Optional[str] = None
    request_type: str
    is_kasda_related: bool
    requires_gov_approval: bool
    is_active: bool
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class ServiceSummary(ItemResponse):
    template_count: int


class TemplateCreate(BaseModel):
    service_item_id: int
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_visible: bool = True
    requires_business_approval: bool = False
    estimated_resolution_hours: Optional[int] = Field(default=None, ge=1)
    sort_order: int = 0


class TemplateUpdate(BaseModel):
    service_item_id: Optional[int] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_visible: Optional[bool] = None
    requires_business_approval: Optional[bool] = None
    estimated_resolution_hours: Optional[int] = Field(default=None, ge=1)
    sort_order: Optional[int] = None


class FieldCreate(BaseModel):
    service_template_id: Optional[int] = None
    service_item_id: Optional[int] = None
    field_name: str = Field(..., min_length=1, max_length=128, pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    field_label: str = Field(..., min_length=1, max_length=255)
    field_type: FieldType = "text"
    options: Optional[List[str]] = None
    is_required: bool = False
    placeholder: Optional[str] = None
    default_value: Optional[str] = None
    validation_rules: Optional[Dict[str, Any]] = None
    sort_order: int = 0


class FieldUpdate(BaseModel):
    field_label: Optional[str] = Field(default=None, min_length=1, max_length=255)
    field_type: Optional[FieldType] = None
    options: Optional[List[str]] = None
    is_required: Optional[bool] = None
    placeholder: Optional[str] = None
    default_value: Optional[str] = None
    validation_rules: Optional[Dict[str, Any]] = None
    sort_order: Optional[int] = None


class FieldResponse(BaseModel):
    id: int
    service_template_id: Optional[int] = None
    service_item_id: Optional[int] = None
    field_name: str
    field_label: str
    field_type: str
    options: Optional[List[str]] = None
    is_required: bool
    placeholder: Optional[str] = None
    default_value: Optional[str] = None
    validation_rules: Optional[Dict[str, Any]] = None
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class TemplateResponse(BaseModel):
    id: int
    service_item_id: int
    name: str
    description: Optional[str] = None
    is_visible: bool
    requires_business_approval: bool
    estimated_resolution_hours: Optional[int] = None
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class TemplateWithFields(TemplateResponse):
    fields: List[FieldResponse] = []


class ServiceDetailResponse(BaseModel):
    item: ItemResponse
    templates: List[TemplateWithFields]
    item_fields: List[FieldResponse]


class SearchResult(BaseModel):
    template_id: int
    template_name: str
    template_description: Optional[str] = None
    item_id: int
    item_name: str
    catalog_id: int
    catalog_name: str
