from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict


class BSGCategoryResponse(BaseModel):
    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    sort_order: int
    template_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class BSGCategoryRef(BaseModel):
    id: int
    name: str
    display_name: str

    model_config = ConfigDict(from_attributes=True)


class BSGTemplateResponse(BaseModel):
    id: int
    category_id: int
    template_number: int
    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    popularity_score: float
    usage_count: int
    category: Optional[BSGCategoryRef] = None

    model_config = ConfigDict(from_attributes=True)


class BSGTemplateListResponse(BaseModel):
    success: bool = True
    data: List[BSGTemplateResponse]
    total: int


class MasterDataResponse(BaseModel):
    id: int
    data_type: str
    code: Optional[str] = None
    name: str
    display_name: Optional[str] = None
    parent_id: Optional[int] = None
    extra_data: Optional[Dict[str, Any]] = Field(default=None, serialization_alias="metadata")
    sort_order: int
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class UsageRequest(BaseModel):
    action_type: Literal["viewed", "started", "completed", "abandoned"]
    session_id: Optional[str] = Field(default=None, max_length=128)
    completion_time_ms: Optional[int] = Field(default=None, ge=0)


class UsageResponse(BaseModel):
    success: bool = True
    usage_count: int
    popularity_score: float


class ValidateRequest(BaseModel):
    values: Dict[str, Any] = Field(default_factory=dict)


class ValidateResponse(BaseModel):
    valid: bool
    errors: List[str]
    values: Dict[str, str]


class MasterDataNode(MasterDataResponse):
    children: List["MasterDataNode"] = Field(default_factory=list)


class MasterDataCreate(BaseModel):
    code: Optional[str] = Field(default=None, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    display_name: Optional[str] = Field(default=None, max_length=255)
    parent_id: Optional[int] = None
    extra_data: Optional[Dict[str, Any]] = Field(default=None, alias="metadata")
    sort_order: int = 0

    model_config = ConfigDict(populate_by_name=True)


class MasterDataUpdate(BaseModel):
    code: Optional[str] = Field(default=None, max_length=64)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    display_name: Optional[str] = Field(default=None, max_length=255)
    parent_id: Optional[int] = None
    extra_data: Optional[Dict[str, Any]] = Field(default=None, alias="metadata")
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None

    model_config = ConfigDict(populate_by_name=True)


class BulkImportRequest(BaseModel):
    entities: List[Dict[str, Any]] = Field(default_factory=list)


class BulkImportError(BaseModel):
    index: int
    code: Optional[str] = None
    error: str


class BulkImportSummary(BaseModel):
    total: int
    created: int
    failed: int


class BulkImportResponse(BaseModel):
    success: bool = True
    created: List[MasterDataResponse]
    errors: List[BulkImportError]
    summary: BulkImportSummary
