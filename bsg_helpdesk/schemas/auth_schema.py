from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, ConfigDict

Role = Literal["admin", "manager", "technician", "requester"]


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=128)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=256)
    role: Role
    department_id: int
    unit_id: Optional[int] = None
    manager_id: Optional[int] = None
    workload_capacity: int = Field(default=5, ge=1, le=100)
    is_business_reviewer: bool = False
    is_kasda_user: bool = False
    primary_skill: Optional[str] = Field(default=None, max_length=64)
    experience_level: Optional[Literal["junior", "intermediate", "senior", "expert"]] = None


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=256)


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: str
    department_id: Optional[int] = None
    unit_id: Optional[int] = None
    manager_id: Optional[int] = None
    is_business_reviewer: bool
    is_kasda_user: bool
    workload_capacity: int
    primary_skill: Optional[str] = None
    experience_level: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserBrief(BaseModel):
    id: int
    username: str
    email: str
    role: str

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class UnitResponse(BaseModel):
    id: int
    code: str
    name: str
    display_name: Optional[str] = None
    unit_type: str
    department_id: int

    model_config = ConfigDict(from_attributes=True)


class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=128)
    description: Optional[str] = None
    department_type: Literal["internal", "business"] = "internal"


class DepartmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=128)
    description: Optional[str] = None
    department_type: Optional[Literal["internal", "business"]] = None


class DepartmentResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    department_type: str

    model_config = ConfigDict(from_attributes=True)


class DepartmentDetailResponse(DepartmentResponse):
    user_count: int
    catalog_count: int
