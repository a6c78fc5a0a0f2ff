from typing import List, Optional

from pydantic import BaseModel, Field


class UserProfileUpdate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=64)
    job_title: Optional[str] = Field(None, max_length=255)
    department: Optional[str] = Field(None, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    company_id: Optional[int] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


class RoleChange(BaseModel):
    role: str


class StatusToggle(BaseModel):
    is_active: bool


class BulkRoleUpdate(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    role: str


class BulkStatusUpdate(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    is_active: bool


class BulkCompanyAssign(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    company_id: int
