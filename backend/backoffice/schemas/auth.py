from typing import Optional

from pydantic import BaseModel


class CallerOut(BaseModel):
    id: Optional[int] = None
    external_id: str
    email: Optional[str] = None
    role: Optional[str] = None
    company_id: Optional[int] = None
    is_active: bool
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_completed: bool = False


class AccessCheck(BaseModel):
    has_access: bool
    role: Optional[str] = None
