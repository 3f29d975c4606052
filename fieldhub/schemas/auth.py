import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class UserRole(str, Enum):
    tecnico = "TECNICO"
    lider = "LIDER"
    chefe = "CHEFE"
    parceiro_tecnico = "PARCEIRO_TECNICO"
    parceiro_lider = "PARCEIRO_LIDER"
    parceiro_chefe = "PARCEIRO_CHEFE"


class Portal(str, Enum):
    internal = "internal"
    partner = "partner"


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str
    role: UserRole
    portal: Portal = Portal.internal
    company_id: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    portal: Portal = Portal.internal


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    role: str
    company_id: str
    status: str
    avatar_url: Optional[str] = None
    employee_code: Optional[str] = None
    job_title: Optional[str] = None
    shift: Optional[str] = None
    leader_name: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    avatar_url: Optional[str] = None
