import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from .auth import UserResponse
from .tasks import TaskResponse


class TeamCreate(BaseModel):
    name: str
    leader_id: uuid.UUID
    technician_ids: List[uuid.UUID] = []


class TeamUpdate(BaseModel):
    name: Optional[str] = None
    leader_id: Optional[uuid.UUID] = None
    technician_ids: Optional[List[uuid.UUID]] = None


class TeamResponse(BaseModel):
    id: uuid.UUID
    name: str
    leader_id: uuid.UUID
    technician_ids: List[str]
    company_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TechnicianStatus(BaseModel):
    technician: UserResponse
    tasks: List[TaskResponse]
    completed: int
    pending: int
