import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: uuid.UUID
    table_name: str
    record_id: str
    action: str
    old_data: Optional[dict] = None
    new_data: Optional[dict] = None
    changes: Optional[dict] = None
    user_id: Optional[uuid.UUID] = None
    user_name: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
