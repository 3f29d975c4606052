from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import CHIEF_ROLES, require_roles
from ..db import get_db
from ..models.models import User
from ..schemas.audit import AuditLogResponse
from ..services.audit import compute_diff, get_audit_logs


router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=List[AuditLogResponse])
def list_audit_logs(
    table_name: Optional[str] = Query(None),
    record_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*CHIEF_ROLES)),
):
    result = []
    for entry in get_audit_logs(db, table_name, record_id, limit, offset):
        out = AuditLogResponse.model_validate(entry)
        out.user_name = entry.user.name if entry.user else None
        if entry.old_data and entry.new_data:
            out.changes = compute_diff(entry.old_data, entry.new_data)
        result.append(out)
    return result
