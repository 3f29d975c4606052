"""
Audit logging service.
Append-only trail of row changes, one entry per insert/update/delete.
"""
import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from ..models.models import AuditLog


def _json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def row_to_dict(obj) -> Dict[str, Any]:
    """Column values of a mapped object, JSON-ready."""
    return {c.key: _json_value(getattr(obj, c.key)) for c in inspect(obj).mapper.column_attrs}


def create_audit_log(
    db: Session,
    table_name: str,
    record_id: Any,
    action: str,
    user_id: Optional[uuid.UUID] = None,
    old_data: Optional[Dict] = None,
    new_data: Optional[Dict] = None,
) -> AuditLog:
    """
    Stage an audit entry in the caller's session.

    The entry is committed together with the change it describes.

    Args:
        db: Database session
        table_name: Table the change applies to
        record_id: Primary key of the changed row
        action: INSERT|UPDATE|DELETE
        user_id: User who made the change
        old_data: Row before the change (UPDATE/DELETE)
        new_data: Row after the change (INSERT/UPDATE)
    """
    entry = AuditLog(
        table_name=table_name,
        record_id=str(record_id),
        action=action,
        user_id=user_id,
        old_data=old_data,
        new_data=new_data,
    )
    db.add(entry)
    return entry


def compute_diff(before: Dict, after: Dict) -> Dict:
    """
    Compute a diff between two dictionaries.

    Returns:
        Dict with before/after values for changed fields
    """
    diff = {}
    for key in set(before.keys()) | set(after.keys()):
        before_val = before.get(key)
        after_val = after.get(key)
        if before_val != after_val:
            diff[key] = {"before": before_val, "after": after_val}
    return diff


def get_audit_logs(
    db: Session,
    table_name: Optional[str] = None,
    record_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> list:
    query = db.query(AuditLog)
    if table_name:
        query = query.filter(AuditLog.table_name == table_name)
    if record_id:
        query = query.filter(AuditLog.record_id == record_id)
    return query.order_by(AuditLog.created_at.desc()).limit(limit).offset(offset).all()
