import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth.security import MANAGER_ROLES, require_roles
from ..db import get_db
from ..logging import structlog
from ..models.models import User
from ..schemas.auth import UserResponse
from ..schemas.employees import BulkDeleteRequest, EmployeeImportResult
from ..services.excel_export import to_csv
from ..services.importers import (
    EMPLOYEE_TEMPLATE_HEADERS,
    EMPLOYEE_TEMPLATE_ROWS,
    parse_employees,
    save_employees,
)
from ..services.sheets import read_grid
from ..services.visibility import company_scope, write_company


router = APIRouter(prefix="/employees", tags=["employees"])
log = structlog.get_logger(__name__)


def _scoped(db: Session, user: User, company_id: Optional[str] = None):
    query = db.query(User)
    scope = company_scope(user, company_id)
    if scope:
        query = query.filter(User.company_id == scope)
    return query


@router.get("", response_model=List[UserResponse])
def list_employees(
    company_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """Registered users and imported profiles still waiting for registration."""
    query = _scoped(db, user, company_id)
    if status:
        query = query.filter(User.status == status.upper())
    return query.order_by(User.name).all()


@router.get("/template")
def employee_template(user: User = Depends(require_roles(*MANAGER_ROLES))):
    content = to_csv(EMPLOYEE_TEMPLATE_HEADERS, EMPLOYEE_TEMPLATE_ROWS, delimiter=",")
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="template_funcionarios.csv"'},
    )


@router.post("/import", response_model=EmployeeImportResult)
def import_employees(
    file: UploadFile = File(...),
    company_id: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    rows = read_grid(file.filename or "", file.file.read())
    employees = parse_employees(rows, write_company(user, company_id))
    created, skipped = save_employees(db, employees)
    return EmployeeImportResult(created=created, skipped=skipped)


# ---------- PENDING INVITES ----------
@router.delete("/invites/{employee_id}")
def delete_invite(
    employee_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    employee = _scoped(db, user).filter(User.id == employee_id).first()
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found")
    if employee.status != "PENDING":
        raise HTTPException(status_code=400, detail="Only pending profiles can be deleted")
    db.delete(employee)
    db.commit()
    log.info("pending_profile_deleted", employee_id=str(employee_id))
    return {"message": "Invite deleted successfully"}


@router.post("/invites/bulk-delete")
def bulk_delete_invites(
    payload: BulkDeleteRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    if not payload.ids:
        return {"deleted": 0}
    deleted = (
        _scoped(db, user)
        .filter(User.id.in_(payload.ids), User.status == "PENDING")
        .delete(synchronize_session=False)
    )
    db.commit()
    log.info("pending_profiles_bulk_deleted", requested=len(payload.ids), deleted=deleted)
    return {"deleted": deleted}
