import os
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth.security import MANAGER_ROLES, get_current_user, require_roles
from ..db import get_db
from ..logging import structlog
from ..models.models import Absence, User
from ..schemas.employees import AbsenceCreate, AbsenceResponse
from ..services.audit import create_audit_log, row_to_dict
from ..services.excel_export import XLSX_MEDIA_TYPE, export_absences
from ..services.visibility import company_scope
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider, object_key


router = APIRouter(prefix="/absences", tags=["absences"])
log = structlog.get_logger(__name__)


def absence_out(absence: Absence) -> AbsenceResponse:
    out = AbsenceResponse.model_validate(absence)
    out.employee_name = absence.employee.name if absence.employee else None
    return out


def month_bounds(year: int, month: int):
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _parse_month(value: str):
    try:
        year, month = (int(p) for p in value.split("-", 1))
        return month_bounds(year, month)
    except ValueError:
        raise HTTPException(status_code=400, detail="month must be YYYY-MM")


@router.get("", response_model=List[AbsenceResponse])
def list_absences(
    date_: Optional[date] = Query(None, alias="date"),
    month: Optional[str] = Query(None),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = db.query(Absence)
    scope = company_scope(user, company_id)
    if scope:
        query = query.filter(Absence.company_id == scope)
    if date_:
        query = query.filter(Absence.absence_date == date_)
    elif month:
        start, end = _parse_month(month)
        query = query.filter(Absence.absence_date >= start, Absence.absence_date < end)
    return [absence_out(a) for a in query.order_by(Absence.absence_date.desc()).all()]


@router.post("", response_model=AbsenceResponse)
def create_absence(
    payload: AbsenceCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    employee = db.query(User).filter(User.id == payload.employee_id).first()
    scope = company_scope(user)
    if not employee or (scope and employee.company_id != scope):
        raise HTTPException(status_code=404, detail="Employee not found")
    absence = Absence(
        employee_id=employee.id,
        company_id=employee.company_id,
        absence_date=payload.absence_date,
        reason=payload.reason.value,
        observation=payload.observation,
        evidence_url=payload.evidence_url,
        created_by=user.id,
    )
    db.add(absence)
    db.commit()
    db.refresh(absence)
    log.info("absence_recorded", employee_id=str(employee.id), date=absence.absence_date.isoformat())
    return absence_out(absence)


@router.post("/evidence")
def upload_absence_evidence(
    file: UploadFile = File(...),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
    storage: StorageProvider = Depends(get_storage),
):
    ext = os.path.splitext(file.filename or "")[1].lstrip(".").lower() or "pdf"
    ts = int(datetime.now(timezone.utc).timestamp() * 1000)
    key = object_key("absences", user.company_id, f"{ts}_{uuid.uuid4().hex[:8]}.{ext}")
    storage.put(key, file.file.read(), file.content_type)
    return {"url": storage.public_url(key), "key": key}


@router.get("/export")
def export_month(
    year: int = Query(...),
    month: int = Query(..., ge=1, le=12),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    start, end = month_bounds(year, month)
    query = db.query(Absence).filter(Absence.absence_date >= start, Absence.absence_date < end)
    scope = company_scope(user, company_id)
    if scope:
        query = query.filter(Absence.company_id == scope)
    content = export_absences(year, month, query.order_by(Absence.absence_date).all())
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="ausencias_{year}_{month:02d}.xlsx"'},
    )


@router.delete("/{absence_id}")
def delete_absence(
    absence_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    absence = db.query(Absence).filter(Absence.id == absence_id).first()
    scope = company_scope(user)
    if not absence or (scope and absence.company_id != scope):
        raise HTTPException(status_code=404, detail="Absence not found")
    create_audit_log(db, "absences", absence.id, "DELETE", user.id, old_data=row_to_dict(absence))
    db.delete(absence)
    db.commit()
    return {"message": "Absence deleted successfully"}
