from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth.security import MANAGER_ROLES, require_roles
from ..db import get_db
from ..models.models import User
from ..services.excel_export import to_csv
from ..services.importers import parse_routes
from ..services.reports import TASK_CSV_HEADER, task_csv_rows, task_kpis, tasks_for
from ..services.sheets import read_grid
from ..services.visibility import company_scope


router = APIRouter(prefix="/reports", tags=["reports"])


def _names(db: Session) -> dict:
    return {str(u.id): u.name for u in db.query(User.id, User.name).all()}


@router.get("/tasks")
def task_report(
    month: Optional[str] = Query(None, description="YYYY-MM"),
    company_id: Optional[str] = Query("all"),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    tasks = tasks_for(db, company_scope(user, company_id), month)
    return task_kpis(tasks, _names(db))


@router.get("/tasks.csv")
def task_report_csv(
    month: Optional[str] = Query(None, description="YYYY-MM"),
    company_id: Optional[str] = Query("all"),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    tasks = tasks_for(db, company_scope(user, company_id), month)
    content = to_csv(TASK_CSV_HEADER, task_csv_rows(tasks, _names(db)))
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="relatorio_tarefas_{month or "geral"}.csv"'},
    )


@router.post("/routes/import")
def import_routes(
    file: UploadFile = File(...),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """Parse a field-service routes sheet for the dashboard; nothing is stored."""
    routes, stats = parse_routes(read_grid(file.filename or "", file.file.read()), date.today())
    return {"routes": routes, "stats": stats}
