import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from ..auth.security import MANAGER_ROLES, get_current_user, require_roles
from ..db import get_db
from ..logging import structlog
from ..models.models import Asset, Task, TaskEvidence, User
from ..schemas.assets import ImportSummary
from ..schemas.tasks import (
    AssetModel,
    EvidenceResponse,
    EvidenceStage,
    ServiceType,
    TaskAssign,
    TaskCreate,
    TaskResponse,
    TaskStatus,
    TaskStatusUpdate,
)
from ..services import tasks as task_service
from ..services.audit import create_audit_log, row_to_dict
from ..services.importers import asset_snapshot, parse_tasks
from ..services.realtime import hub, user_channel
from ..services.sheets import read_grid
from ..services.visibility import sees_all_companies, visible_tasks
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/tasks", tags=["tasks"])
log = structlog.get_logger(__name__)


def _notify_assignment(background_tasks: BackgroundTasks, task: Task) -> None:
    if task.technician_id:
        background_tasks.add_task(
            hub.publish, user_channel(str(task.technician_id)), "task.assigned", task_service.assignment_event(task)
        )


# ---------- TASKS ----------
@router.get("", response_model=List[TaskResponse])
def list_tasks(
    status: Optional[TaskStatus] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = visible_tasks(user, db.query(Task))
    if status:
        query = query.filter(Task.status == status.value)
    return query.limit(1000).all()


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(task_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return task_service.get_visible_task(db, user, task_id)


@router.post("", response_model=TaskResponse)
def create_task(
    payload: TaskCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    technician = None
    if payload.technician_id:
        technician = db.query(User).filter(User.id == payload.technician_id).first()
        if not technician:
            raise HTTPException(status_code=404, detail="Technician not found")
        if technician.company_id != user.company_id and not sees_all_companies(user):
            raise HTTPException(status_code=403, detail="Technician belongs to another company")
    company_id = technician.company_id if technician else user.company_id

    query = db.query(Asset).filter(Asset.code == payload.asset_id)
    if not sees_all_companies(user):
        query = query.filter(Asset.company_id == user.company_id)
    asset = query.first()
    if not asset:
        raise HTTPException(status_code=404, detail="Asset not found")

    task = Task(
        asset_id=asset.code,
        asset_json=asset_snapshot(asset),
        service_type=payload.service_type.value,
        status=TaskStatus.pendente.value,
        technician_id=payload.technician_id,
        leader_id=user.id,
        company_id=company_id,
        scheduled_date=payload.scheduled_date,
        description=payload.description,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    log.info("task_created", task_id=str(task.id), company_id=company_id, technician_id=str(task.technician_id))
    _notify_assignment(background_tasks, task)
    return task


@router.patch("/{task_id}/status", response_model=TaskResponse)
def update_status(
    task_id: uuid.UUID,
    update: TaskStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    task = task_service.get_visible_task(db, user, task_id)
    return task_service.apply_status(db, user, task, update)


@router.patch("/{task_id}/assign", response_model=TaskResponse)
def assign_task(
    task_id: uuid.UUID,
    payload: TaskAssign,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    task = task_service.get_visible_task(db, user, task_id)
    if payload.technician_id:
        technician = db.query(User).filter(User.id == payload.technician_id).first()
        if not technician or (technician.company_id != task.company_id and not sees_all_companies(user)):
            raise HTTPException(status_code=404, detail="Technician not found")
    before = row_to_dict(task)
    task.technician_id = payload.technician_id
    create_audit_log(db, "tasks", task.id, "UPDATE", user.id, old_data=before, new_data=row_to_dict(task))
    db.commit()
    db.refresh(task)
    _notify_assignment(background_tasks, task)
    return task


@router.post("/{task_id}/complete", response_model=TaskResponse)
def complete_task(task_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    task = task_service.get_visible_task(db, user, task_id)
    return task_service.complete_task(db, user, task)


# ---------- EVIDENCE ----------
@router.post("/{task_id}/evidence", response_model=EvidenceResponse)
def upload_evidence(
    task_id: uuid.UUID,
    file: UploadFile = File(...),
    stage: EvidenceStage = Form(...),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
):
    task = task_service.get_visible_task(db, user, task_id)
    return task_service.add_evidence(
        db, storage, task, stage, file.filename, file.file.read(), file.content_type, lat, lng
    )


@router.get("/{task_id}/evidence", response_model=List[EvidenceResponse])
def list_evidence(task_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    task = task_service.get_visible_task(db, user, task_id)
    return db.query(TaskEvidence).filter(TaskEvidence.task_id == task.id).order_by(TaskEvidence.captured_at).all()


# ---------- IMPORT ----------
@router.post("/import", response_model=ImportSummary)
def import_tasks(
    file: UploadFile = File(...),
    service_type: ServiceType = Form(...),
    scheduled_date: date = Form(...),
    asset_model: AssetModel = Form(AssetModel.shelter),
    preview: bool = Form(False),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    rows = read_grid(file.filename or "", file.file.read())
    known = {a.code: a for a in db.query(Asset).filter(Asset.company_id == user.company_id).all()}
    tasks, stats = parse_tasks(
        rows,
        asset_model=asset_model.value,
        service_type=service_type.value,
        scheduled_date=scheduled_date,
        leader=user,
        known_assets=known,
    )
    if preview:
        return ImportSummary(imported=0, preview=tasks, stats=stats)
    db.add_all([Task(**t) for t in tasks])
    db.commit()
    log.info("tasks_imported", count=len(tasks), company_id=user.company_id, asset_model=asset_model.value)
    return ImportSummary(imported=len(tasks), stats=stats)
