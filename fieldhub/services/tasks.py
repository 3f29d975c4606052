"""
Task lifecycle: status changes, evidence and assignment notifications.
"""
import os
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import Forbidden, NotFound, ValidationFailed
from ..models.models import Task, TaskEvidence, User
from ..schemas.tasks import EvidenceStage, TaskStatus, TaskStatusUpdate
from ..storage.provider import StorageProvider, object_key
from .audit import create_audit_log, row_to_dict
from .images import shrink_photo
from .visibility import is_technician, sees_all_companies


log = structlog.get_logger(__name__)

REQUIRED_STAGES = {s.value for s in EvidenceStage}


def get_visible_task(db: Session, user: User, task_id: uuid.UUID) -> Task:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise NotFound("Task not found")
    if is_technician(user):
        if task.technician_id != user.id:
            raise Forbidden("Technicians can only change their own tasks")
    elif task.company_id != user.company_id and not sees_all_companies(user):
        raise NotFound("Task not found")
    return task


def apply_status(db: Session, user: User, task: Task, update: TaskStatusUpdate) -> Task:
    before = row_to_dict(task)
    status = update.status
    now = datetime.now(timezone.utc)
    if status == TaskStatus.bloqueado:
        if not (update.blocking_reason or "").strip():
            raise ValidationFailed("A blocking reason is required")
        task.blocking_reason = update.blocking_reason.strip()
    elif status == TaskStatus.nao_realizado:
        if not (update.not_performed_reason or "").strip():
            raise ValidationFailed("A reason is required when the task was not performed")
        task.not_performed_reason = update.not_performed_reason.strip()
    elif status == TaskStatus.em_andamento:
        task.started_at = now
    elif status == TaskStatus.concluido:
        task.completed_at = now
    task.status = status.value
    create_audit_log(db, "tasks", task.id, "UPDATE", user.id, old_data=before, new_data=row_to_dict(task))
    db.commit()
    db.refresh(task)
    log.info("task_status_changed", task_id=str(task.id), status=task.status, user_id=str(user.id))
    return task


def missing_stages(task: Task) -> set:
    return REQUIRED_STAGES - {e.stage for e in task.evidence}


def complete_task(db: Session, user: User, task: Task) -> Task:
    missing = missing_stages(task)
    if missing:
        order = [s.value for s in EvidenceStage if s.value in missing]
        raise ValidationFailed(f"Missing evidence photos: {', '.join(order)}")
    return apply_status(db, user, task, TaskStatusUpdate(status=TaskStatus.concluido))


def add_evidence(
    db: Session,
    storage: StorageProvider,
    task: Task,
    stage: EvidenceStage,
    filename: Optional[str],
    content: bytes,
    content_type: Optional[str],
    lat: Optional[float],
    lng: Optional[float],
) -> TaskEvidence:
    ext = os.path.splitext(filename or "")[1].lstrip(".").lower() or "jpg"
    content, is_jpeg = shrink_photo(content)
    if is_jpeg:
        ext, content_type = "jpg", "image/jpeg"
    ts = int(datetime.now(timezone.utc).timestamp() * 1000)
    key = object_key("assets", "evidence", str(task.id), f"{stage.value}_{ts}.{ext}")
    storage.put(key, content, content_type)
    evidence = TaskEvidence(
        task_id=task.id,
        stage=stage.value,
        storage_key=key,
        photo_url=storage.public_url(key),
        lat=lat,
        lng=lng,
        gps_accuracy=settings.evidence_gps_accuracy_m,
    )
    db.add(evidence)
    db.commit()
    db.refresh(evidence)
    log.info("task_evidence_added", task_id=str(task.id), stage=stage.value, key=key)
    return evidence


def assignment_event(task: Task) -> dict:
    return {
        "task_id": str(task.id),
        "asset_id": task.asset_id,
        "service_type": task.service_type,
        "scheduled_date": task.scheduled_date.isoformat(),
        "address": (task.asset_json or {}).get("location", {}).get("address"),
    }
