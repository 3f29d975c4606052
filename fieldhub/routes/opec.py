import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import MANAGER_ROLES, get_current_user, require_roles
from ..db import get_db
from ..models.models import OpecDevice, OpecItem, User
from ..schemas.assets import ImportSummary
from ..schemas.opec import (
    OpecDeviceCreate,
    OpecDeviceResponse,
    OpecDeviceUpdate,
    OpecItemCreate,
    OpecItemResponse,
    OpecItemUpdate,
)
from ..services.audit import create_audit_log, row_to_dict
from ..services.importers import parse_opec_devices, save_opec_devices
from ..services.sheets import read_grid
from ..services.visibility import company_scope, write_company


router = APIRouter(prefix="/opec", tags=["opec"])


def _scoped_device(db: Session, user: User, device_id: uuid.UUID) -> OpecDevice:
    device = db.query(OpecDevice).filter(OpecDevice.id == device_id).first()
    scope = company_scope(user)
    if not device or (scope and device.company_id != scope):
        raise HTTPException(status_code=404, detail="OPEC device not found")
    return device


def _scoped_item(db: Session, user: User, item_id: uuid.UUID) -> OpecItem:
    item = db.query(OpecItem).filter(OpecItem.id == item_id).first()
    scope = company_scope(user)
    if not item or (scope and item.company_id != scope):
        raise HTTPException(status_code=404, detail="OPEC assignment not found")
    return item


def _item_out(item: OpecItem) -> OpecItemResponse:
    out = OpecItemResponse.model_validate(item)
    out.employee_name = item.employee.name if item.employee else None
    return out


# ---------- DEVICES ----------
@router.get("/devices", response_model=List[OpecDeviceResponse])
def list_devices(
    q: Optional[str] = Query(None),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = db.query(OpecDevice)
    scope = company_scope(user, company_id)
    if scope:
        query = query.filter(OpecDevice.company_id == scope)
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(
            OpecDevice.asset_code.ilike(term),
            OpecDevice.phone_number.ilike(term),
            OpecDevice.model.ilike(term),
            OpecDevice.serial_number.ilike(term),
        ))
    return query.order_by(OpecDevice.asset_code).all()


@router.post("/devices", response_model=OpecDeviceResponse)
def create_device(
    payload: OpecDeviceCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    device = OpecDevice(company_id=write_company(user, payload.company_id), **payload.dict(exclude={"company_id"}))
    db.add(device)
    db.commit()
    db.refresh(device)
    return device


@router.put("/devices/{device_id}", response_model=OpecDeviceResponse)
def update_device(
    device_id: uuid.UUID,
    update: OpecDeviceUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    device = _scoped_device(db, user, device_id)
    before = row_to_dict(device)
    for key, value in update.dict(exclude_unset=True).items():
        setattr(device, key, value)
    create_audit_log(db, "opec_devices", device.id, "UPDATE", user.id, old_data=before, new_data=row_to_dict(device))
    db.commit()
    db.refresh(device)
    return device


@router.delete("/devices/{device_id}")
def delete_device(
    device_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    device = _scoped_device(db, user, device_id)
    create_audit_log(db, "opec_devices", device.id, "DELETE", user.id, old_data=row_to_dict(device))
    db.delete(device)
    db.commit()
    return {"message": "OPEC device deleted successfully"}


@router.post("/devices/import", response_model=ImportSummary)
def import_devices(
    file: UploadFile = File(...),
    company_id: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    rows = read_grid(file.filename or "", file.file.read())
    devices = parse_opec_devices(rows, write_company(user, company_id))
    return ImportSummary(imported=save_opec_devices(db, devices))


# ---------- ASSIGNMENTS ----------
@router.get("/items", response_model=List[OpecItemResponse])
def list_items(
    q: Optional[str] = Query(None),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = db.query(OpecItem).outerjoin(User, User.id == OpecItem.employee_id)
    scope = company_scope(user, company_id)
    if scope:
        query = query.filter(OpecItem.company_id == scope)
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(OpecItem.opec_name.ilike(term), User.name.ilike(term)))
    return [_item_out(i) for i in query.order_by(OpecItem.assignment_date.desc()).all()]


@router.post("/items", response_model=OpecItemResponse)
def create_item(
    payload: OpecItemCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    employee = db.query(User).filter(User.id == payload.employee_id).first()
    scope = company_scope(user)
    if not employee or (scope and employee.company_id != scope):
        raise HTTPException(status_code=404, detail="Employee not found")
    item = OpecItem(company_id=employee.company_id, **payload.dict())
    db.add(item)
    db.commit()
    db.refresh(item)
    return _item_out(item)


@router.put("/items/{item_id}", response_model=OpecItemResponse)
def update_item(
    item_id: uuid.UUID,
    update: OpecItemUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    item = _scoped_item(db, user, item_id)
    for key, value in update.dict(exclude_unset=True).items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    return _item_out(item)


@router.delete("/items/{item_id}")
def delete_item(
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    item = _scoped_item(db, user, item_id)
    db.delete(item)
    db.commit()
    return {"message": "OPEC assignment deleted successfully"}
