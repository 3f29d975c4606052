import uuid
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import MANAGER_ROLES, get_current_user, require_roles
from ..db import get_db
from ..models.models import User, Vehicle, VehicleLog
from ..schemas.assets import ImportSummary
from ..schemas.fleet import (
    FleetStats,
    VehicleCheckin,
    VehicleCheckout,
    VehicleCreate,
    VehicleLogResponse,
    VehicleResponse,
    VehicleStatus,
    VehicleUpdate,
)
from ..services import fleet as fleet_service
from ..services.audit import create_audit_log, row_to_dict
from ..services.importers import parse_vehicles, save_vehicles
from ..services.sheets import read_grid
from ..services.visibility import company_scope, write_company


router = APIRouter(prefix="/vehicles", tags=["fleet"])


def _out(vehicle: Vehicle) -> VehicleResponse:
    out = VehicleResponse.model_validate(vehicle)
    out.needs_maintenance = fleet_service.needs_maintenance(vehicle)
    return out


def _get_vehicle(db: Session, user: User, vehicle_id: uuid.UUID) -> Vehicle:
    vehicle = db.query(Vehicle).filter(Vehicle.id == vehicle_id).first()
    scope = company_scope(user)
    if not vehicle or (scope and vehicle.company_id != scope):
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


# ---------- VEHICLES ----------
@router.get("", response_model=List[VehicleResponse])
def list_vehicles(
    status: Optional[VehicleStatus] = Query(None),
    q: Optional[str] = Query(None),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = db.query(Vehicle)
    scope = company_scope(user, company_id)
    if scope:
        query = query.filter(Vehicle.company_id == scope)
    if status:
        query = query.filter(Vehicle.status == status.value)
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(Vehicle.plate.ilike(term), Vehicle.model.ilike(term)))
    return [_out(v) for v in query.order_by(Vehicle.plate).all()]


@router.post("", response_model=VehicleResponse)
def create_vehicle(
    payload: VehicleCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    company_id = write_company(user, payload.company_id)
    plate = fleet_service.normalize_plate(payload.plate)
    if db.query(Vehicle).filter(Vehicle.company_id == company_id, Vehicle.plate == plate).first():
        raise HTTPException(status_code=409, detail=f"Vehicle {plate} already registered")
    data = payload.dict(exclude={"company_id"})
    data["plate"] = plate
    data["status"] = payload.status.value
    if data["last_maintenance_km"] is None:
        data["last_maintenance_km"] = payload.current_km
    vehicle = Vehicle(company_id=company_id, **data)
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    return _out(vehicle)


@router.put("/{vehicle_id}", response_model=VehicleResponse)
def update_vehicle(
    vehicle_id: uuid.UUID,
    update: VehicleUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    vehicle = _get_vehicle(db, user, vehicle_id)
    before = row_to_dict(vehicle)
    for key, value in update.dict(exclude_unset=True).items():
        if key == "plate" and value:
            value = fleet_service.normalize_plate(value)
        if key == "status" and value is not None:
            value = value.value
        setattr(vehicle, key, value)
    vehicle.updated_at = datetime.now(timezone.utc)
    create_audit_log(db, "vehicles", vehicle.id, "UPDATE", user.id, old_data=before, new_data=row_to_dict(vehicle))
    db.commit()
    db.refresh(vehicle)
    return _out(vehicle)


@router.delete("/{vehicle_id}")
def delete_vehicle(
    vehicle_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    vehicle = _get_vehicle(db, user, vehicle_id)
    create_audit_log(db, "vehicles", vehicle.id, "DELETE", user.id, old_data=row_to_dict(vehicle))
    db.delete(vehicle)
    db.commit()
    return {"message": "Vehicle deleted successfully"}


@router.post("/import", response_model=ImportSummary)
def import_vehicles(
    file: UploadFile = File(...),
    company_id: Optional[str] = Form(None),
    preview: bool = Form(False),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    rows = read_grid(file.filename or "", file.file.read())
    vehicles, stats = parse_vehicles(rows, write_company(user, company_id))
    if preview:
        return ImportSummary(imported=0, skipped=stats["skipped"], preview=vehicles, stats=stats)
    return ImportSummary(imported=save_vehicles(db, vehicles), skipped=stats["skipped"], stats=stats)


# ---------- LOGS ----------
@router.get("/logs", response_model=List[VehicleLogResponse])
def list_logs(
    q: Optional[str] = Query(None),
    active: Optional[bool] = Query(None),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = db.query(VehicleLog)
    scope = company_scope(user, company_id)
    if scope:
        query = query.filter(VehicleLog.company_id == scope)
    if active is not None:
        query = query.filter(VehicleLog.is_active.is_(active))
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(
            VehicleLog.user_name.ilike(term),
            VehicleLog.plate.ilike(term),
            VehicleLog.model.ilike(term),
        ))
    return query.order_by(VehicleLog.created_at.desc()).limit(500).all()


@router.post("/logs", response_model=VehicleLogResponse)
def checkout_vehicle(payload: VehicleCheckout, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return fleet_service.checkout(db, user, payload)


@router.post("/logs/{log_id}/checkin", response_model=VehicleLogResponse)
def checkin_vehicle(
    log_id: uuid.UUID,
    payload: VehicleCheckin,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return fleet_service.checkin(db, user, log_id, payload.end_km)


# ---------- DASHBOARD ----------
@router.get("/stats", response_model=FleetStats)
def fleet_stats(
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    scope = company_scope(user, company_id)
    query = db.query(Vehicle)
    if scope:
        query = query.filter(Vehicle.company_id == scope)
    vehicles = query.all()
    return FleetStats(
        total_vehicles=len(vehicles),
        available=sum(1 for v in vehicles if v.status == VehicleStatus.disponivel.value),
        in_use=sum(1 for v in vehicles if v.status == VehicleStatus.em_uso.value),
        in_maintenance=sum(1 for v in vehicles if v.status == VehicleStatus.em_manutencao.value),
        active_logs=[VehicleLogResponse.model_validate(l) for l in fleet_service.active_logs(db, scope)],
        maintenance_alerts=[_out(v) for v in fleet_service.maintenance_alerts(vehicles)],
    )
