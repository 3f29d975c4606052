"""
Vehicle checkout and checkin.

A checkout opens a VehicleLog and flips the vehicle to ``Em Uso`` in the same
transaction; the checkin closes the log, stores the odometer reading and
frees the vehicle.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import Conflict, NotFound, ValidationFailed
from ..models.models import User, Vehicle, VehicleLog
from ..schemas.fleet import VehicleCheckout, VehicleStatus


log = structlog.get_logger(__name__)


def needs_maintenance(vehicle: Vehicle, interval_km: Optional[int] = None) -> bool:
    interval = interval_km or settings.maintenance_interval_km
    return (vehicle.current_km or 0) - (vehicle.last_maintenance_km or 0) >= interval


def normalize_plate(plate: str) -> str:
    return plate.strip().upper()


def checkout(db: Session, user: User, payload: VehicleCheckout) -> VehicleLog:
    vehicle = db.query(Vehicle).filter(Vehicle.id == payload.vehicle_id).first()
    if not vehicle or vehicle.company_id != user.company_id:
        raise NotFound("Vehicle not found")
    if vehicle.status != VehicleStatus.disponivel.value:
        raise Conflict(f"Vehicle {vehicle.plate} is not available ({vehicle.status})")

    entry = VehicleLog(
        vehicle_id=vehicle.id,
        user_id=user.id,
        user_name=user.name,
        shift=payload.shift,
        occurrence_time=payload.occurrence_time or datetime.now(timezone.utc),
        plate=vehicle.plate,
        model=vehicle.model,
        company_id=vehicle.company_id,
        start_km=payload.start_km,
        is_active=True,
        additional_collaborators=list(payload.additional_collaborators),
    )
    db.add(entry)
    vehicle.status = VehicleStatus.em_uso.value
    vehicle.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(entry)
    log.info("vehicle_checked_out", vehicle_id=str(vehicle.id), log_id=str(entry.id), user_id=str(user.id))
    return entry


def checkin(db: Session, user: User, log_id: uuid.UUID, end_km: int) -> VehicleLog:
    entry = db.query(VehicleLog).filter(VehicleLog.id == log_id).first()
    if not entry or entry.company_id != user.company_id:
        raise NotFound("Vehicle log not found")
    if not entry.is_active:
        raise Conflict("Vehicle log already closed")
    if end_km < entry.start_km:
        raise ValidationFailed(f"Final km ({end_km}) cannot be lower than the initial km ({entry.start_km})")

    now = datetime.now(timezone.utc)
    entry.end_km = end_km
    entry.is_active = False
    entry.checkin_time = now

    vehicle = db.query(Vehicle).filter(Vehicle.id == entry.vehicle_id).first() if entry.vehicle_id else None
    if vehicle is not None:
        vehicle.current_km = end_km
        vehicle.status = VehicleStatus.disponivel.value
        vehicle.updated_at = now
    db.commit()
    db.refresh(entry)
    log.info("vehicle_checked_in", log_id=str(entry.id), end_km=end_km)
    return entry


def active_logs(db: Session, company_id: Optional[str]) -> List[VehicleLog]:
    query = db.query(VehicleLog).filter(VehicleLog.is_active.is_(True))
    if company_id:
        query = query.filter(VehicleLog.company_id == company_id)
    return query.order_by(VehicleLog.created_at.desc()).all()


def maintenance_alerts(vehicles: List[Vehicle]) -> List[Vehicle]:
    return [v for v in vehicles if needs_maintenance(v)]
