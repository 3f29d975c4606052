import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class VehicleStatus(str, Enum):
    disponivel = "Disponível"
    em_manutencao = "Em Manutenção"
    em_uso = "Em Uso"


class VehicleBase(BaseModel):
    model: str
    plate: str
    current_km: int = Field(default=0, ge=0)
    last_maintenance_km: Optional[int] = Field(default=None, ge=0)
    status: VehicleStatus = VehicleStatus.disponivel
    maintenance_notes: Optional[str] = None
    tag: Optional[str] = None


class VehicleCreate(VehicleBase):
    company_id: Optional[str] = None


class VehicleUpdate(BaseModel):
    model: Optional[str] = None
    plate: Optional[str] = None
    current_km: Optional[int] = Field(default=None, ge=0)
    last_maintenance_km: Optional[int] = Field(default=None, ge=0)
    status: Optional[VehicleStatus] = None
    maintenance_notes: Optional[str] = None
    tag: Optional[str] = None


class VehicleResponse(VehicleBase):
    id: uuid.UUID
    company_id: str
    last_maintenance_km: int
    needs_maintenance: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VehicleCheckout(BaseModel):
    vehicle_id: uuid.UUID
    shift: str
    start_km: int = Field(ge=0)
    occurrence_time: Optional[datetime] = None
    additional_collaborators: List[str] = []


class VehicleCheckin(BaseModel):
    end_km: int = Field(ge=0)


class VehicleLogResponse(BaseModel):
    id: uuid.UUID
    vehicle_id: Optional[uuid.UUID] = None
    user_id: uuid.UUID
    user_name: str
    shift: str
    occurrence_time: datetime
    plate: str
    model: str
    company_id: str
    start_km: int
    end_km: Optional[int] = None
    is_active: bool
    checkin_time: Optional[datetime] = None
    additional_collaborators: List[str] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FleetStats(BaseModel):
    total_vehicles: int
    available: int
    in_use: int
    in_maintenance: int
    active_logs: List[VehicleLogResponse]
    maintenance_alerts: List[VehicleResponse]
