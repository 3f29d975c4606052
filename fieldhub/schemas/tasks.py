import uuid
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class ServiceType(str, Enum):
    fundacao = "Fundação"
    implantacao = "Implantação"
    energizacao = "Energização"
    preventiva = "Manutenção Preventiva"
    corretiva = "Manutenção Corretiva"
    troca_campanha = "Troca de Campanha"


class TaskStatus(str, Enum):
    pendente = "PENDENTE"
    em_andamento = "EM ANDAMENTO"
    concluido = "CONCLUÍDO"
    bloqueado = "BLOQUEADO"
    nao_realizado = "NÃO REALIZADO"


class EvidenceStage(str, Enum):
    before = "BEFORE"
    during = "DURING"
    after = "AFTER"


class AssetModel(str, Enum):
    shelter = "SHELTER"
    panel = "PANEL"
    totem = "TOTEM"


class TaskCreate(BaseModel):
    asset_id: str
    service_type: ServiceType
    technician_id: Optional[uuid.UUID] = None
    scheduled_date: date
    description: Optional[str] = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus
    blocking_reason: Optional[str] = None
    not_performed_reason: Optional[str] = None


class TaskAssign(BaseModel):
    technician_id: Optional[uuid.UUID] = None


class EvidenceResponse(BaseModel):
    id: uuid.UUID
    task_id: uuid.UUID
    stage: str
    photo_url: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    gps_accuracy: Optional[float] = None
    captured_at: datetime

    class Config:
        from_attributes = True


class TaskResponse(BaseModel):
    id: uuid.UUID
    asset_id: str
    asset_json: dict
    service_type: str
    status: str
    technician_id: Optional[uuid.UUID] = None
    leader_id: Optional[uuid.UUID] = None
    company_id: str
    scheduled_date: date
    description: Optional[str] = None
    blocking_reason: Optional[str] = None
    not_performed_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    evidence: List[EvidenceResponse] = []

    class Config:
        from_attributes = True
