import uuid
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class AbsenceReason(str, Enum):
    falta_injustificada = "Falta Injustificada"
    falta_justificada = "Falta Justificada"
    day_off = "Day Off"
    atestado = "Atestado"
    banco_de_horas = "Banco de Horas"
    outros = "Outros"


class AbsenceCreate(BaseModel):
    employee_id: uuid.UUID
    absence_date: date
    reason: AbsenceReason
    observation: Optional[str] = None
    evidence_url: Optional[str] = None


class AbsenceResponse(BaseModel):
    id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: Optional[str] = None
    company_id: str
    absence_date: date
    reason: str
    observation: Optional[str] = None
    evidence_url: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BulkDeleteRequest(BaseModel):
    ids: List[uuid.UUID]


class EmployeeImportResult(BaseModel):
    created: int
    skipped: int
