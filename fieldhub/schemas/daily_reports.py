import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel

from .employees import AbsenceResponse


class DailyActivityInput(BaseModel):
    id: Optional[uuid.UUID] = None
    activity_type: str
    quantity: int = 1
    technician_ids: List[str] = []
    car_plate: Optional[str] = None
    opec_id: Optional[str] = None


class DailyReportSave(BaseModel):
    report_date: date
    team_id: Optional[uuid.UUID] = None
    technician_ids: List[str] = []
    car_plate: Optional[str] = None
    opec_id: Optional[str] = None
    route: Optional[str] = None
    notes: Optional[str] = None
    activities: List[DailyActivityInput] = []


class QuantityUpdate(BaseModel):
    quantity: int


class DailyActivityResponse(BaseModel):
    id: uuid.UUID
    report_id: uuid.UUID
    activity_type: str
    quantity: int
    technician_ids: List[str] = []
    car_plate: Optional[str] = None
    opec_id: Optional[str] = None
    lider_name: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DailyReportResponse(BaseModel):
    id: uuid.UUID
    report_date: date
    user_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None
    technician_ids: List[str] = []
    company_id: str
    car_plate: Optional[str] = None
    opec_id: Optional[str] = None
    route: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    activities: List[DailyActivityResponse] = []

    class Config:
        from_attributes = True


class CurrentReportResponse(BaseModel):
    report: Optional[DailyReportResponse] = None
    absences: List[AbsenceResponse] = []
    editable: bool
