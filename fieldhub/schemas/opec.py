import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel


class OpecDeviceBase(BaseModel):
    asset_code: str
    phone_number: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    capacity: Optional[str] = None
    imei1: Optional[str] = None
    imei2: Optional[str] = None
    observations: Optional[str] = None


class OpecDeviceCreate(OpecDeviceBase):
    company_id: Optional[str] = None


class OpecDeviceUpdate(BaseModel):
    asset_code: Optional[str] = None
    phone_number: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    capacity: Optional[str] = None
    imei1: Optional[str] = None
    imei2: Optional[str] = None
    observations: Optional[str] = None


class OpecDeviceResponse(OpecDeviceBase):
    id: uuid.UUID
    company_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OpecItemCreate(BaseModel):
    opec_name: str
    employee_id: uuid.UUID
    assignment_date: date


class OpecItemUpdate(BaseModel):
    opec_name: Optional[str] = None
    employee_id: Optional[uuid.UUID] = None
    assignment_date: Optional[date] = None


class OpecItemResponse(BaseModel):
    id: uuid.UUID
    opec_name: str
    employee_id: uuid.UUID
    employee_name: Optional[str] = None
    assignment_date: date
    company_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
