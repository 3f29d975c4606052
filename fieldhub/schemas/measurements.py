import uuid
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ImportScope(str, Enum):
    all = "all"
    abrigo = "abrigo"
    totem = "totem"
    digital = "digital"


class PriceBase(BaseModel):
    category: str
    item_code: Optional[str] = None
    description: str
    unit: str = "UN"
    price: float = Field(ge=0)


class PriceCreate(PriceBase):
    company_id: Optional[str] = None


class PriceUpdate(BaseModel):
    category: Optional[str] = None
    item_code: Optional[str] = None
    description: Optional[str] = None
    unit: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)


class PriceResponse(PriceBase):
    id: uuid.UUID
    company_id: str

    class Config:
        from_attributes = True


class AssetSelection(BaseModel):
    asset_id: str
    items: Dict[str, float] = {}  # price id -> quantity


class MeasurementRequest(BaseModel):
    company_id: Optional[str] = None
    assets: List[AssetSelection]


class AssetTotal(BaseModel):
    asset_id: str
    asset_code: Optional[str] = None
    asset_type: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    items: List[dict]
    total: float


class CalculationResponse(BaseModel):
    company_id: str
    assets: List[AssetTotal]
    grand_total: float


class MeasurementResponse(BaseModel):
    id: uuid.UUID
    asset_id: str
    asset_code: str
    asset_type: Optional[str] = None
    company_id: str
    stages: List[str]
    items_snapshot: List[dict]
    total_value: float
    created_at: datetime

    class Config:
        from_attributes = True


class MeasurementMetrics(BaseModel):
    total_value: float
    count: int
    by_company: Dict[str, float]


class MeasurementList(BaseModel):
    measurements: List[MeasurementResponse]
    metrics: MeasurementMetrics
