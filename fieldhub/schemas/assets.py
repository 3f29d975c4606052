from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class AssetType(str, Enum):
    abrigo = "Abrigo de Ônibus"
    totem = "Totem"
    painel_digital = "Painel Digital"
    painel_estatico = "Painel Estático"


class AssetBase(BaseModel):
    code: str
    type: str = AssetType.abrigo.value
    address: str
    city: Optional[str] = None
    lat: float
    lng: float


class AssetCreate(AssetBase):
    company_id: Optional[str] = None


class AssetResponse(AssetBase):
    id: str
    company_id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ImportSummary(BaseModel):
    imported: int
    skipped: int = 0
    preview: Optional[list] = None
    stats: Optional[dict] = None
