from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Company


router = APIRouter(prefix="/companies", tags=["companies"])


class CompanyResponse(BaseModel):
    id: str
    name: str
    is_partner: bool

    class Config:
        from_attributes = True


@router.get("", response_model=List[CompanyResponse])
def list_companies(partner: bool = False, db: Session = Depends(get_db)):
    """Public list used by the registration screens."""
    query = db.query(Company)
    if partner:
        query = query.filter(Company.is_partner.is_(True))
    return query.order_by(Company.name).all()
