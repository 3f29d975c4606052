import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import Company, MeasurementPrice, User
from ..schemas.assets import ImportSummary
from ..schemas.measurements import (
    CalculationResponse,
    ImportScope,
    MeasurementList,
    MeasurementMetrics,
    MeasurementRequest,
    MeasurementResponse,
    PriceCreate,
    PriceResponse,
    PriceUpdate,
)
from ..services import measurements as measurement_service
from ..services.audit import create_audit_log, row_to_dict
from ..services.excel_export import XLSX_MEDIA_TYPE, export_measurement_sheet, export_measurements
from ..services.importers import parse_prices, save_prices
from ..services.sheets import read_grid
from ..services.visibility import can_manage_prices, company_scope, write_company


router = APIRouter(prefix="/measurements", tags=["measurements"])


def _require_manager(user: User) -> None:
    if not can_manage_prices(user):
        raise HTTPException(status_code=403, detail="Only leaders and chiefs can manage prices")


def _get_price(db: Session, user: User, price_id: uuid.UUID) -> MeasurementPrice:
    price = db.query(MeasurementPrice).filter(MeasurementPrice.id == price_id).first()
    scope = company_scope(user)
    if not price or (scope and price.company_id != scope):
        raise HTTPException(status_code=404, detail="Price not found")
    return price


def _xlsx(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------- PRICE LIST ----------
@router.get("/prices", response_model=List[PriceResponse])
def list_prices(
    category: Optional[str] = Query(None),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = db.query(MeasurementPrice).filter(MeasurementPrice.company_id == write_company(user, company_id))
    if category:
        query = query.filter(MeasurementPrice.category == category)
    return query.order_by(MeasurementPrice.category, MeasurementPrice.item_code).all()


@router.post("/prices", response_model=PriceResponse)
def create_price(payload: PriceCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    _require_manager(user)
    price = MeasurementPrice(company_id=write_company(user, payload.company_id), **payload.dict(exclude={"company_id"}))
    db.add(price)
    db.commit()
    db.refresh(price)
    return price


@router.put("/prices/{price_id}", response_model=PriceResponse)
def update_price(
    price_id: uuid.UUID,
    update: PriceUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    _require_manager(user)
    price = _get_price(db, user, price_id)
    before = row_to_dict(price)
    for key, value in update.dict(exclude_unset=True).items():
        setattr(price, key, value)
    create_audit_log(db, "measurement_prices", price.id, "UPDATE", user.id, old_data=before, new_data=row_to_dict(price))
    db.commit()
    db.refresh(price)
    return price


@router.delete("/prices/{price_id}")
def delete_price(price_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    _require_manager(user)
    price = _get_price(db, user, price_id)
    create_audit_log(db, "measurement_prices", price.id, "DELETE", user.id, old_data=row_to_dict(price))
    db.delete(price)
    db.commit()
    return {"message": "Price deleted successfully"}


@router.post("/prices/import", response_model=ImportSummary)
def import_prices(
    file: UploadFile = File(...),
    category: ImportScope = Form(ImportScope.all),
    company_id: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    _require_manager(user)
    rows = read_grid(file.filename or "", file.file.read())
    prices = parse_prices(rows, category.value)
    return ImportSummary(imported=save_prices(db, write_company(user, company_id), prices))


# ---------- WIZARD ----------
@router.post("/calculate", response_model=CalculationResponse)
def calculate(payload: MeasurementRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    company_id = write_company(user, payload.company_id)
    totals = measurement_service.calculate(db, company_id, payload.assets)
    return CalculationResponse(company_id=company_id, assets=totals, grand_total=measurement_service.total_of(totals))


@router.post("", response_model=List[MeasurementResponse])
def save_measurements(payload: MeasurementRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    _require_manager(user)
    if not payload.assets:
        raise HTTPException(status_code=400, detail="Select at least one asset")
    return measurement_service.save_measurements(db, user, write_company(user, payload.company_id), payload.assets)


@router.get("", response_model=MeasurementList)
def list_measurements(
    company_id: Optional[str] = Query(None),
    date_: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    measurements = measurement_service.list_measurements(db, company_scope(user, company_id), date_)
    return MeasurementList(
        measurements=[MeasurementResponse.model_validate(m) for m in measurements],
        metrics=MeasurementMetrics(**measurement_service.metrics(measurements)),
    )


@router.post("/export")
def export_wizard(payload: MeasurementRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    company_id = write_company(user, payload.company_id)
    company = db.query(Company).filter(Company.id == company_id).first()
    totals = measurement_service.calculate(db, company_id, payload.assets)
    content = export_measurement_sheet(
        company.name if company else company_id,
        [
            {"asset_code": t.asset_code, "address": t.address, "city": t.city, "items": t.items}
            for t in totals
        ],
    )
    return _xlsx(content, f"medicao_{company_id}_{date.today().isoformat()}.xlsx")


@router.get("/export")
def export_admin(
    company_id: Optional[str] = Query(None),
    date_: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    _require_manager(user)
    scope = company_scope(user, company_id)
    names = {c.id: c.name for c in db.query(Company).all()}
    title = f"Medições Consolidadas - {names.get(scope, scope)}" if scope else "Medições Consolidadas - Todas as Empresas"
    content = export_measurements(title, measurement_service.list_measurements(db, scope, date_), names)
    return _xlsx(content, f"medicoes_{scope or 'todas'}.xlsx")
