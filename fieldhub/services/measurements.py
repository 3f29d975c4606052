"""
Measurement wizard: price the items selected for each asset and persist the
result as one AssetMeasurement per asset.
"""
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import Asset, AssetMeasurement, MeasurementPrice, User
from ..schemas.measurements import AssetSelection, AssetTotal
from .pricing import selection_total, snapshot_items, sum_prices


log = structlog.get_logger(__name__)


def price_rows(db: Session, company_id: str) -> Dict[str, dict]:
    rows = db.query(MeasurementPrice).filter(MeasurementPrice.company_id == company_id).all()
    return {
        str(p.id): {"item_code": p.item_code, "description": p.description, "unit": p.unit, "price": p.price}
        for p in rows
    }


def calculate(db: Session, company_id: str, selections: List[AssetSelection]) -> List[AssetTotal]:
    prices = price_rows(db, company_id)
    table = {pid: row["price"] for pid, row in prices.items()}
    asset_ids = [s.asset_id for s in selections]
    assets = {a.id: a for a in db.query(Asset).filter(Asset.id.in_(asset_ids)).all()} if asset_ids else {}

    totals = []
    for selection in selections:
        asset = assets.get(selection.asset_id)
        totals.append(AssetTotal(
            asset_id=selection.asset_id,
            asset_code=asset.code if asset else selection.asset_id,
            asset_type=asset.type if asset else None,
            address=asset.address if asset else None,
            city=asset.city if asset else None,
            items=snapshot_items(selection.items, prices),
            total=selection_total(selection.items, table),
        ))
    return totals


def total_of(totals: List[AssetTotal]) -> float:
    return sum_prices(t.total for t in totals)


def save_measurements(db: Session, user: User, company_id: str, selections: List[AssetSelection]) -> List[AssetMeasurement]:
    saved = []
    for t in calculate(db, company_id, selections):
        if not t.items:
            continue
        m = AssetMeasurement(
            asset_id=t.asset_id,
            asset_code=t.asset_code or t.asset_id,
            asset_type=t.asset_type,
            company_id=company_id,
            stages=[i["description"] for i in t.items],
            items_snapshot=t.items,
            total_value=t.total,
            created_by=user.id,
        )
        db.add(m)
        saved.append(m)
    db.commit()
    for m in saved:
        db.refresh(m)
    log.info("measurements_saved", company_id=company_id, count=len(saved), total=round(sum(m.total_value for m in saved), 2))
    return saved


def list_measurements(db: Session, company_id: Optional[str], day: Optional[date] = None) -> List[AssetMeasurement]:
    query = db.query(AssetMeasurement)
    if company_id:
        query = query.filter(AssetMeasurement.company_id == company_id)
    if day:
        start = datetime.combine(day, time.min)
        query = query.filter(AssetMeasurement.created_at >= start, AssetMeasurement.created_at < start + timedelta(days=1))
    return query.order_by(AssetMeasurement.created_at.desc()).all()


def metrics(measurements: List[AssetMeasurement]) -> dict:
    by_company: Dict[str, float] = {}
    for m in measurements:
        by_company[m.company_id] = round(by_company.get(m.company_id, 0.0) + float(m.total_value or 0), 2)
    return {
        "total_value": round(sum(float(m.total_value or 0) for m in measurements), 2),
        "count": len(measurements),
        "by_company": by_company,
    }
