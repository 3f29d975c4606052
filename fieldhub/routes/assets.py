from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import MANAGER_ROLES, get_current_user, require_roles
from ..db import get_db
from ..models.models import Asset, Task, TaskEvidence, User
from ..schemas.assets import AssetCreate, AssetResponse, ImportSummary
from ..schemas.tasks import EvidenceResponse
from ..services.importers import asset_key, parse_assets, save_assets
from ..services.sheets import read_grid
from ..services.visibility import company_scope, write_company


router = APIRouter(prefix="/assets", tags=["assets"])


@router.get("", response_model=List[AssetResponse])
def list_assets(
    q: Optional[str] = Query(None),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = db.query(Asset)
    scope = company_scope(user, company_id)
    if scope:
        query = query.filter(Asset.company_id == scope)
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(Asset.code.ilike(term), Asset.address.ilike(term)))
    return query.order_by(Asset.code).limit(500).all()


@router.post("", response_model=AssetResponse)
def create_asset(
    payload: AssetCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    company_id = write_company(user, payload.company_id)
    code = payload.code.strip()
    if db.query(Asset).filter(Asset.company_id == company_id, Asset.code == code).first():
        raise HTTPException(status_code=409, detail=f"Asset {code} already exists")
    data = payload.dict(exclude={"company_id"})
    data["code"] = code
    asset = Asset(id=asset_key(company_id, code), company_id=company_id, **data)
    db.add(asset)
    db.commit()
    db.refresh(asset)
    return asset


@router.get("/{asset_id}/evidence", response_model=List[EvidenceResponse])
def asset_evidence(asset_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    asset = db.query(Asset).filter(Asset.id == asset_id).first()
    scope = company_scope(user)
    if not asset or (scope and asset.company_id != scope):
        raise HTTPException(status_code=404, detail="Asset not found")
    return (
        db.query(TaskEvidence)
        .join(Task, Task.id == TaskEvidence.task_id)
        .filter(Task.asset_id == asset.code, Task.company_id == asset.company_id)
        .order_by(TaskEvidence.captured_at.desc())
        .all()
    )


@router.post("/import", response_model=ImportSummary)
def import_assets(
    file: UploadFile = File(...),
    company_id: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    rows = read_grid(file.filename or "", file.file.read())
    assets = parse_assets(rows, write_company(user, company_id))
    return ImportSummary(imported=save_assets(db, assets))
