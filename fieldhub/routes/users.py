from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.auth import UserResponse
from ..services.visibility import TECHNICIAN_ROLES, visible_users


router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserResponse])
def list_users(
    q: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = visible_users(user, db.query(User)).filter(User.status == "ACTIVE")
    if role:
        query = query.filter(User.role == role)
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(User.name.ilike(term), User.email.ilike(term)))
    return query.order_by(User.name).limit(500).all()


@router.get("/technicians", response_model=List[UserResponse])
def list_technicians(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return (
        visible_users(user, db.query(User))
        .filter(User.role.in_(TECHNICIAN_ROLES), User.status == "ACTIVE")
        .order_by(User.name)
        .all()
    )
