import os
import uuid
from datetime import datetime, timezone
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..logging import structlog
from ..models.models import Company, User
from ..schemas.auth import (
    LoginRequest,
    Portal,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from ..services.images import shrink_photo
from ..services.visibility import PARTNER_ROLES
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider, object_key
from .security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    get_password_hash,
    verify_password,
)


router = APIRouter(prefix="/auth", tags=["auth"])
log = structlog.get_logger(__name__)


def default_avatar(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(name)}"


def _tokens(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(str(user.id), user.role, user.company_id),
        refresh_token=create_refresh_token(str(user.id)),
    )


def _portal_of(user: User) -> Portal:
    return Portal.internal if user.company_id == settings.internal_company_id else Portal.partner


@router.post("/register", response_model=TokenResponse)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    email = req.email.strip().lower()
    is_partner_role = req.role.value in PARTNER_ROLES

    if req.portal == Portal.internal:
        if is_partner_role:
            raise HTTPException(status_code=400, detail="Partner roles must register through the partner portal")
        company_id = settings.internal_company_id
    else:
        if not is_partner_role:
            raise HTTPException(status_code=400, detail="Internal roles must register through the internal portal")
        if not req.company_id or req.company_id == settings.internal_company_id:
            raise HTTPException(status_code=400, detail="Select the partner company")
        company_id = req.company_id

    if not db.query(Company).filter(Company.id == company_id).first():
        raise HTTPException(status_code=400, detail="Unknown company")

    existing = db.query(User).filter(User.email == email).first()
    if existing and existing.status != "PENDING":
        raise HTTPException(status_code=400, detail="Email already registered")

    if existing:
        # Imported employee claiming the account: keep the HR data
        user = existing
        user.password_hash = get_password_hash(req.password)
        user.status = "ACTIVE"
        user.is_active = True
        if not user.avatar_url:
            user.avatar_url = default_avatar(user.name)
        log.info("pending_profile_activated", user_id=str(user.id), company_id=user.company_id)
    else:
        user = User(
            email=email,
            password_hash=get_password_hash(req.password),
            name=req.name.strip(),
            role=req.role.value,
            company_id=company_id,
            status="ACTIVE",
            avatar_url=default_avatar(req.name.strip()),
        )
        db.add(user)
        log.info("user_registered", email=email, company_id=company_id, role=user.role)
    db.commit()
    db.refresh(user)
    return _tokens(user)


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == req.email.strip().lower()).first()
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active or user.status != "ACTIVE":
        raise HTTPException(status_code=403, detail="Account not active")
    portal = _portal_of(user)
    if portal != req.portal:
        name = "internal" if portal == Portal.internal else "partner"
        raise HTTPException(status_code=403, detail=f"This account must sign in through the {name} portal")
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    return _tokens(user)


@router.post("/refresh", response_model=TokenResponse)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_token(req.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid subject")
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active or user.status != "ACTIVE":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not active")
    return _tokens(user)


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.patch("/me", response_model=UserResponse)
def update_me(update: ProfileUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    # Only name and avatar are self-service; role and company stay with the admins
    for field, value in update.dict(exclude_unset=True).items():
        if value is not None:
            setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


@router.post("/me/avatar", response_model=UserResponse)
def upload_avatar(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: StorageProvider = Depends(get_storage),
):
    ext = os.path.splitext(file.filename or "")[1].lstrip(".").lower() or "jpg"
    content, is_jpeg = shrink_photo(file.file.read(), max_dim=settings.avatar_max_dim)
    content_type = file.content_type
    if is_jpeg:
        ext, content_type = "jpg", "image/jpeg"
    ts = int(datetime.now(timezone.utc).timestamp() * 1000)
    key = object_key("avatars", str(user.id), f"{ts}.{ext}")
    storage.put(key, content, content_type)
    user.avatar_url = storage.public_url(key)
    db.commit()
    db.refresh(user)
    return user
