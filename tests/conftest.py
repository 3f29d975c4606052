"""
Pytest configuration and shared fixtures.
"""
import os
import tempfile
import uuid

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["STORAGE_PROVIDER"] = "local"
os.environ["LOCAL_STORAGE_DIR"] = tempfile.mkdtemp(prefix="fieldhub-test-")
os.environ.pop("AZURE_BLOB_CONNECTION", None)
os.environ.pop("AZURE_BLOB_CONTAINER", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fieldhub.auth.security import create_access_token, get_password_hash
from fieldhub.db import Base, get_db
from fieldhub.main import app
from fieldhub.models.models import Asset, Company, Team, User, Vehicle
from fieldhub.services.importers import asset_key
from fieldhub.storage.factory import get_storage
from fieldhub.storage.local_provider import LocalStorageProvider


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

COMPANIES = [
    ("internal", "Eletromidia (Interno)", False),
    ("gf1", "GF1", True),
    ("alvares", "Alvares", True),
]


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    for company_id, name, is_partner in COMPANIES:
        session.add(Company(id=company_id, name=name, is_partner=is_partner))
    session.commit()
    session.close()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalStorageProvider(str(tmp_path / "storage"))


@pytest.fixture
def client(storage):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Factory for ACTIVE users; pass ``password=None`` for an imported PENDING profile."""
    def _make(role="TECNICO", company_id="internal", name=None, email=None, password="secret123", status="ACTIVE"):
        user = User(
            email=email or f"{role.lower()}.{uuid.uuid4().hex[:8]}@example.com",
            name=name or role.title(),
            role=role,
            company_id=company_id,
            status=status,
            password_hash=get_password_hash(password) if password else None,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def headers_for():
    def _headers(user):
        token = create_access_token(str(user.id), user.role, user.company_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def chief(make_user):
    return make_user("CHEFE", name="Carla Chefe")


@pytest.fixture
def leader(make_user):
    return make_user("LIDER", name="Luis Lider")


@pytest.fixture
def technician(make_user):
    return make_user("TECNICO", name="Tiago Tecnico")


@pytest.fixture
def partner_leader(make_user):
    return make_user("PARCEIRO_LIDER", company_id="gf1", name="Paula Parceira")


@pytest.fixture
def make_asset(db):
    def _make(code="1001", company_id="internal", address="Av Paulista, 1000"):
        asset = Asset(
            id=asset_key(company_id, code),
            code=code,
            type="Abrigo de Ônibus",
            address=address,
            city="São Paulo",
            lat=-23.56,
            lng=-46.65,
            company_id=company_id,
        )
        db.add(asset)
        db.commit()
        db.refresh(asset)
        return asset

    return _make


@pytest.fixture
def make_vehicle(db):
    def _make(plate="ABC-1D23", company_id="internal", current_km=1000, last_maintenance_km=1000, status="Disponível"):
        vehicle = Vehicle(
            plate=plate,
            model="FIAT STRADA",
            company_id=company_id,
            current_km=current_km,
            last_maintenance_km=last_maintenance_km,
            status=status,
        )
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
        return vehicle

    return _make


@pytest.fixture
def make_team(db):
    def _make(leader, technicians, company_id=None, name="Equipe Centro"):
        team = Team(
            name=name,
            leader_id=leader.id,
            technician_ids=[str(t.id) for t in technicians],
            company_id=company_id or leader.company_id,
        )
        db.add(team)
        db.commit()
        db.refresh(team)
        return team

    return _make
