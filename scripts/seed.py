#!/usr/bin/env python3
"""
Seed companies and a demo crew.

Run from project root: python scripts/seed.py

Idempotent: companies are upserted by id, users by email, vehicles by
(company, plate), assets by id and prices by (company, item code).
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from fieldhub.auth.security import get_password_hash
from fieldhub.config import settings
from fieldhub.db import Base, engine, session_scope
from fieldhub.models.models import Asset, Company, MeasurementPrice, Team, User, Vehicle
from fieldhub.services.importers import asset_key


COMPANIES = [
    (settings.internal_company_id, "Eletromidia (Interno)", False),
    ("gf1", "GF1", True),
    ("alvares", "Alvares", True),
    ("bassi", "Bassi", True),
    ("afn_nogueira", "AFN Nogueira", True),
]

DEMO_PASSWORD = os.getenv("SEED_PASSWORD", "fieldhub123")


def ensure_company(session, company_id: str, name: str, is_partner: bool) -> Company:
    company = session.query(Company).filter(Company.id == company_id).first()
    if company is None:
        company = Company(id=company_id, name=name, is_partner=is_partner)
        session.add(company)
    else:
        company.name = name
        company.is_partner = is_partner
    return company


def ensure_user(session, email: str, name: str, role: str, company_id: str) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user is None:
        user = User(
            email=email,
            name=name,
            role=role,
            company_id=company_id,
            status="ACTIVE",
            password_hash=get_password_hash(DEMO_PASSWORD),
        )
        session.add(user)
        session.flush()
    else:
        user.name = name
        user.role = role
        user.company_id = company_id
    return user


def ensure_vehicle(session, plate: str, model: str, company_id: str, km: int) -> None:
    exists = session.query(Vehicle).filter(Vehicle.company_id == company_id, Vehicle.plate == plate).first()
    if not exists:
        session.add(Vehicle(plate=plate, model=model, company_id=company_id, current_km=km, last_maintenance_km=km))


def ensure_asset(session, code: str, address: str, company_id: str, lat: float, lng: float) -> None:
    asset_id = asset_key(company_id, code)
    if not session.query(Asset).filter(Asset.id == asset_id).first():
        session.add(Asset(
            id=asset_id, code=code, type="Abrigo de Ônibus", address=address,
            city=settings.default_city, lat=lat, lng=lng, company_id=company_id,
        ))


def ensure_price(session, company_id: str, category: str, item_code: str, description: str, price: float) -> None:
    row = session.query(MeasurementPrice).filter(
        MeasurementPrice.company_id == company_id, MeasurementPrice.item_code == item_code
    ).first()
    if row is None:
        session.add(MeasurementPrice(
            company_id=company_id, category=category, item_code=item_code, description=description, price=price,
        ))
    else:
        row.price = price


def main():
    Base.metadata.create_all(bind=engine)
    with session_scope() as session:
        for company_id, name, is_partner in COMPANIES:
            ensure_company(session, company_id, name, is_partner)
        session.flush()

        internal = settings.internal_company_id
        ensure_user(session, "chefe@eletromidia.com.br", "Carla Chefe", "CHEFE", internal)
        leader = ensure_user(session, "lider@eletromidia.com.br", "Luis Lider", "LIDER", internal)
        techs = [
            ensure_user(session, "tecnico1@eletromidia.com.br", "Tiago Tecnico", "TECNICO", internal),
            ensure_user(session, "tecnico2@eletromidia.com.br", "Tania Tecnica", "TECNICO", internal),
        ]
        ensure_user(session, "chefe@gf1.com.br", "Gustavo GF1", "PARCEIRO_CHEFE", "gf1")

        if not session.query(Team).filter(Team.leader_id == leader.id).first():
            session.add(Team(
                name="Equipe Centro",
                leader_id=leader.id,
                technician_ids=[str(t.id) for t in techs],
                company_id=internal,
            ))

        ensure_vehicle(session, "ABC-1D23", "FIAT STRADA", internal, 45210)
        ensure_vehicle(session, "FGH-4J56", "VW SAVEIRO", internal, 98000)
        ensure_asset(session, "1001", "Av Paulista, 1000", internal, -23.5614, -46.6559)
        ensure_asset(session, "1002", "Rua Augusta, 500", internal, -23.5532, -46.6528)
        ensure_price(session, internal, "ABRIGO DE ÔNIBUS CAOS LEVE", "1.1", "Limpeza completa do abrigo", 85.5)
        ensure_price(session, internal, "ABRIGO DE ÔNIBUS CAOS LEVE", "1.2", "Troca de vidro lateral", 420.0)
        ensure_price(session, internal, "TOTEM", "2.1", "Instalação de totem", 1250.0)

    print(f"Seed completed: {len(COMPANIES)} companies, demo users (password: {DEMO_PASSWORD}).")


if __name__ == "__main__":
    main()
