import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class Company(Base):
    """Operating company: the internal operation or one of the partner contractors"""
    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_partner: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class User(Base):
    """Login account and employee profile in one row.

    Imported employees start as PENDING without a password and become ACTIVE
    when they register with the same email.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # TECNICO|LIDER|CHEFE|PARCEIRO_*
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="ACTIVE", index=True)  # ACTIVE|PENDING
    avatar_url: Mapped[Optional[str]] = mapped_column(String(1024))
    employee_code: Mapped[Optional[str]] = mapped_column(String(100))
    job_title: Mapped[Optional[str]] = mapped_column(String(255))
    shift: Mapped[Optional[str]] = mapped_column(String(100))
    leader_name: Mapped[Optional[str]] = mapped_column(String(255))
    imported_status: Mapped[Optional[str]] = mapped_column(String(100))  # status text from the HR sheet
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    company = relationship("Company")


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    leader_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    technician_ids: Mapped[list] = mapped_column(JSON, default=list)  # list of user id strings
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Asset(Base):
    """Physical advertising structure (bus shelter, totem, panel)"""
    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)  # asset_<company>_<code>
    code: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    address: Mapped[str] = mapped_column(String(512), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(100))
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_asset_company_code"),
    )


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = uuid_pk()
    asset_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)  # asset code, or SN
    asset_json: Mapped[dict] = mapped_column(JSON, nullable=False)  # snapshot of the asset at creation
    service_type: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="PENDENTE", index=True)
    technician_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    leader_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    blocking_reason: Mapped[Optional[str]] = mapped_column(Text)
    not_performed_reason: Mapped[Optional[str]] = mapped_column(Text)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)

    evidence = relationship("TaskEvidence", back_populates="task", cascade="all, delete-orphan", order_by="TaskEvidence.captured_at")
    technician = relationship("User", foreign_keys=[technician_id])

    __table_args__ = (
        Index("idx_task_company_status", "company_id", "status"),
    )


class TaskEvidence(Base):
    """Geotagged photo taken before, during or after a task"""
    __tablename__ = "task_evidences"

    id: Mapped[uuid.UUID] = uuid_pk()
    task_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    stage: Mapped[str] = mapped_column(String(20), nullable=False)  # BEFORE|DURING|AFTER
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    photo_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    lat: Mapped[Optional[float]] = mapped_column(Float)
    lng: Mapped[Optional[float]] = mapped_column(Float)
    gps_accuracy: Mapped[Optional[float]] = mapped_column(Float)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    task = relationship("Task", back_populates="evidence")


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[uuid.UUID] = uuid_pk()
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    plate: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    current_km: Mapped[int] = mapped_column(Integer, default=0)
    last_maintenance_km: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(50), default="Disponível", index=True)  # Disponível|Em Manutenção|Em Uso
    maintenance_notes: Mapped[Optional[str]] = mapped_column(Text)
    tag: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("company_id", "plate", name="uq_vehicle_company_plate"),
    )


class VehicleLog(Base):
    """Vehicle checkout (open while is_active) and checkin record"""
    __tablename__ = "vehicle_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("vehicles.id", ondelete="SET NULL"), index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    shift: Mapped[str] = mapped_column(String(50), nullable=False)
    occurrence_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    plate: Mapped[str] = mapped_column(String(20), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    start_km: Mapped[int] = mapped_column(Integer, nullable=False)
    end_km: Mapped[Optional[int]] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    checkin_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    additional_collaborators: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)


class OpecDevice(Base):
    """Company-issued handset"""
    __tablename__ = "opec_devices"

    id: Mapped[uuid.UUID] = uuid_pk()
    asset_code: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(50))
    brand: Mapped[Optional[str]] = mapped_column(String(100))
    model: Mapped[Optional[str]] = mapped_column(String(100))
    serial_number: Mapped[Optional[str]] = mapped_column(String(100))
    capacity: Mapped[Optional[str]] = mapped_column(String(50))
    imei1: Mapped[Optional[str]] = mapped_column(String(50))
    imei2: Mapped[Optional[str]] = mapped_column(String(50))
    observations: Mapped[Optional[str]] = mapped_column(Text)
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class OpecItem(Base):
    """Assignment of an OPEC handset to an employee"""
    __tablename__ = "opec_items"

    id: Mapped[uuid.UUID] = uuid_pk()
    opec_name: Mapped[str] = mapped_column(String(255), nullable=False)
    employee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assignment_date: Mapped[date] = mapped_column(Date, nullable=False)
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    employee = relationship("User")


class DailyReport(Base):
    """One report per team (or per user for ad-hoc crews) per company and day"""
    __tablename__ = "daily_reports"

    id: Mapped[uuid.UUID] = uuid_pk()
    report_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    report_key: Mapped[str] = mapped_column(String(100), nullable=False)  # team:<id> | user:<id>
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("teams.id", ondelete="SET NULL"), index=True)
    technician_ids: Mapped[list] = mapped_column(JSON, default=list)
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    car_plate: Mapped[Optional[str]] = mapped_column(String(20))
    opec_id: Mapped[Optional[str]] = mapped_column(String(100))
    route: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    activities = relationship("DailyActivity", back_populates="report", cascade="all, delete-orphan", order_by="DailyActivity.created_at")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("company_id", "report_date", "report_key", name="uq_daily_report_key"),
    )


class DailyActivity(Base):
    """Append-only activity line of a daily report"""
    __tablename__ = "daily_activities"

    id: Mapped[uuid.UUID] = uuid_pk()
    report_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("daily_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    technician_ids: Mapped[list] = mapped_column(JSON, default=list)
    car_plate: Mapped[Optional[str]] = mapped_column(String(20))
    opec_id: Mapped[Optional[str]] = mapped_column(String(100))
    lider_name: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    report = relationship("DailyReport", back_populates="activities")


class Absence(Base):
    __tablename__ = "absences"

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    absence_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    observation: Mapped[Optional[str]] = mapped_column(Text)
    evidence_url: Mapped[Optional[str]] = mapped_column(String(1024))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    employee = relationship("User", foreign_keys=[employee_id])


class MeasurementPrice(Base):
    """Price-list line item used by the measurement wizard"""
    __tablename__ = "measurement_prices"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    item_code: Mapped[Optional[str]] = mapped_column(String(50))
    description: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), default="UN")
    price: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class AssetMeasurement(Base):
    """Saved measurement for one asset: priced stages plus the items snapshot"""
    __tablename__ = "asset_measurements"

    id: Mapped[uuid.UUID] = uuid_pk()
    asset_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    asset_code: Mapped[str] = mapped_column(String(100), nullable=False)
    asset_type: Mapped[Optional[str]] = mapped_column(String(50))
    company_id: Mapped[str] = mapped_column(String(50), ForeignKey("companies.id"), nullable=False, index=True)
    stages: Mapped[list] = mapped_column(JSON, default=list)
    items_snapshot: Mapped[list] = mapped_column(JSON, default=list)
    total_value: Mapped[float] = mapped_column(Float, default=0.0)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)


class AuditLog(Base):
    """Append-only audit trail of row changes"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    table_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    record_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)  # INSERT|UPDATE|DELETE
    old_data: Mapped[Optional[dict]] = mapped_column(JSON)
    new_data: Mapped[Optional[dict]] = mapped_column(JSON)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)

    user = relationship("User")

    __table_args__ = (
        Index("idx_audit_table_record", "table_name", "record_id"),
    )
