"""
Daily activity reports.

A report is keyed by (company, day, team) or, for crews put together on the
spot, by (company, day, reporting user). Saving a report only ever appends
activity lines or adjusts their quantity; removing a line is a separate,
explicit action.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytz
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import Forbidden, NotFound, ValidationFailed
from ..models.models import Absence, DailyActivity, DailyReport, OpecDevice, Team, User, Vehicle
from ..schemas.daily_reports import DailyReportSave
from .audit import create_audit_log, row_to_dict
from .excel_export import ReportLookups
from .visibility import can_edit_past_days, sees_all_companies


log = structlog.get_logger(__name__)

MAX_CREW_SIZE = 4


def local_today() -> date:
    return datetime.now(pytz.timezone(settings.tz_default)).date()


def report_key(team_id: Optional[uuid.UUID], user_id: uuid.UUID) -> str:
    return f"team:{team_id}" if team_id else f"user:{user_id}"


def is_editable(user: User, report_date: date) -> bool:
    return report_date == local_today() or can_edit_past_days(user)


def ensure_editable(user: User, report_date: date) -> None:
    if not is_editable(user, report_date):
        raise Forbidden("Only today's report can be changed")


def _team_for(db: Session, user: User, team_id: Optional[uuid.UUID]) -> Optional[Team]:
    if not team_id:
        return None
    team = db.query(Team).filter(Team.id == team_id).first()
    if not team or (team.company_id != user.company_id and not sees_all_companies(user)):
        raise NotFound("Team not found")
    return team


def find_report(
    db: Session, company_id: str, report_date: date, team_id: Optional[uuid.UUID], user_id: uuid.UUID
) -> Optional[DailyReport]:
    return db.query(DailyReport).filter(
        DailyReport.company_id == company_id,
        DailyReport.report_date == report_date,
        DailyReport.report_key == report_key(team_id, user_id),
    ).first()


def _crew_ids(payload: DailyReportSave) -> List[str]:
    ids: Dict[str, None] = {}
    for activity in payload.activities:
        for tid in activity.technician_ids:
            ids[str(tid)] = None
    for tid in payload.technician_ids:
        ids[str(tid)] = None
    return list(ids)


def validate_report(payload: DailyReportSave) -> None:
    if not payload.team_id and not payload.technician_ids and not payload.activities:
        raise ValidationFailed("Add activities or select technicians")
    if not payload.car_plate or not payload.opec_id:
        raise ValidationFailed("Select the vehicle and the OPEC before saving the report")
    if not payload.team_id and len(payload.technician_ids) > MAX_CREW_SIZE:
        raise ValidationFailed(f"At most {MAX_CREW_SIZE} technicians per report")


def _apply_header(report: DailyReport, payload: DailyReportSave, technician_ids: List[str]) -> None:
    report.technician_ids = technician_ids
    report.car_plate = payload.car_plate
    report.opec_id = payload.opec_id
    report.route = payload.route
    report.notes = payload.notes
    report.updated_at = datetime.now(timezone.utc)


def _upsert_header(db: Session, user: User, payload: DailyReportSave, technician_ids: List[str]) -> DailyReport:
    report = find_report(db, user.company_id, payload.report_date, payload.team_id, user.id)
    if report is not None:
        _apply_header(report, payload, technician_ids)
        return report

    report = DailyReport(
        report_date=payload.report_date,
        report_key=report_key(payload.team_id, user.id),
        user_id=user.id,
        team_id=payload.team_id,
        company_id=user.company_id,
    )
    _apply_header(report, payload, technician_ids)
    db.add(report)
    try:
        db.flush()
        return report
    except IntegrityError:
        # Someone else created the same report in the meantime: update theirs
        db.rollback()
        log.info("daily_report_insert_race", company_id=user.company_id, report_key=report.report_key)
        report = find_report(db, user.company_id, payload.report_date, payload.team_id, user.id)
        if report is None:
            raise
        _apply_header(report, payload, technician_ids)
        return report


def save_report(db: Session, user: User, payload: DailyReportSave) -> Tuple[DailyReport, List[DailyActivity]]:
    """Upsert the report header and append new activity lines.

    Returns the report and the activity lines inserted by this call.
    """
    validate_report(payload)
    ensure_editable(user, payload.report_date)
    team = _team_for(db, user, payload.team_id)
    technician_ids = [] if team else _crew_ids(payload)
    crew = list(team.technician_ids or []) if team else technician_ids

    report = _upsert_header(db, user, payload, technician_ids)
    existing = {a.id: a for a in report.activities}

    inserted = []
    for item in payload.activities:
        current = existing.get(item.id) if item.id else None
        if current is not None:
            current.quantity = max(1, item.quantity)
            continue
        activity = DailyActivity(
            activity_type=item.activity_type,
            quantity=max(1, item.quantity),
            technician_ids=[str(t) for t in item.technician_ids] or crew,
            car_plate=item.car_plate or payload.car_plate,
            opec_id=item.opec_id or payload.opec_id,
            lider_name=user.name,
        )
        report.activities.append(activity)
        inserted.append(activity)

    db.commit()
    db.refresh(report)
    log.info(
        "daily_report_saved",
        report_id=str(report.id),
        company_id=report.company_id,
        inserted=len(inserted),
    )
    return report, inserted


def get_activity(db: Session, activity_id: uuid.UUID) -> DailyActivity:
    activity = db.query(DailyActivity).filter(DailyActivity.id == activity_id).first()
    if not activity:
        raise NotFound("Activity not found")
    return activity


def _ensure_same_company(user: User, report: DailyReport) -> None:
    if report.company_id != user.company_id and not sees_all_companies(user):
        raise NotFound("Activity not found")


def update_activity_quantity(db: Session, user: User, activity_id: uuid.UUID, quantity: int) -> DailyActivity:
    activity = get_activity(db, activity_id)
    _ensure_same_company(user, activity.report)
    ensure_editable(user, activity.report.report_date)
    before = row_to_dict(activity)
    activity.quantity = max(1, quantity)
    create_audit_log(db, "daily_activities", activity.id, "UPDATE", user.id, old_data=before, new_data=row_to_dict(activity))
    db.commit()
    db.refresh(activity)
    return activity


def delete_activity(db: Session, user: User, activity_id: uuid.UUID) -> None:
    """Remove one activity line.

    Chiefs may delete any line of their scope; the report's author only on the
    report's own day.
    """
    activity = get_activity(db, activity_id)
    report = activity.report
    _ensure_same_company(user, report)
    owner_same_day = report.user_id == user.id and report.report_date == local_today()
    if not (can_edit_past_days(user) or owner_same_day):
        raise Forbidden("Not allowed to delete this activity")
    create_audit_log(db, "daily_activities", activity.id, "DELETE", user.id, old_data=row_to_dict(activity))
    db.delete(activity)
    db.commit()
    log.info("daily_activity_deleted", activity_id=str(activity_id), report_id=str(report.id))


def reports_for_day(db: Session, company_id: Optional[str], day: date) -> List[DailyReport]:
    query = db.query(DailyReport).filter(DailyReport.report_date == day)
    if company_id:
        query = query.filter(DailyReport.company_id == company_id)
    return query.order_by(DailyReport.created_at).all()


def reports_for_month(db: Session, company_id: Optional[str], year: int, month: int) -> List[DailyReport]:
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    query = db.query(DailyReport).filter(DailyReport.report_date >= start, DailyReport.report_date < end)
    if company_id:
        query = query.filter(DailyReport.company_id == company_id)
    return query.order_by(DailyReport.report_date, DailyReport.created_at).all()


def crew_for(db: Session, report: DailyReport) -> List[str]:
    if report.team_id:
        team = db.query(Team).filter(Team.id == report.team_id).first()
        if team:
            return list(team.technician_ids or [])
    return list(report.technician_ids or [])


def absences_for(db: Session, company_id: str, day: date, employee_ids: List[str]) -> List[Absence]:
    ids = []
    for e in employee_ids:
        try:
            ids.append(uuid.UUID(str(e)))
        except ValueError:
            continue
    if not ids:
        return []
    return db.query(Absence).filter(
        Absence.company_id == company_id,
        Absence.absence_date == day,
        Absence.employee_id.in_(ids),
    ).all()


def activity_event(activity: DailyActivity, report: DailyReport) -> dict:
    return {
        "id": str(activity.id),
        "report_id": str(report.id),
        "company_id": report.company_id,
        "date": report.report_date.isoformat(),
        "activity_type": activity.activity_type,
        "quantity": activity.quantity,
        "technician_ids": activity.technician_ids or [],
        "lider_name": activity.lider_name,
    }


def absences_between(db: Session, company_id: Optional[str], start: date, end: date) -> List[Absence]:
    query = db.query(Absence).filter(Absence.absence_date >= start, Absence.absence_date < end)
    if company_id:
        query = query.filter(Absence.company_id == company_id)
    return query.order_by(Absence.absence_date).all()


def build_lookups(db: Session, company_id: Optional[str]) -> ReportLookups:
    """Users, teams, vehicles and OPEC devices referenced by the exports."""
    def scoped(model):
        query = db.query(model)
        return query.filter(model.company_id == company_id) if company_id else query

    return ReportLookups(
        users={str(u.id): u for u in scoped(User).all()},
        teams={str(t.id): t for t in scoped(Team).all()},
        vehicles={v.plate: v for v in scoped(Vehicle).all()},
        devices={str(d.id): d for d in scoped(OpecDevice).all()},
    )
