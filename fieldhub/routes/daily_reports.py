import uuid
from datetime import date, timedelta
from typing import List, Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, user_from_token
from ..db import get_db
from ..logging import structlog
from ..models.models import Team, User
from ..schemas.daily_reports import (
    CurrentReportResponse,
    DailyActivityResponse,
    DailyReportResponse,
    DailyReportSave,
    QuantityUpdate,
)
from ..services import daily_reports as reports
from ..services.excel_export import XLSX_MEDIA_TYPE, export_daily_report, export_monthly_report
from ..services.realtime import feed_channel, hub, user_channel
from ..services.visibility import company_scope, is_technician, sees_all_companies
from .absences import absence_out, month_bounds


router = APIRouter(prefix="/daily-reports", tags=["daily-reports"])
activities_router = APIRouter(prefix="/daily-activities", tags=["daily-reports"])
ws_router = APIRouter(tags=["daily-reports"])
log = structlog.get_logger(__name__)


# ---------- REPORTS ----------
@router.get("/current", response_model=CurrentReportResponse)
def current_report(
    date_: Optional[date] = Query(None, alias="date"),
    team_id: Optional[uuid.UUID] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """The team's report for the day (or the caller's own crew report) plus the crew's absences."""
    day = date_ or reports.local_today()
    report = reports.find_report(db, user.company_id, day, team_id, user.id)
    if report is not None:
        crew = reports.crew_for(db, report)
    elif team_id:
        team = db.query(Team).filter(Team.id == team_id).first()
        crew = list(team.technician_ids or []) if team else []
    else:
        crew = []
    absences = reports.absences_for(db, user.company_id, day, crew)
    return CurrentReportResponse(
        report=DailyReportResponse.model_validate(report) if report else None,
        absences=[absence_out(a) for a in absences],
        editable=reports.is_editable(user, day),
    )


@router.get("", response_model=List[DailyReportResponse])
def list_reports(
    date_: Optional[date] = Query(None, alias="date"),
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    scope = company_scope(user, company_id)
    if year and month:
        return reports.reports_for_month(db, scope, year, month)
    return reports.reports_for_day(db, scope, date_ or reports.local_today())


@router.put("", response_model=DailyReportResponse)
def save_report(
    payload: DailyReportSave,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    report, inserted = reports.save_report(db, user, payload)
    channel = feed_channel(report.company_id, report.report_date)
    for activity in inserted:
        background_tasks.add_task(hub.publish, channel, "activity.created", reports.activity_event(activity, report))
    return report


@router.get("/export")
def export_reports(
    date_: Optional[date] = Query(None, alias="date"),
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    company_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if is_technician(user):
        raise HTTPException(status_code=403, detail="Forbidden")
    scope = company_scope(user, company_id)
    lookups = reports.build_lookups(db, scope)
    if year and month:
        start, end = month_bounds(year, month)
        content = export_monthly_report(
            year, month,
            reports.reports_for_month(db, scope, year, month),
            reports.absences_between(db, scope, start, end),
            lookups,
        )
        filename = f"relatorio_mensal_{year}_{month:02d}.xlsx"
    else:
        day = date_ or reports.local_today()
        day_reports = reports.reports_for_day(db, scope, day)
        content = export_daily_report(
            day,
            day_reports,
            reports.absences_between(db, scope, day, day + timedelta(days=1)),
            lookups,
            reference=scope or "Todas as empresas",
        )
        filename = f"relatorio_diario_{day.isoformat()}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------- ACTIVITIES ----------
@activities_router.patch("/{activity_id}", response_model=DailyActivityResponse)
def update_activity(
    activity_id: uuid.UUID,
    payload: QuantityUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    activity = reports.update_activity_quantity(db, user, activity_id, payload.quantity)
    report = activity.report
    background_tasks.add_task(
        hub.publish, feed_channel(report.company_id, report.report_date), "activity.updated",
        reports.activity_event(activity, report),
    )
    return activity


@activities_router.delete("/{activity_id}")
def delete_activity(
    activity_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    report = reports.get_activity(db, activity_id).report
    channel = feed_channel(report.company_id, report.report_date)
    reports.delete_activity(db, user, activity_id)
    background_tasks.add_task(hub.publish, channel, "activity.deleted", {"id": str(activity_id)})
    return {"message": "Activity deleted successfully"}


# ---------- REALTIME FEED ----------
@ws_router.websocket("/ws/feed")
async def ws_feed(
    websocket: WebSocket,
    token: Optional[str] = None,
    day: Optional[str] = Query(None, alias="date"),
    company_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    if not token:
        await websocket.close(code=4401)
        return
    try:
        user = user_from_token(token, db)
    except HTTPException:
        await websocket.close(code=4401)
        return

    try:
        feed_day = date.fromisoformat(day) if day else reports.local_today()
    except ValueError:
        await websocket.close(code=4400)
        return

    channels = [user_channel(str(user.id))]
    if not is_technician(user):
        feed_company = company_id if (company_id and sees_all_companies(user)) else user.company_id
        channels.append(feed_channel(feed_company, feed_day))

    await websocket.accept()
    for channel in channels:
        await hub.subscribe(channel, websocket)
    log.info("feed_connected", user_id=str(user.id), channels=channels)

    try:
        while True:
            data = await websocket.receive_text()
            if data and data.strip().lower() in {"ping", "keepalive"}:
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        log.info("feed_disconnected", user_id=str(user.id))
    finally:
        for channel in channels:
            await hub.unsubscribe(channel, websocket)
