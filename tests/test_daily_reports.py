import io
from datetime import date, timedelta

import pytest
from openpyxl import load_workbook
from starlette.websockets import WebSocketDisconnect

from fieldhub.auth.security import create_access_token
from fieldhub.errors import Forbidden, ValidationFailed
from fieldhub.models.models import Absence, DailyActivity, DailyReport
from fieldhub.schemas.daily_reports import DailyReportSave
from fieldhub.services import daily_reports as reports
from fieldhub.services.realtime import feed_channel


@pytest.fixture
def crew(make_user):
    return [make_user("TECNICO", name=f"Tecnico {i}") for i in range(1, 3)]


def _payload(day, crew, activities=None, **overrides):
    payload = {
        "report_date": day.isoformat(),
        "technician_ids": [str(t.id) for t in crew],
        "car_plate": "ABC-1D23",
        "opec_id": "OP-01",
        "route": "Centro",
        "activities": activities if activities is not None else [
            {"activity_type": "Limpeza", "quantity": 2, "technician_ids": [str(crew[0].id)]},
        ],
    }
    payload.update(overrides)
    return payload


def test_report_key():
    assert reports.report_key(None, "u1") == "user:u1"
    assert reports.report_key("t1", "u1") == "team:t1"


def test_save_appends_activities_and_updates_quantities(client, db, leader, crew, headers_for):
    today = reports.local_today()
    headers = headers_for(leader)

    resp = client.put("/daily-reports", json=_payload(today, crew), headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["technician_ids"] == [str(crew[0].id), str(crew[1].id)]
    assert len(body["activities"]) == 1
    first = body["activities"][0]
    assert first["lider_name"] == "Luis Lider"
    assert first["car_plate"] == "ABC-1D23"

    activities = [
        {"id": first["id"], "activity_type": "Limpeza", "quantity": 5},
        {"activity_type": "Troca de lâmpada", "quantity": 0},
    ]
    resp = client.put("/daily-reports", json=_payload(today, crew, activities), headers=headers)
    assert resp.json()["id"] == body["id"]
    by_type = {a["activity_type"]: a for a in resp.json()["activities"]}
    assert by_type["Limpeza"]["quantity"] == 5
    assert by_type["Troca de lâmpada"]["quantity"] == 1
    # New lines without their own crew inherit the report crew
    assert by_type["Troca de lâmpada"]["technician_ids"] == [str(t.id) for t in crew]

    # Saving without lines never removes the existing ones
    resp = client.put("/daily-reports", json=_payload(today, crew, []), headers=headers)
    assert len(resp.json()["activities"]) == 2
    assert db.query(DailyReport).count() == 1


def test_unknown_activity_id_is_inserted(db, leader, crew):
    today = reports.local_today()
    payload = DailyReportSave(**_payload(today, crew, [
        {"id": "00000000-0000-0000-0000-000000000001", "activity_type": "Pintura", "quantity": 3},
    ]))
    report, inserted = reports.save_report(db, leader, payload)
    assert len(inserted) == 1
    assert report.activities[0].activity_type == "Pintura"


def test_concurrent_insert_updates_existing_report(db, leader, crew, monkeypatch):
    today = reports.local_today()
    first, _ = reports.save_report(db, leader, DailyReportSave(**_payload(today, crew)))
    first_id = first.id

    # The existing report is invisible to the first lookup, as if it were created concurrently
    real_find = reports.find_report
    calls = []

    def find_after_race(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            return None
        return real_find(*args, **kwargs)

    monkeypatch.setattr(reports, "find_report", find_after_race)
    payload = DailyReportSave(**_payload(today, crew, [
        {"activity_type": "Pintura", "quantity": 3},
    ], route="Zona Sul"))
    report, inserted = reports.save_report(db, leader, payload)

    assert len(calls) == 2
    assert report.id == first_id
    assert report.route == "Zona Sul"
    assert len(inserted) == 1
    assert db.query(DailyReport).count() == 1
    assert sorted(a.activity_type for a in report.activities) == ["Limpeza", "Pintura"]


def test_validation_rules(db, leader, make_user):
    today = reports.local_today()
    crew = [make_user("TECNICO") for _ in range(5)]
    with pytest.raises(ValidationFailed, match="vehicle and the OPEC"):
        reports.save_report(db, leader, DailyReportSave(**_payload(today, crew[:1], car_plate=None)))
    with pytest.raises(ValidationFailed, match="At most 4"):
        reports.save_report(db, leader, DailyReportSave(**_payload(today, crew)))
    with pytest.raises(ValidationFailed, match="Add activities"):
        reports.save_report(db, leader, DailyReportSave(**_payload(today, [], [])))


def test_past_days_are_locked_except_for_chiefs(client, leader, chief, crew, headers_for):
    yesterday = reports.local_today() - timedelta(days=1)
    resp = client.put("/daily-reports", json=_payload(yesterday, crew), headers=headers_for(leader))
    assert resp.status_code == 403
    resp = client.put("/daily-reports", json=_payload(yesterday, crew), headers=headers_for(chief))
    assert resp.status_code == 200


def test_team_report_uses_team_crew(client, leader, crew, make_team, headers_for):
    team = make_team(leader, crew)
    payload = _payload(reports.local_today(), [], [{"activity_type": "Vistoria", "quantity": 1}], team_id=str(team.id))
    resp = client.put("/daily-reports", json=payload, headers=headers_for(leader))
    assert resp.status_code == 200
    body = resp.json()
    assert body["team_id"] == str(team.id)
    assert body["technician_ids"] == []
    assert body["activities"][0]["technician_ids"] == [str(t.id) for t in crew]

    current = client.get("/daily-reports/current", params={"team_id": str(team.id)}, headers=headers_for(leader)).json()
    assert current["report"]["id"] == body["id"]
    assert current["editable"] is True


def test_other_company_team_is_not_found(client, leader, crew, make_user, make_team, headers_for):
    partner = make_user("PARCEIRO_LIDER", company_id="gf1")
    team = make_team(partner, [])
    payload = _payload(reports.local_today(), crew, team_id=str(team.id))
    assert client.put("/daily-reports", json=payload, headers=headers_for(leader)).status_code == 404


def test_current_report_lists_crew_absences(client, db, leader, crew, headers_for):
    today = reports.local_today()
    client.put("/daily-reports", json=_payload(today, crew), headers=headers_for(leader))
    db.add(Absence(employee_id=crew[1].id, company_id="internal", absence_date=today, reason="Atestado"))
    db.commit()
    current = client.get("/daily-reports/current", headers=headers_for(leader)).json()
    assert [a["employee_name"] for a in current["absences"]] == ["Tecnico 2"]


def test_update_quantity_and_delete_rules(client, db, leader, chief, crew, make_user, headers_for):
    today = reports.local_today()
    body = client.put("/daily-reports", json=_payload(today, crew), headers=headers_for(leader)).json()
    activity_id = body["activities"][0]["id"]

    resp = client.patch(f"/daily-activities/{activity_id}", json={"quantity": -2}, headers=headers_for(leader))
    assert resp.json()["quantity"] == 1

    other_leader = make_user("LIDER")
    resp = client.delete(f"/daily-activities/{activity_id}", headers=headers_for(other_leader))
    assert resp.status_code == 403

    partner = make_user("PARCEIRO_CHEFE", company_id="gf1")
    assert client.delete(f"/daily-activities/{activity_id}", headers=headers_for(partner)).status_code == 404

    resp = client.delete(f"/daily-activities/{activity_id}", headers=headers_for(leader))
    assert resp.json() == {"message": "Activity deleted successfully"}
    assert db.query(DailyActivity).count() == 0
    assert client.delete(f"/daily-activities/{activity_id}", headers=headers_for(chief)).status_code == 404


def test_author_cannot_delete_past_activity_but_chief_can(db, leader, chief, crew):
    yesterday = reports.local_today() - timedelta(days=1)
    report = DailyReport(
        report_date=yesterday,
        report_key=reports.report_key(None, leader.id),
        user_id=leader.id,
        company_id="internal",
        car_plate="ABC-1D23",
        opec_id="OP-01",
    )
    report.activities.append(DailyActivity(activity_type="Limpeza", quantity=1, technician_ids=[]))
    db.add(report)
    db.commit()
    activity_id = report.activities[0].id

    with pytest.raises(Forbidden):
        reports.delete_activity(db, leader, activity_id)
    with pytest.raises(Forbidden):
        reports.update_activity_quantity(db, leader, activity_id, 3)
    reports.delete_activity(db, chief, activity_id)
    assert db.query(DailyActivity).count() == 0


def test_list_reports_by_month(client, leader, chief, crew, headers_for):
    today = reports.local_today()
    client.put("/daily-reports", json=_payload(today, crew), headers=headers_for(leader))
    listed = client.get(
        "/daily-reports", params={"year": today.year, "month": today.month}, headers=headers_for(chief)
    ).json()
    assert len(listed) == 1


def test_export_daily_workbook(client, db, leader, chief, crew, headers_for):
    today = reports.local_today()
    client.put("/daily-reports", json=_payload(today, crew), headers=headers_for(leader))
    db.add(Absence(employee_id=crew[1].id, company_id="internal", absence_date=today, reason="Day Off"))
    db.commit()

    resp = client.get("/daily-reports/export", params={"date": today.isoformat()}, headers=headers_for(chief))
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/vnd.openxmlformats")
    wb = load_workbook(io.BytesIO(resp.content))
    assert wb.sheetnames == ["Atividades", "Participantes", "Resumo"]
    activities = wb["Atividades"]
    assert activities["C2"].value.startswith("RELATÓRIO DIÁRIO CONSOLIDADO")
    assert activities["E6"].value == "Tipo de Atividade"
    assert activities["E7"].value == "Limpeza"
    assert activities["I7"].value == "Tecnico 1"
    statuses = {row[0]: row[2] for row in wb["Participantes"].iter_rows(min_row=2, values_only=True)}
    assert statuses["Tecnico 2"] == "AUSENTE: Day Off"
    assert statuses["Luis Lider"] == "PRESENTE"


def test_export_monthly_workbook(client, leader, crew, headers_for):
    today = reports.local_today()
    client.put("/daily-reports", json=_payload(today, crew), headers=headers_for(leader))
    resp = client.get(
        "/daily-reports/export", params={"year": today.year, "month": today.month}, headers=headers_for(leader)
    )
    wb = load_workbook(io.BytesIO(resp.content))
    assert wb.sheetnames == ["Atividades", "Resumo Diário", "Resumo Mensal"]
    summary = {row[0]: row[1] for row in wb["Resumo Mensal"].iter_rows(min_row=2, values_only=True)}
    assert summary["Total de Peças/Quantidade"] == 2


def test_technician_cannot_export(client, technician, headers_for):
    assert client.get("/daily-reports/export", headers=headers_for(technician)).status_code == 403


def test_feed_channel_name():
    assert feed_channel("gf1", date(2026, 3, 2)) == "daily:gf1:2026-03-02"


def test_feed_websocket_rejects_missing_or_bad_token(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/feed") as ws:
            ws.receive_text()
    assert exc.value.code == 4401
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/feed?token=garbage") as ws:
            ws.receive_text()
    assert exc.value.code == 4401


def test_feed_websocket_answers_ping(client, leader):
    token = create_access_token(str(leader.id), leader.role, leader.company_id)
    with client.websocket_connect(f"/ws/feed?token={token}") as ws:
        ws.send_text("ping")
        assert ws.receive_text() == "pong"
