from datetime import date

import pytest

from fieldhub.errors import ValidationFailed
from fieldhub.models.models import Task
from fieldhub.services.reports import parse_month, task_csv_rows, task_kpis


def _task(company_id, status, technician_id=None, day=date(2026, 3, 2)):
    return Task(
        asset_id="1001",
        asset_json={"type": "Totem"},
        service_type="Fundação",
        status=status,
        company_id=company_id,
        technician_id=technician_id,
        scheduled_date=day,
    )


def test_parse_month():
    assert parse_month(None) is None
    assert parse_month("2026-12") == (date(2026, 12, 1), date(2027, 1, 1))
    with pytest.raises(ValidationFailed):
        parse_month("março")


def test_task_kpis(make_user):
    t1, t2 = make_user("TECNICO", name="Ana"), make_user("TECNICO", name="Bia")
    tasks = [
        _task("internal", "CONCLUÍDO", t1.id),
        _task("internal", "CONCLUÍDO", t1.id),
        _task("internal", "BLOQUEADO", t2.id),
        _task("gf1", "CONCLUÍDO", t2.id),
        _task("gf1", "EM ANDAMENTO"),
        _task("gf1", "PENDENTE"),
    ]
    kpis = task_kpis(tasks, {str(t1.id): "Ana", str(t2.id): "Bia"})
    assert kpis["total"] == 6
    assert kpis["completed"] == 3
    assert kpis["sla"] == 50.0
    assert kpis["blocked"] == 1
    assert kpis["pending"] == 2
    assert [c["company_id"] for c in kpis["by_company"]] == ["internal", "gf1"]
    assert kpis["by_company"][0]["sla"] == 66.7
    assert kpis["top_technicians"][0] == {"technician_id": str(t1.id), "name": "Ana", "completed": 2}


def test_task_kpis_empty():
    kpis = task_kpis([], {})
    assert kpis["sla"] == 0.0
    assert kpis["by_company"] == []


def test_task_csv_rows():
    rows = task_csv_rows([_task("internal", "PENDENTE")], {})
    assert rows == [["02/03/2026", "1001", "Totem", "Fundação", "PENDENTE", "", "internal"]]


def test_task_report_endpoints(client, db, leader, partner_leader, technician, headers_for):
    db.add_all([
        _task("internal", "CONCLUÍDO", technician.id),
        _task("gf1", "PENDENTE", day=date(2026, 3, 20)),
        _task("internal", "PENDENTE", day=date(2026, 4, 1)),
    ])
    db.commit()

    report = client.get("/reports/tasks", params={"month": "2026-03"}, headers=headers_for(leader)).json()
    assert report["total"] == 2
    assert report["top_technicians"][0]["name"] == "Tiago Tecnico"

    partner = client.get("/reports/tasks", params={"company_id": "all"}, headers=headers_for(partner_leader)).json()
    assert partner["total"] == 1

    assert client.get("/reports/tasks", params={"month": "bad"}, headers=headers_for(leader)).status_code == 400
    assert client.get("/reports/tasks", headers=headers_for(technician)).status_code == 403

    resp = client.get("/reports/tasks.csv", params={"month": "2026-03"}, headers=headers_for(leader))
    assert resp.status_code == 200
    text = resp.content.decode("utf-8-sig")
    lines = text.strip().splitlines()
    assert lines[0] == "Data;Ativo;Tipo;Servico;Status;Tecnico;Empresa"
    assert len(lines) == 3


def test_routes_import(client, leader, headers_for):
    content = "ID,Rota,Tecnico,Status\nr1,Centro,Ana,Concluído\nr2,Sul,Bia,Pendente\n".encode("utf-8")
    resp = client.post(
        "/reports/routes/import",
        files={"file": ("rotas.csv", content, "text/csv")},
        headers=headers_for(leader),
    )
    assert resp.status_code == 200
    assert resp.json()["stats"]["percent"] == 50.0
    assert [r["status"] for r in resp.json()["routes"]] == ["CONCLUÍDO", "PENDENTE"]
