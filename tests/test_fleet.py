import io

from openpyxl import Workbook

from fieldhub.models.models import AuditLog, Vehicle
from fieldhub.services.fleet import needs_maintenance


def _checkout(client, vehicle, headers, start_km=1000):
    return client.post(
        "/vehicles/logs",
        json={"vehicle_id": str(vehicle.id), "shift": "Diurno", "start_km": start_km, "additional_collaborators": ["Ana"]},
        headers=headers,
    )


def test_needs_maintenance_threshold(make_vehicle):
    assert not needs_maintenance(make_vehicle(plate="AAA-0A00", current_km=19999, last_maintenance_km=10000))
    assert needs_maintenance(make_vehicle(plate="BBB-0B00", current_km=20000, last_maintenance_km=10000))
    assert needs_maintenance(make_vehicle(plate="CCC-0C00", current_km=1500, last_maintenance_km=1000), interval_km=500)


def test_create_vehicle_normalizes_plate_and_rejects_duplicates(client, leader, headers_for):
    headers = headers_for(leader)
    resp = client.post("/vehicles", json={"model": "Fiat Strada", "plate": " abc-1d23 ", "current_km": 5000}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["plate"] == "ABC-1D23"
    assert body["last_maintenance_km"] == 5000
    assert body["needs_maintenance"] is False

    resp = client.post("/vehicles", json={"model": "Outro", "plate": "ABC-1D23"}, headers=headers)
    assert resp.status_code == 409


def test_technician_cannot_create_vehicle(client, technician, headers_for):
    resp = client.post("/vehicles", json={"model": "Fiat", "plate": "ABC-1D23"}, headers=headers_for(technician))
    assert resp.status_code == 403


def test_checkout_and_checkin_cycle(client, db, make_vehicle, technician, headers_for):
    vehicle = make_vehicle(current_km=1000)
    headers = headers_for(technician)

    resp = _checkout(client, vehicle, headers)
    assert resp.status_code == 200
    entry = resp.json()
    assert entry["is_active"] is True
    assert entry["plate"] == "ABC-1D23"
    assert entry["user_name"] == "Tiago Tecnico"
    db.expire_all()
    assert db.get(Vehicle, vehicle.id).status == "Em Uso"

    # Already in use
    assert _checkout(client, vehicle, headers).status_code == 409

    resp = client.post(f"/vehicles/logs/{entry['id']}/checkin", json={"end_km": 999}, headers=headers)
    assert resp.status_code == 400

    resp = client.post(f"/vehicles/logs/{entry['id']}/checkin", json={"end_km": 1180}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False
    assert resp.json()["end_km"] == 1180
    db.expire_all()
    refreshed = db.get(Vehicle, vehicle.id)
    assert refreshed.status == "Disponível"
    assert refreshed.current_km == 1180

    resp = client.post(f"/vehicles/logs/{entry['id']}/checkin", json={"end_km": 1200}, headers=headers)
    assert resp.status_code == 409


def test_checkout_other_company_vehicle_is_not_found(client, make_vehicle, partner_leader, headers_for):
    vehicle = make_vehicle()
    assert _checkout(client, vehicle, headers_for(partner_leader)).status_code == 404


def test_checkout_vehicle_in_maintenance(client, make_vehicle, technician, headers_for):
    vehicle = make_vehicle(status="Em Manutenção")
    resp = _checkout(client, vehicle, headers_for(technician))
    assert resp.status_code == 409
    assert "not available" in resp.json()["detail"]


def test_fleet_stats(client, make_vehicle, technician, leader, headers_for):
    vehicle = make_vehicle(plate="ABC-1D23")
    make_vehicle(plate="DEF-2E34", current_km=30000, last_maintenance_km=10000)
    make_vehicle(plate="GHI-3F45", status="Em Manutenção")
    make_vehicle(plate="JKL-4G56", company_id="gf1")
    _checkout(client, vehicle, headers_for(technician))

    stats = client.get("/vehicles/stats", params={"company_id": "internal"}, headers=headers_for(leader)).json()
    assert stats["total_vehicles"] == 3
    assert stats["available"] == 1
    assert stats["in_use"] == 1
    assert stats["in_maintenance"] == 1
    assert len(stats["active_logs"]) == 1
    assert [v["plate"] for v in stats["maintenance_alerts"]] == ["DEF-2E34"]


def test_list_logs_filters(client, make_vehicle, technician, leader, headers_for):
    vehicle = make_vehicle()
    _checkout(client, vehicle, headers_for(technician))
    logs = client.get("/vehicles/logs", params={"q": "tiago", "active": True}, headers=headers_for(leader)).json()
    assert len(logs) == 1
    assert logs[0]["additional_collaborators"] == ["Ana"]
    assert client.get("/vehicles/logs", params={"active": False}, headers=headers_for(leader)).json() == []


def test_update_and_delete_vehicle_are_audited(client, db, make_vehicle, leader, headers_for):
    vehicle = make_vehicle()
    headers = headers_for(leader)
    resp = client.put(f"/vehicles/{vehicle.id}", json={"status": "Em Manutenção", "plate": "zzz-9z99"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["plate"] == "ZZZ-9Z99"
    assert client.delete(f"/vehicles/{vehicle.id}", headers=headers).json() == {"message": "Vehicle deleted successfully"}
    actions = [a.action for a in db.query(AuditLog).filter(AuditLog.table_name == "vehicles").all()]
    assert sorted(actions) == ["DELETE", "UPDATE"]


def test_import_vehicles(client, db, leader, headers_for):
    wb = Workbook()
    ws = wb.active
    ws.append(["TAG", "PLACA", "OPERADOR"])
    ws.append(["T1", "ABC1D23 FIAT STRADA", "Joao"])
    ws.append(["T2", "sem placa", None])
    buf = io.BytesIO()
    wb.save(buf)
    resp = client.post(
        "/vehicles/import",
        files={"file": ("frota.xlsx", buf.getvalue(), "application/octet-stream")},
        headers=headers_for(leader),
    )
    assert resp.status_code == 200
    assert resp.json()["imported"] == 1
    assert resp.json()["skipped"] == 1
    assert db.query(Vehicle).filter(Vehicle.plate == "ABC-1D23").one().model == "FIAT STRADA"
