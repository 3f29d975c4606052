import io
from datetime import date

import pytest
from openpyxl import Workbook

from fieldhub.errors import SpreadsheetError
from fieldhub.models.models import MeasurementPrice, User, Vehicle
from fieldhub.services.importers import (
    asset_key,
    compose_address,
    employee_email,
    map_employee_role,
    parse_assets,
    parse_employees,
    parse_opec_devices,
    parse_prices,
    parse_routes,
    parse_tasks,
    parse_vehicles,
    save_employees,
    save_prices,
    save_vehicles,
)
from fieldhub.services.sheets import cell_text, read_grid


def _xlsx(rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


# ---------- GRID READING ----------
def test_read_grid_xlsx_keeps_inner_blank_rows_and_drops_trailing_ones():
    content = _xlsx([["Nome", "Cargo"], [None, None], ["Joao", "Tecnico"], [None, None], ["  ", None]])
    assert read_grid("equipe.xlsx", content) == [["Nome", "Cargo"], [None, None], ["Joao", "Tecnico"]]


def test_read_grid_with_only_blank_rows_is_empty():
    with pytest.raises(SpreadsheetError, match="empty"):
        read_grid("vazio.csv", b"\n\r\n\n")


def test_read_grid_csv_with_semicolons():
    content = "Nome;Cargo\nJoão;Técnico\nMaria;Líder\n".encode("utf-8")
    rows = read_grid("equipe.csv", content)
    assert rows[0] == ["Nome", "Cargo"]
    assert rows[1] == ["João", "Técnico"]


def test_read_grid_rejects_legacy_xls():
    with pytest.raises(SpreadsheetError, match=".xls"):
        read_grid("old.xls", b"whatever")


def test_read_grid_rejects_unknown_extension_and_empty_files():
    with pytest.raises(SpreadsheetError):
        read_grid("notes.txt", b"a,b")
    with pytest.raises(SpreadsheetError, match="empty"):
        read_grid("empty.csv", b"")


def test_read_grid_rejects_corrupt_xlsx():
    with pytest.raises(SpreadsheetError):
        read_grid("broken.xlsx", b"not a zip file")


def test_cell_text():
    assert cell_text(1001.0) == "1001"
    assert cell_text("  abc ") == "abc"
    assert cell_text(None) == ""
    assert cell_text(date(2026, 3, 1)) == "2026-03-01"


# ---------- ASSETS ----------
def _asset_row(code, street_type="AV", street="PAULISTA", number="1000", model="Abrigo", lat="-23,56", lng="-46,65"):
    row = [None] * 13
    row[2] = code
    row[4] = street_type
    row[5] = street
    row[6] = number
    row[10] = model
    row[11] = lat
    row[12] = lng
    return row


def test_parse_assets_fixed_columns():
    rows = [["header"] * 13, _asset_row("1001"), _asset_row("1001"), _asset_row("1002", number=None, lat=None)]
    assets = parse_assets(rows, "internal")
    assert [a["code"] for a in assets] == ["1001", "1002"]
    first = assets[0]
    assert first["id"] == asset_key("internal", "1001")
    assert first["address"] == "AV PAULISTA, 1000"
    assert first["lat"] == -23.56
    assert assets[1]["address"] == "AV PAULISTA, S/N"
    assert assets[1]["lat"] == -23.5505


def test_parse_assets_skips_blank_rows():
    rows = [[None] * 13, ["header"] * 13, [None] * 13, _asset_row("1001")]
    assert [a["code"] for a in parse_assets(rows, "internal")] == ["1001"]


def test_parse_assets_without_rows_fails():
    with pytest.raises(SpreadsheetError):
        parse_assets([["header"]], "internal")


# ---------- VEHICLES ----------
def test_parse_vehicles_extracts_plates():
    rows = [
        ["Frota 2026"],
        ["TAG", "PLACA", "OPERADOR"],
        ["T1", "ABC1D23 FIAT STRADA", "Joao"],
        ["T2", "fgh-4j56", None],
        ["T3", "sem placa", None],
        [None, "LÍDERES", None],
    ]
    vehicles, stats = parse_vehicles(rows, "internal")
    assert [v["plate"] for v in vehicles] == ["ABC-1D23", "FGH-4J56"]
    assert vehicles[0]["model"] == "FIAT STRADA"
    assert vehicles[0]["maintenance_notes"] == "Op: Joao"
    assert vehicles[1]["model"] == "VEÍCULO"
    assert stats == {"total": 4, "valid": 2, "skipped": 1}


def test_parse_vehicles_requires_plate_column():
    with pytest.raises(SpreadsheetError, match="PLACA"):
        parse_vehicles([["MODELO"], ["Strada"]], "internal")


def test_save_vehicles_keeps_odometer_and_status(db, make_vehicle):
    make_vehicle(plate="ABC-1D23", current_km=50000, status="Em Uso")
    vehicles, _ = parse_vehicles([["PLACA"], ["ABC1D23 VW SAVEIRO"], ["ABC-1D23 VW SAVEIRO"]], "internal")
    assert save_vehicles(db, vehicles) == 1
    db.expire_all()
    vehicle = db.query(Vehicle).filter(Vehicle.plate == "ABC-1D23").one()
    assert vehicle.model == "VW SAVEIRO"
    assert vehicle.current_km == 50000
    assert vehicle.status == "Em Uso"


# ---------- TASKS ----------
def test_parse_tasks_uses_known_assets_and_marks_sn(make_user, make_asset):
    leader = make_user("LIDER")
    asset = make_asset("1001")
    rows = [
        ["CODIGO", "BAIRRO", "TIPO", "ENDERECO", "NUMERO", "LAT", "LON"],
        ["1001", "Centro", "AV", "Paulista", "1000", "-23,5", "-46,6"],
        ["2002", "Pinheiros", "R", "Augusta", "S/N", "-23,7", "-46,7"],
        ["SN", "Sé", "R", "Direita", "12", None, None],
    ]
    tasks, stats = parse_tasks(
        rows,
        asset_model="SHELTER",
        service_type="Manutenção Preventiva",
        scheduled_date=date(2026, 3, 2),
        leader=leader,
        known_assets={"1001": asset},
    )
    assert stats["valid"] == 3
    assert tasks[0]["asset_json"]["id"] == asset.id
    assert tasks[1]["asset_json"]["location"] == {"lat": -23.7, "lng": -46.7, "address": "R Augusta - S/N - Pinheiros"}
    assert tasks[2]["asset_id"] == "SN"
    assert tasks[2]["asset_json"]["code"] == "SN"
    assert tasks[2]["asset_json"]["location"]["lat"] == -23.5505
    assert all(t["status"] == "PENDENTE" and t["company_id"] == "internal" for t in tasks)


def test_parse_tasks_counts_rows_below_a_title_header(make_user):
    rows = [
        ["Programação Março"],
        ["CODIGO", "ENDERECO"],
        ["1001", "Paulista"],
        [None, None],
        ["SN", "Augusta"],
    ]
    tasks, stats = parse_tasks(
        rows,
        asset_model="SHELTER",
        service_type="Manutenção Preventiva",
        scheduled_date=date(2026, 3, 2),
        leader=make_user("LIDER"),
        known_assets={},
    )
    assert stats == {"total": 3, "valid": 2, "skipped": 0}
    # SN codes carry the sheet row index, blank rows included
    assert tasks[1]["asset_json"]["id"] == "SN-Augusta-4"


def test_compose_address():
    assert compose_address("AV", "Paulista", "1000", "Centro") == "AV Paulista, 1000 - Centro"
    assert compose_address("", "", "", "") == "Endereço não informado"


# ---------- OPEC ----------
def test_parse_opec_devices():
    rows = [
        ["Ativo", "Linha", "Marca", "Modelo", "IMEI 1", "IMEI 2"],
        ["OP-01", "11999990000", "Samsung", "A15", "3500001", "3500002"],
        [None, "11999991111", "Motorola", "G54", None, None],
    ]
    devices = parse_opec_devices(rows, "gf1")
    assert len(devices) == 1
    assert devices[0]["asset_code"] == "OP-01"
    assert devices[0]["imei2"] == "3500002"
    assert devices[0]["serial_number"] == ""
    assert devices[0]["company_id"] == "gf1"


# ---------- EMPLOYEES ----------
def test_employee_email_and_role_mapping():
    assert employee_email("João da Silva") == "joao.silva@eletromidia.com.br"
    assert employee_email("Maria") == "maria@eletromidia.com.br"
    assert map_employee_role("Líder de equipe", partner=False) == "LIDER"
    assert map_employee_role("Gerente", partner=True) == "PARCEIRO_CHEFE"
    assert map_employee_role("Auxiliar", partner=True) == "PARCEIRO_TECNICO"


def test_parse_and_save_employees_skips_existing(db, make_user):
    make_user(email="joao.silva@eletromidia.com.br")
    rows = [
        ["Turno", "Cadastro", "Nome", "Cargo"],
        ["DIA", "123", "João da Silva", "Técnico"],
        ["NOITE", "456", "Pedro Souza", "Supervisor"],
        ["NOITE", "789", "Pedro Souza", "Supervisor"],
    ]
    employees = parse_employees(rows, "internal")
    assert employees[1]["role"] == "LIDER"
    assert employees[1]["employee_code"] == "456"
    created, skipped = save_employees(db, employees)
    assert (created, skipped) == (1, 2)
    pedro = db.query(User).filter(User.email == "pedro.souza@eletromidia.com.br").one()
    assert pedro.status == "PENDING"
    assert pedro.password_hash is None
    assert pedro.shift == "NOITE"


# ---------- PRICES ----------
def test_parse_prices_detects_categories():
    rows = [
        ["ITEM", "DESCRITIVO", "UM", "PROPOSTA REVISADA"],
        [None, "Abrigo de ônibus caos leve", None, None],
        ["1.1", "Limpeza completa", "UN", "R$ 85,50"],
        ["1.2", "Troca de vidro", None, "1.420,00"],
        ["1.3", "Sem preço", "UN", None],
    ]
    prices = parse_prices(rows)
    assert [p["item_code"] for p in prices] == ["1.1", "1.2"]
    assert prices[0]["category"] == "ABRIGO DE ÔNIBUS CAOS LEVE"
    assert prices[1]["price"] == 1420.0
    assert prices[1]["unit"] == "UN"


def test_parse_prices_with_fixed_scope():
    rows = [["Item", "Descricao", "Preco"], ["9", "Instalação", "100"]]
    assert parse_prices(rows, "totem")[0]["category"] == "TOTEM"


def test_parse_prices_without_valid_rows_fails():
    with pytest.raises(SpreadsheetError):
        parse_prices([["Foo", "Bar"], ["1", "2"]])


def test_save_prices_replaces_imported_categories_only(db):
    db.add_all([
        MeasurementPrice(company_id="internal", category="TOTEM", item_code="old", description="Antigo", price=1),
        MeasurementPrice(company_id="internal", category="POSTE", item_code="p", description="Poste", price=2),
        MeasurementPrice(company_id="gf1", category="TOTEM", item_code="g", description="Outro", price=3),
    ])
    db.commit()
    save_prices(db, "internal", [{"item_code": "new", "category": "TOTEM", "description": "Novo", "unit": "UN", "price": 9}])
    rows = {(p.company_id, p.item_code) for p in db.query(MeasurementPrice).all()}
    assert rows == {("internal", "new"), ("internal", "p"), ("gf1", "g")}


# ---------- ROUTES ----------
def test_parse_routes_and_stats():
    rows = [
        ["ID", "Rota", "Tecnico", "Status", "Cidade"],
        ["r1", "Centro", "Tiago", "Concluído", "SP"],
        ["r2", "Zona Sul", "Tania", "Em execução", None],
        [None, None, None, None, None],
        ["r4", None, None, "aberto", "Osasco"],
    ]
    routes, stats = parse_routes(rows, today=date(2026, 3, 2))
    # Blank rows are not routes
    assert [r["status"] for r in routes] == ["CONCLUÍDO", "EXECUÇÃO", "PENDENTE"]
    assert routes[2]["route"] == "Rota 2"
    assert routes[2]["date"] == "02/03/2026"
    assert stats == {"total": 3, "completed": 1, "pending": 1, "execution": 1, "percent": 33.3}
