"""
Bulk spreadsheet imports.

Each ``parse_*`` function turns a grid from ``sheets.read_grid`` into plain
dict rows (plus stats where the upload screen shows them) without touching
the database. The ``save_*`` functions persist parsed rows.
"""
import re
import time
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog
from slugify import slugify
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import SpreadsheetError
from ..models.models import Asset, MeasurementPrice, OpecDevice, User, Vehicle
from ..schemas.assets import AssetType
from ..schemas.fleet import VehicleStatus
from ..schemas.tasks import AssetModel, TaskStatus
from .pricing import parse_price
from .sheets import (
    cell,
    cell_text,
    first_filled_row,
    first_value,
    is_blank_row,
    letter,
    normalize_header,
    parse_decimal,
    records,
)


log = structlog.get_logger(__name__)

PLATE_RE = re.compile(r"([A-Za-z]{3})-?([0-9][0-9A-Za-z][0-9]{2})")
SN_CODES = {"SN", "S/N", "SEM"}


def asset_key(company_id: str, code: str) -> str:
    return slugify(f"asset_{company_id}_{code}", separator="_")


# ---------- ASSETS ----------
def parse_assets(rows: List[List[Any]], company_id: str) -> List[dict]:
    """Fixed-layout asset sheet: header on the first row, data below.

    C/B code, E street type, F street name, G number, K/I model,
    L latitude, M longitude.
    """
    stamp = int(time.time() * 1000)
    seen = set()
    assets = []
    for index, row in enumerate(rows[first_filled_row(rows) + 1:]):
        if is_blank_row(row):
            continue
        code = cell_text(letter(row, "C")) or cell_text(letter(row, "B")) or f"REF-{stamp}-{index}"
        if code in seen:
            continue
        seen.add(code)
        number = cell_text(letter(row, "G")) or "S/N"
        address = f"{cell_text(letter(row, 'E'))} {cell_text(letter(row, 'F'))}, {number}".strip()
        lat = parse_decimal(letter(row, "L"))
        lng = parse_decimal(letter(row, "M"))
        if lat is None or lng is None:
            lat, lng = settings.default_lat, settings.default_lng
        assets.append({
            "id": asset_key(company_id, code),
            "code": code,
            "type": cell_text(letter(row, "K")) or cell_text(letter(row, "I")) or AssetType.abrigo.value,
            "address": address,
            "city": settings.default_city,
            "lat": lat,
            "lng": lng,
            "company_id": company_id,
        })
    if not assets:
        raise SpreadsheetError("No valid rows found in the spreadsheet")
    return assets


def save_assets(db: Session, assets: List[dict]) -> int:
    for data in assets:
        existing = db.query(Asset).filter(
            Asset.company_id == data["company_id"], Asset.code == data["code"]
        ).first()
        if existing:
            for key, value in data.items():
                if key != "id":
                    setattr(existing, key, value)
        else:
            db.add(Asset(**data))
    db.commit()
    log.info("assets_imported", count=len(assets))
    return len(assets)


# ---------- VEHICLES ----------
def parse_vehicles(rows: List[List[Any]], company_id: str) -> Tuple[List[dict], dict]:
    header_index = -1
    plate_col = tag_col = operator_col = -1
    for i, row in enumerate(rows[:10]):
        for idx, value in enumerate(row):
            name = normalize_header(value)
            if "PLACA" in name:
                plate_col = idx
            if name == "TAG":
                tag_col = idx
            if "OPERADOR" in name:
                operator_col = idx
        if plate_col != -1:
            header_index = i
            break
    if header_index == -1:
        raise SpreadsheetError("Could not find a 'PLACA' column in the file")

    vehicles = []
    skipped = 0
    for row in rows[header_index + 1:]:
        raw = cell_text(cell(row, plate_col))
        if not raw or raw.upper() == "LÍDERES":
            continue
        match = PLATE_RE.search(raw)
        if not match:
            skipped += 1
            continue
        plate = f"{match.group(1).upper()}-{match.group(2).upper()}"
        leftover = raw.replace(match.group(0), "").replace(plate, "").strip().strip("-").strip()
        operator = cell_text(cell(row, operator_col)) if operator_col != -1 else ""
        vehicles.append({
            "tag": cell_text(cell(row, tag_col)) if tag_col != -1 else "",
            "plate": plate,
            "model": leftover.upper() if len(leftover) > 2 else "VEÍCULO",
            "current_km": 0,
            "last_maintenance_km": 0,
            "status": VehicleStatus.disponivel.value,
            "company_id": company_id,
            "maintenance_notes": f"Op: {operator}" if operator else None,
        })
    stats = {
        "total": len(rows) - (header_index + 1),
        "valid": len(vehicles),
        "skipped": skipped,
    }
    return vehicles, stats


def dedupe_by_plate(vehicles: Iterable[dict]) -> List[dict]:
    unique: Dict[str, dict] = {}
    for v in vehicles:
        unique[v["plate"].upper()] = v
    return list(unique.values())


def save_vehicles(db: Session, vehicles: List[dict]) -> int:
    unique = dedupe_by_plate(vehicles)
    for data in unique:
        existing = db.query(Vehicle).filter(
            Vehicle.company_id == data["company_id"], Vehicle.plate == data["plate"]
        ).first()
        if existing:
            # Imports refresh identification only; odometer and status are live data
            existing.model = data["model"]
            existing.tag = data["tag"] or existing.tag
            if data["maintenance_notes"]:
                existing.maintenance_notes = data["maintenance_notes"]
        else:
            db.add(Vehicle(**data))
    db.commit()
    log.info("vehicles_imported", count=len(unique), received=len(vehicles))
    return len(unique)


# ---------- TASKS ----------
def _task_header(rows: List[List[Any]]) -> Tuple[int, List[str]]:
    for i, row in enumerate(rows[:10]):
        names = [normalize_header(c) for c in row]
        if any(("PARADA" in h or "CODIGO" in h or "ATIVO" in h or "ENDERECO" in h) for h in names):
            return i, names
    start = first_filled_row(rows)
    return start, [normalize_header(c) for c in rows[start]]


def task_columns(header: List[str]) -> Dict[str, int]:
    cols = {k: -1 for k in ("code", "alt_code", "address", "district", "kind", "number", "lat", "lng", "digital")}
    for i, h in enumerate(header):
        if "PARADA" in h or "CODIGO" in h or "ATIVO" in h or "ELETR" in h:
            cols["code"] = i
        if "ELETRO" in h:
            cols["alt_code"] = i
        if "ENDERECO" in h or "LOCAL" in h or "NOME" in h or "LOGRADOURO" in h:
            cols["address"] = i
        if "BAIRRO" in h or "DISTRITO" in h:
            cols["district"] = i
        if "NUMERO" in h or h in ("Nº", "NO", "SN"):
            cols["number"] = i
        if "TIPO" in h and "SERVICO" not in h:
            cols["kind"] = i
        if "LAT" in h or h == "M":
            cols["lat"] = i
        if "LON" in h or h == "N":
            cols["lng"] = i
        if "DIGITAL" in h or h == "O":
            cols["digital"] = i
    # Sheets exported without headers for the middle columns
    if cols["code"] == 0 and cols["address"] == 3:
        if cols["district"] == -1:
            cols["district"] = 1
        if cols["kind"] == -1:
            cols["kind"] = 2
        if cols["number"] == -1:
            cols["number"] = 4
    return cols


def _part(row: List[Any], index: int) -> str:
    return cell_text(cell(row, index)) if index != -1 else ""


def compose_address(kind: str, name: str, number: str, district: str) -> str:
    """``TIPO NOME, NUMERO - BAIRRO``"""
    address = " ".join(p for p in (kind, name) if p)
    if number and number.upper() not in ("SN", "S/N"):
        address += f", {number}"
    elif number:
        address += f" - {number}"
    if district:
        address = f"{address} - {district}" if address else district
    return address or name or "Endereço não informado"


def _coordinate(row: List[Any], index: int, default: float) -> float:
    if index == -1:
        return default
    value = parse_decimal(cell(row, index))
    if value is None or value == 0:
        return default
    return value


def parse_tasks(
    rows: List[List[Any]],
    *,
    asset_model: str,
    service_type: str,
    scheduled_date: date,
    leader: User,
    known_assets: Dict[str, Asset],
) -> Tuple[List[dict], dict]:
    """Task sheet with heuristic columns; one PENDENTE task per data row.

    ``known_assets`` maps asset code to an existing Asset whose snapshot is used
    instead of the sheet's location data.
    """
    header_index, header = _task_header(rows)
    cols = task_columns(header)
    tasks = []
    for i in range(header_index + 1, len(rows)):
        row = rows[i]
        if is_blank_row(row):
            continue
        if cols["code"] != -1:
            code = _part(row, cols["code"])
        elif cols["alt_code"] != -1:
            code = _part(row, cols["alt_code"])
        elif asset_model == AssetModel.panel.value:
            code = cell_text(cell(row, 2)) or cell_text(cell(row, 1))
        else:
            code = cell_text(cell(row, 1)) or cell_text(cell(row, 0))

        is_sn = not code or re.sub(r"\s", "", code.upper()) in SN_CODES
        name = _part(row, cols["address"])
        address = compose_address(
            _part(row, cols["kind"]), name, _part(row, cols["number"]), _part(row, cols["district"])
        )
        if is_sn:
            code = f"SN-{address[:10]}-{i}"

        lat = _coordinate(row, cols["lat"], settings.default_lat)
        lng = _coordinate(row, cols["lng"], settings.default_lng)
        digital = _part(row, cols["digital"])
        if asset_model == AssetModel.panel.value:
            asset_type = AssetType.painel_digital if digital.startswith("D") else AssetType.painel_estatico
        elif asset_model == AssetModel.totem.value:
            asset_type = AssetType.totem
        else:
            asset_type = AssetType.abrigo

        known = known_assets.get(code)
        if known is not None:
            snapshot = asset_snapshot(known)
        else:
            snapshot = {
                "id": code,
                "code": "SN" if is_sn else code,
                "type": asset_type.value,
                "location": {"lat": lat, "lng": lng, "address": address},
                "company_id": leader.company_id,
            }
        tasks.append({
            "asset_id": "SN" if is_sn else code,
            "asset_json": snapshot,
            "service_type": service_type,
            "status": TaskStatus.pendente.value,
            "technician_id": None,
            "leader_id": leader.id,
            "company_id": leader.company_id,
            "scheduled_date": scheduled_date,
            "description": f"Carga automática ({asset_model}): {address}",
        })
    stats = {"total": len(rows) - (header_index + 1), "valid": len(tasks), "skipped": 0}
    return tasks, stats


def asset_snapshot(asset: Asset) -> dict:
    return {
        "id": asset.id,
        "code": asset.code,
        "type": asset.type,
        "location": {"lat": asset.lat, "lng": asset.lng, "address": asset.address},
        "company_id": asset.company_id,
    }


# ---------- OPEC DEVICES ----------
OPEC_COLUMNS = {
    "asset_code": "ATIVO",
    "phone_number": "LINHA",
    "brand": "MARCA",
    "model": "MODELO",
    "serial_number": "SERIE",
    "capacity": "CAPACIDADE",
    "imei1": "IMEI 1",
    "imei2": "IMEI 2",
    "observations": "OBS",
}


def parse_opec_devices(rows: List[List[Any]], company_id: str) -> List[dict]:
    start = first_filled_row(rows)
    if len(rows) < start + 2:
        raise SpreadsheetError("The file is empty or has no data rows")
    header = [normalize_header(h) for h in rows[start]]

    def find(label: str) -> int:
        return next((i for i, h in enumerate(header) if label in h), -1)

    idx = {field: find(label) for field, label in OPEC_COLUMNS.items()}
    devices = []
    for row in rows[start + 1:]:
        data = {field: (cell_text(cell(row, i)) if i != -1 else "") for field, i in idx.items()}
        if not data["asset_code"]:
            continue
        data["company_id"] = company_id
        devices.append(data)
    if not devices:
        raise SpreadsheetError("No valid devices found")
    return devices


def save_opec_devices(db: Session, devices: List[dict]) -> int:
    db.add_all([OpecDevice(**d) for d in devices])
    db.commit()
    log.info("opec_devices_imported", count=len(devices))
    return len(devices)


# ---------- EMPLOYEES ----------
EMPLOYEE_HEADERS = {
    "name": ("nome", "funcionario", "colaborador", "nome do colaborador"),
    "email": ("email", "e-mail"),
    "role": ("cargo", "funcao"),
    "code": ("cadastro", "matricula", "id"),
    "shift": ("turno",),
    "leader": ("lider", "liderança", "lideranca"),
    "status": ("status",),
}

EMPLOYEE_TEMPLATE_HEADERS = ["Turno", "Cadastro", "Lider", "Nome", "Cargo", "Status", "Empresa"]
EMPLOYEE_TEMPLATE_ROWS = [
    ["DIA", "12345", "Maria Supervisor", "Joao Silva", "Técnico", "ativo", "Interno"],
    ["NOITE", "67890", "Jose Chefe", "Pedro Souza", "Líder", "ativo - adm", "Interno"],
]


def employee_email(name: str) -> str:
    """``João da Silva`` -> ``joao.silva@<domain>``"""
    parts = [p for p in (slugify(w, separator="") for w in name.split()) if p]
    if not parts:
        parts = ["colaborador"]
    local = f"{parts[0]}.{parts[-1]}" if len(parts) > 1 else parts[0]
    return f"{local}@{settings.employee_email_domain}"


def map_employee_role(raw: str, partner: bool) -> str:
    raw = (raw or "").upper()
    role = "TECNICO"
    if any(k in raw for k in ("LIDER", "LÍDER", "SUPERVISOR", "COORDENADOR")):
        role = "LIDER"
    if "CHEFE" in raw or "GERENTE" in raw:
        role = "CHEFE"
    return f"PARCEIRO_{role}" if partner else role


def parse_employees(rows: List[List[Any]], company_id: str) -> List[dict]:
    start = first_filled_row(rows)
    header = [cell_text(h).lower() for h in rows[start]]
    cols = {
        field: next((i for i, h in enumerate(header) if h in names), -1)
        for field, names in EMPLOYEE_HEADERS.items()
    }
    partner = company_id != settings.internal_company_id
    employees = []
    for row in rows[start + 1:]:
        name = _part(row, cols["name"])
        if not name:
            continue
        email = _part(row, cols["email"]).lower() or employee_email(name)
        employees.append({
            "name": name,
            "email": email,
            "role": map_employee_role(_part(row, cols["role"]), partner),
            "company_id": company_id,
            "employee_code": _part(row, cols["code"]) or None,
            "shift": _part(row, cols["shift"]) or None,
            "leader_name": _part(row, cols["leader"]) or None,
            "imported_status": _part(row, cols["status"]) or None,
            "job_title": _part(row, cols["role"]) or None,
        })
    if not employees:
        raise SpreadsheetError("No valid employees found")
    return employees


def save_employees(db: Session, employees: List[dict]) -> Tuple[int, int]:
    """Create PENDING profiles; emails that already exist are skipped."""
    created = skipped = 0
    seen = set()
    for data in employees:
        if data["email"] in seen or db.query(User).filter(User.email == data["email"]).first():
            skipped += 1
            continue
        seen.add(data["email"])
        db.add(User(status="PENDING", is_active=True, **data))
        created += 1
    db.commit()
    log.info("employees_imported", created=created, skipped=skipped)
    return created, skipped


# ---------- MEASUREMENT PRICES ----------
def import_category_for(scope: str, row_category: str, detected: str) -> str:
    if scope == "all":
        return row_category or detected
    if scope == "abrigo":
        return "ABRIGO"
    if scope == "totem":
        return "TOTEM"
    return "DIGITAL"


def parse_prices(rows: List[List[Any]], scope: str = "all") -> List[dict]:
    """Price list rows keyed by header name.

    A row with a description but no price opens a new category for the rows
    below it.
    """
    data = records(rows)
    if not data:
        raise SpreadsheetError("The spreadsheet is empty")
    detected = ""
    prices = []
    for rec in data:
        price = parse_price(first_value(rec, "PROPOSTA REVISADA", "Preco", "price", "Valor"))
        description = cell_text(first_value(rec, "DESCRITIVO", "Descritivo", "Descricao", "description", "Atividade"))
        if price == 0 and description:
            detected = description.upper()
        item_code = cell_text(first_value(rec, "ITEM", "Item", "ID", "id"))
        category = import_category_for(
            scope, cell_text(first_value(rec, "Categoria", "category", "CATEGORIA")), detected
        )
        if not (item_code and description and price > 0):
            continue
        prices.append({
            "item_code": item_code,
            "category": category,
            "description": description,
            "unit": cell_text(first_value(rec, "UM", "Um", "Unidade", "unit")) or "UN",
            "price": price,
        })
    if not prices:
        raise SpreadsheetError("No valid prices found; check the column headers")
    return prices


def save_prices(db: Session, company_id: str, prices: List[dict]) -> int:
    """Replace the company's prices in every category present in ``prices``."""
    categories = {p["category"] for p in prices}
    db.query(MeasurementPrice).filter(
        MeasurementPrice.company_id == company_id,
        MeasurementPrice.category.in_(categories),
    ).delete(synchronize_session=False)
    db.add_all([MeasurementPrice(company_id=company_id, **p) for p in prices])
    db.commit()
    log.info("prices_imported", company_id=company_id, count=len(prices), categories=sorted(categories))
    return len(prices)


# ---------- FIELD ROUTES ----------
def route_status(raw: Any) -> str:
    text = cell_text(raw).upper()
    if "CONCLU" in text:
        return "CONCLUÍDO"
    if "EXECU" in text:
        return "EXECUÇÃO"
    return "PENDENTE"


def parse_routes(rows: List[List[Any]], today: Optional[date] = None) -> Tuple[List[dict], dict]:
    today = today or date.today()
    routes = []
    for idx, rec in enumerate(records(rows)):
        routes.append({
            "id": cell_text(first_value(rec, "ID")) or str(idx),
            "route": cell_text(first_value(rec, "Rota", "Route")) or f"Rota {idx}",
            "technician": cell_text(first_value(rec, "Tecnico", "Technician")) or "N/A",
            "status": route_status(first_value(rec, "Status")),
            "date": cell_text(first_value(rec, "Data", "Date")) or today.strftime("%d/%m/%Y"),
            "city": cell_text(first_value(rec, "Cidade", "City")) or "SP",
        })
    return routes, route_stats(routes)


def route_stats(routes: List[dict]) -> dict:
    total = len(routes)
    if total == 0:
        return {"total": 0, "completed": 0, "pending": 0, "execution": 0, "percent": 0.0}
    completed = sum(1 for r in routes if r["status"] == "CONCLUÍDO")
    execution = sum(1 for r in routes if r["status"] == "EXECUÇÃO")
    return {
        "total": total,
        "completed": completed,
        "pending": total - completed - execution,
        "execution": execution,
        "percent": round(completed / total * 100, 1),
    }

