"""
Branded spreadsheet exports.

Every export shares the same layout: optional logo at A1, title at C2,
generation timestamp at C3 and the table header on row 6, orange header
cells and zebra-striped data rows.
"""
import csv
import io
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pytz
import structlog
from openpyxl import Workbook
from openpyxl.drawing.image import Image as XLImage
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ..config import settings


log = structlog.get_logger(__name__)

BRAND_ORANGE = "FF5500"
HEADER_BORDER = "CC4400"
DATA_BORDER = "EEEEEE"
ALTERNATE_ROW = "FFF5EE"
BRL_FORMAT = '"R$ "#,##0.00'
TABLE_START_ROW = 6

MONTH_NAMES = [
    "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
    "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
]

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _box(color: str) -> Border:
    side = Side(style="thin", color=color)
    return Border(top=side, left=side, bottom=side, right=side)


def create_branded_workbook(title: str, sheet_name: str, logo_path: Optional[str] = None):
    """Workbook whose first sheet carries the logo/title block; returns (wb, ws, start_row)."""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name

    logo_path = logo_path or settings.export_logo_path
    if logo_path and os.path.exists(logo_path):
        img = XLImage(logo_path)
        img.width, img.height = 180, 40
        ws.add_image(img, "A1")
    elif logo_path:
        log.warning("export_logo_missing", path=logo_path)

    ws["C2"] = title.upper()
    ws["C2"].font = Font(name="Arial", size=16, bold=True, color="333333")
    now = datetime.now(pytz.timezone(settings.tz_default))
    ws["C3"] = f"Gerado em: {now.strftime('%d/%m/%Y %H:%M:%S')}"
    ws["C3"].font = Font(name="Arial", size=10, italic=True)
    return wb, ws, TABLE_START_ROW


def style_header_row(ws: Worksheet, row_idx: int) -> None:
    fill = PatternFill(fill_type="solid", fgColor=BRAND_ORANGE)
    font = Font(name="Arial", size=11, bold=True, color="FFFFFF")
    border = _box(HEADER_BORDER)
    for c in ws[row_idx]:
        if c.value is None:
            continue
        c.fill = fill
        c.font = font
        c.border = border
        c.alignment = Alignment(horizontal="center", vertical="center")
    ws.row_dimensions[row_idx].height = 25


def style_data_rows(ws: Worksheet, start_row: int) -> None:
    """Header style on ``start_row``; Arial 10, light borders and odd-row fill below it."""
    style_header_row(ws, start_row)
    fill = PatternFill(fill_type="solid", fgColor=ALTERNATE_ROW)
    border = _box(DATA_BORDER)
    for row in ws.iter_rows(min_row=start_row + 1, max_row=ws.max_row):
        for c in row:
            if c.value is None:
                continue
            c.font = Font(name="Arial", size=10, bold=c.font.bold)
            c.border = border
            if c.row % 2 != 0:
                c.fill = fill


def autofit_columns(ws: Worksheet) -> None:
    widths: Dict[int, int] = {}
    for row in ws.iter_rows():
        for c in row:
            length = len(str(c.value)) if c.value is not None else 10
            widths[c.column] = max(widths.get(c.column, 0), length)
    for col, length in widths.items():
        ws.column_dimensions[get_column_letter(col)].width = min(max(10, length + 2), 50)


def write_table(ws: Worksheet, start_row: int, header: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    for idx, name in enumerate(header, start=1):
        ws.cell(row=start_row, column=idx, value=name)
    for offset, values in enumerate(rows, start=1):
        for idx, value in enumerate(values, start=1):
            ws.cell(row=start_row + offset, column=idx, value=value)
    style_data_rows(ws, start_row)
    autofit_columns(ws)


def add_table_sheet(wb: Workbook, name: str, header: Sequence[str], rows: Iterable[Sequence[Any]]) -> Worksheet:
    ws = wb.create_sheet(name)
    write_table(ws, 1, header, rows)
    return ws


def to_bytes(wb: Workbook) -> bytes:
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def pt_date(value: Optional[date]) -> str:
    return value.strftime("%d/%m/%Y") if value else "-"


def role_label(role: Optional[str]) -> str:
    return (role or "").replace("PARCEIRO_", "").replace("_", " ")


# ---------- DAILY REPORTS ----------
@dataclass
class ReportLookups:
    """Rows referenced by daily reports, indexed for the exports."""
    users: Dict[str, Any] = field(default_factory=dict)      # user id -> User
    teams: Dict[str, Any] = field(default_factory=dict)      # team id -> Team
    vehicles: Dict[str, Any] = field(default_factory=dict)   # plate -> Vehicle
    devices: Dict[str, Any] = field(default_factory=dict)    # device id -> OpecDevice

    def user_name(self, user_id: Any) -> str:
        u = self.users.get(str(user_id))
        return u.name if u else "Desconhecido"

    def vehicle_label(self, plate: Optional[str]) -> str:
        v = self.vehicles.get(plate or "")
        return f"{v.model} ({v.plate})" if v else ""

    def device_label(self, device_id: Optional[str]) -> str:
        d = self.devices.get(str(device_id or ""))
        return d.asset_code if d else ""


def participant_ids(reports: Iterable[Any], lookups: ReportLookups) -> List[str]:
    ids: Dict[str, None] = {}
    for r in reports:
        team = lookups.teams.get(str(r.team_id)) if r.team_id else None
        if team is not None:
            for tid in team.technician_ids or []:
                ids[str(tid)] = None
            ids[str(team.leader_id)] = None
        for tid in r.technician_ids or []:
            ids[str(tid)] = None
        for a in r.activities:
            for tid in a.technician_ids or []:
                ids[str(tid)] = None
        ids[str(r.user_id)] = None
    return [i for i in ids if i in lookups.users]


def _activity_rows(reports: Sequence[Any], lookups: ReportLookups):
    max_techs = max([len(a.technician_ids or []) for r in reports for a in r.activities] + [1])
    header = ["Data", "Veículo", "OPEC", "Rota", "Tipo de Atividade", "Quantidade", "Líder Responsável", "Observações"]
    header += [f"Técnico {i + 1}" for i in range(max_techs)]
    rows = []
    for r in reports:
        for a in r.activities:
            row = [
                r.report_date.isoformat(),
                lookups.vehicle_label(a.car_plate or r.car_plate),
                lookups.device_label(a.opec_id or r.opec_id),
                r.route or "",
                a.activity_type,
                a.quantity,
                a.lider_name or lookups.user_name(r.user_id),
                r.notes or "",
            ]
            if a.technician_ids:
                row += [lookups.user_name(tid) for tid in a.technician_ids]
            else:
                row.append("Equipe Completa")
            rows.append(row)
    return header, rows


def export_daily_report(
    day: date,
    reports: Sequence[Any],
    absences: Sequence[Any],
    lookups: ReportLookups,
    reference: str = "Todas as equipes",
) -> bytes:
    wb, ws, start = create_branded_workbook(f"Relatório Diário Consolidado - {day.isoformat()}", "Atividades")
    header, rows = _activity_rows(reports, lookups)
    write_table(ws, start, header, rows)

    absent = {str(a.employee_id): a for a in absences}
    participants = participant_ids(reports, lookups)
    add_table_sheet(wb, "Participantes", ["Nome", "Função", "Status"], [
        [
            lookups.users[pid].name,
            role_label(lookups.users[pid].role),
            f"AUSENTE: {absent[pid].reason}" if pid in absent else "PRESENTE",
        ]
        for pid in participants
    ])

    main = reports[0] if reports else None
    summary = [
        ["Data", day.isoformat()],
        ["Equipe/Referência", reference],
        ["Veículo (Principal)", (lookups.vehicle_label(main.car_plate) if main else "") or "N/A"],
        ["OPEC (Principal)", (lookups.device_label(main.opec_id) if main else "") or "N/A"],
        ["Total de Lançamentos (Dia)", sum(len(r.activities) for r in reports)],
        ["Total de Peças/Qtd (Dia)", sum(a.quantity for r in reports for a in r.activities)],
        ["Relatórios Consolidados", len(reports)],
        ["Participantes Únicos", len(participants)],
        ["Ausências Registradas", len(absences)],
        ["Rota", (main.route if main else "") or ""],
        ["Observação", (main.notes if main else "") or ""],
    ]
    add_table_sheet(wb, "Resumo", ["Campo", "Valor"], summary)
    return to_bytes(wb)


def export_monthly_report(
    year: int,
    month: int,
    reports: Sequence[Any],
    absences: Sequence[Any],
    lookups: ReportLookups,
) -> bytes:
    period = f"{MONTH_NAMES[month - 1]}/{year}"
    wb, ws, start = create_branded_workbook(f"Relatório Mensal Consolidado - {period}", "Atividades")
    header, rows = _activity_rows(reports, lookups)
    write_table(ws, start, header, rows)

    per_day: Dict[str, Dict[str, int]] = {}
    for r in reports:
        d = per_day.setdefault(r.report_date.isoformat(), {"reports": 0, "activities": 0, "quantity": 0, "absences": 0})
        d["reports"] += 1
        d["activities"] += len(r.activities)
        d["quantity"] += sum(a.quantity for a in r.activities)
    for a in absences:
        d = per_day.setdefault(a.absence_date.isoformat(), {"reports": 0, "activities": 0, "quantity": 0, "absences": 0})
        d["absences"] += 1
    add_table_sheet(
        wb,
        "Resumo Diário",
        ["Data", "Relatórios", "Total Lançamentos", "Total Quantidade", "Ausências"],
        [[day, d["reports"], d["activities"], d["quantity"], d["absences"]] for day, d in sorted(per_day.items())],
    )

    add_table_sheet(wb, "Resumo Mensal", ["Campo", "Valor"], [
        ["Período", period],
        ["Dias com Atividade", len({r.report_date for r in reports})],
        ["Total de Relatórios", len(reports)],
        ["Total de Lançamentos", sum(len(r.activities) for r in reports)],
        ["Total de Peças/Quantidade", sum(a.quantity for r in reports for a in r.activities)],
        ["Participantes Únicos", len(participant_ids(reports, lookups))],
        ["Total de Ausências", len(absences)],
    ])
    return to_bytes(wb)


# ---------- ABSENCES ----------
ABSENCE_HEADER = [
    "Data", "Funcionário", "Matrícula/ID", "Cargo", "Turno",
    "Líder", "Motivo", "Observação", "Possui Comprovante", "URL Comprovante",
]


def export_absences(year: int, month: int, absences: Sequence[Any]) -> bytes:
    wb, ws, start = create_branded_workbook(
        f"Relatório de Ausências - {MONTH_NAMES[month - 1]} / {year}", "Ausências"
    )
    rows = []
    for a in absences:
        e = a.employee
        rows.append([
            pt_date(a.absence_date),
            e.name if e else "-",
            (e.employee_code if e else None) or "-",
            role_label(e.role if e else None) or "-",
            (e.shift if e else None) or "-",
            (e.leader_name if e else None) or "-",
            a.reason,
            a.observation or "-",
            "SIM" if a.evidence_url else "NÃO",
            a.evidence_url or "-",
        ])
    write_table(ws, start, ABSENCE_HEADER, rows)
    return to_bytes(wb)


# ---------- MEASUREMENTS ----------
def export_measurements(title: str, measurements: Sequence[Any], company_names: Dict[str, str]) -> bytes:
    wb, ws, start = create_branded_workbook(title, "Medições")
    rows = [
        [
            pt_date(m.created_at.date() if m.created_at else None),
            company_names.get(m.company_id, m.company_id),
            f"{m.asset_code or m.asset_id} - {m.asset_type}",
            m.asset_type,
            ", ".join(m.stages or []),
            float(m.total_value or 0),
        ]
        for m in measurements
    ]
    total = round(sum(r[5] for r in rows), 2)
    rows.append(["", "", "", "", "TOTAL GERAL", total])
    write_table(ws, start, ["Data", "Empresa", "Ativo / Local", "Serviço", "Etapas", "Valor Total"], rows)

    last = start + len(rows)
    for r in range(start + 1, last + 1):
        ws.cell(row=r, column=6).number_format = BRL_FORMAT
    for c in ws[last]:
        if c.value is not None:
            c.font = Font(name="Arial", size=10, bold=True)
    ws.cell(row=last, column=5).alignment = Alignment(horizontal="right")
    return to_bytes(wb)


WIZARD_HEADER = ["Empresa", "Código Abrigo", "Endereço", "Cidade", "ID Item", "Atividade", "Unidade", "Valor Unitário", "Total"]


def export_measurement_sheet(company_name: str, assets: Sequence[dict]) -> bytes:
    """Plain ``Medição`` sheet, one line per selected item of each asset."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Medição"
    ws.append(WIZARD_HEADER)
    for asset in assets:
        for item in asset["items"]:
            ws.append([
                company_name,
                asset.get("asset_code"),
                asset.get("address"),
                asset.get("city"),
                item.get("item_code") or item["id"],
                item["description"],
                item["unit"],
                item["price"],
                item["total"],
            ])
    return to_bytes(wb)


# ---------- CSV ----------
def to_csv(header: Sequence[str], rows: Iterable[Sequence[Any]], delimiter: str = ";") -> bytes:
    """CSV with a UTF-8 BOM so spreadsheet apps detect the encoding."""
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=delimiter)
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    return buf.getvalue().encode("utf-8-sig")
