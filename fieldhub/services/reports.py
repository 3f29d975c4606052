"""
Task KPIs for the management dashboard.
"""
from collections import Counter
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..errors import ValidationFailed
from ..models.models import Task
from ..schemas.tasks import TaskStatus


TASK_CSV_HEADER = ["Data", "Ativo", "Tipo", "Servico", "Status", "Tecnico", "Empresa"]


def parse_month(value: Optional[str]) -> Optional[Tuple[date, date]]:
    if not value:
        return None
    try:
        year, month = (int(p) for p in value.split("-", 1))
        start = date(year, month, 1)
    except ValueError:
        raise ValidationFailed("month must be YYYY-MM")
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def tasks_for(db: Session, company_id: Optional[str], month: Optional[str]) -> List[Task]:
    query = db.query(Task)
    if company_id:
        query = query.filter(Task.company_id == company_id)
    bounds = parse_month(month)
    if bounds:
        query = query.filter(Task.scheduled_date >= bounds[0], Task.scheduled_date < bounds[1])
    return query.order_by(Task.scheduled_date).all()


def _sla(completed: int, total: int) -> float:
    return round(completed / total * 100, 1) if total else 0.0


def task_kpis(tasks: List[Task], technician_names: Dict[str, str]) -> dict:
    total = len(tasks)
    completed = sum(1 for t in tasks if t.status == TaskStatus.concluido.value)
    blocked = sum(1 for t in tasks if t.status == TaskStatus.bloqueado.value)
    pending = sum(1 for t in tasks if t.status in (TaskStatus.pendente.value, TaskStatus.em_andamento.value))

    per_company: Dict[str, Dict[str, int]] = {}
    for t in tasks:
        c = per_company.setdefault(t.company_id, {"total": 0, "completed": 0})
        c["total"] += 1
        if t.status == TaskStatus.concluido.value:
            c["completed"] += 1
    by_company = sorted(
        (
            {"company_id": cid, "total": c["total"], "completed": c["completed"], "sla": _sla(c["completed"], c["total"])}
            for cid, c in per_company.items()
        ),
        key=lambda r: r["sla"],
        reverse=True,
    )

    done = Counter(str(t.technician_id) for t in tasks if t.technician_id and t.status == TaskStatus.concluido.value)
    top = [
        {"technician_id": tid, "name": technician_names.get(tid, "Desconhecido"), "completed": n}
        for tid, n in done.most_common(5)
    ]
    return {
        "total": total,
        "completed": completed,
        "sla": _sla(completed, total),
        "blocked": blocked,
        "pending": pending,
        "by_company": by_company,
        "top_technicians": top,
    }


def task_csv_rows(tasks: List[Task], technician_names: Dict[str, str]) -> List[list]:
    return [
        [
            t.scheduled_date.strftime("%d/%m/%Y"),
            t.asset_id,
            (t.asset_json or {}).get("type", ""),
            t.service_type,
            t.status,
            technician_names.get(str(t.technician_id), "") if t.technician_id else "",
            t.company_id,
        ]
        for t in tasks
    ]
