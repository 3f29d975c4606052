"""
Role-based visibility rules.

Technicians only see their own work, leaders see their company, and chiefs of
the internal operation see every company. Partner users are always confined
to their own company.
"""
from typing import Optional

from sqlalchemy import false
from sqlalchemy.orm import Query

from ..config import settings
from ..models.models import Task, Team, User


TECHNICIAN_ROLES = {"TECNICO", "PARCEIRO_TECNICO"}
LEADER_ROLES = {"LIDER", "PARCEIRO_LIDER"}
CHIEF_ROLES = {"CHEFE", "PARCEIRO_CHEFE"}
PARTNER_ROLES = {"PARCEIRO_TECNICO", "PARCEIRO_LIDER", "PARCEIRO_CHEFE"}


def is_technician(user: User) -> bool:
    return user.role in TECHNICIAN_ROLES


def is_leader(user: User) -> bool:
    return user.role in LEADER_ROLES


def is_chief(user: User) -> bool:
    return user.role in CHIEF_ROLES


def is_internal(user: User) -> bool:
    return user.company_id == settings.internal_company_id


def sees_all_companies(user: User) -> bool:
    return is_chief(user) and is_internal(user)


def visible_tasks(user: User, query: Query) -> Query:
    if is_technician(user):
        query = query.filter(Task.technician_id == user.id)
    elif not sees_all_companies(user):
        query = query.filter(Task.company_id == user.company_id)
    return query.order_by(Task.created_at.desc())


def visible_teams(user: User, query: Query) -> Query:
    if is_technician(user):
        return query.filter(false())
    if sees_all_companies(user):
        return query
    return query.filter(Team.company_id == user.company_id)


def visible_users(user: User, query: Query) -> Query:
    if is_technician(user):
        return query.filter(User.id == user.id)
    if sees_all_companies(user):
        return query
    return query.filter(User.company_id == user.company_id)


def company_scope(user: User, requested: Optional[str] = None) -> Optional[str]:
    """Company filter to apply for ``user``; ``None`` means every company.

    Partners are pinned to their own company whatever they ask for. Internal
    users may pick a company or pass ``all``/nothing for every company.
    """
    if not is_internal(user):
        return user.company_id
    if not requested or requested == "all":
        return None
    return requested


def write_company(user: User, requested: Optional[str] = None) -> str:
    """Company that a new row created by ``user`` belongs to."""
    if not is_internal(user) or not requested or requested == "all":
        return user.company_id
    return requested


def can_manage_prices(user: User) -> bool:
    return "CHEFE" in user.role or "LIDER" in user.role


def can_edit_past_days(user: User) -> bool:
    return is_chief(user)
