import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.security import MANAGER_ROLES, get_current_user, require_roles
from ..db import get_db
from ..logging import structlog
from ..models.models import Task, Team, User
from ..schemas.auth import UserResponse
from ..schemas.tasks import TaskResponse, TaskStatus
from ..schemas.teams import TeamCreate, TeamResponse, TeamUpdate, TechnicianStatus
from ..services.audit import create_audit_log, row_to_dict
from ..services.visibility import (
    TECHNICIAN_ROLES,
    is_chief,
    sees_all_companies,
    visible_teams,
    visible_users,
)


router = APIRouter(prefix="/teams", tags=["teams"])
log = structlog.get_logger(__name__)

CLOSED_STATUSES = {TaskStatus.concluido.value, TaskStatus.nao_realizado.value}


def _get_team(db: Session, user: User, team_id: uuid.UUID) -> Team:
    team = visible_teams(user, db.query(Team)).filter(Team.id == team_id).first()
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


def _get_leader(db: Session, user: User, leader_id: uuid.UUID) -> User:
    leader = db.query(User).filter(User.id == leader_id).first()
    if not leader:
        raise HTTPException(status_code=404, detail="Leader not found")
    if leader.company_id != user.company_id and not sees_all_companies(user):
        raise HTTPException(status_code=403, detail="Leader belongs to another company")
    return leader


def _users_by_ids(db: Session, ids: List[str]) -> List[User]:
    uuids = []
    for i in ids:
        try:
            uuids.append(uuid.UUID(str(i)))
        except ValueError:
            continue
    if not uuids:
        return []
    return db.query(User).filter(User.id.in_(uuids)).order_by(User.name).all()


# ---------- TEAMS ----------
@router.get("", response_model=List[TeamResponse])
def list_teams(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return visible_teams(user, db.query(Team)).order_by(Team.name).all()


@router.get("/technicians", response_model=List[UserResponse])
def leader_technicians(
    leader_id: Optional[uuid.UUID] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Technicians of every team led by ``leader_id`` (the caller by default), deduplicated."""
    teams = visible_teams(user, db.query(Team)).filter(Team.leader_id == (leader_id or user.id)).all()
    ids: dict = {}
    for team in teams:
        for tid in team.technician_ids or []:
            ids[str(tid)] = None
    return _users_by_ids(db, list(ids))


@router.get("/status", response_model=List[TechnicianStatus])
def team_status(db: Session = Depends(get_db), user: User = Depends(require_roles(*MANAGER_ROLES))):
    if is_chief(user):
        technicians = (
            visible_users(user, db.query(User))
            .filter(User.role.in_(TECHNICIAN_ROLES), User.status == "ACTIVE")
            .order_by(User.name)
            .all()
        )
    else:
        technicians = leader_technicians(None, db, user)

    result = []
    for tech in technicians:
        tasks = db.query(Task).filter(Task.technician_id == tech.id).order_by(Task.scheduled_date.desc()).all()
        completed = sum(1 for t in tasks if t.status == TaskStatus.concluido.value)
        pending = sum(1 for t in tasks if t.status not in CLOSED_STATUSES)
        result.append(TechnicianStatus(
            technician=UserResponse.model_validate(tech),
            tasks=[TaskResponse.model_validate(t) for t in tasks],
            completed=completed,
            pending=pending,
        ))
    return result


@router.post("", response_model=TeamResponse)
def create_team(payload: TeamCreate, db: Session = Depends(get_db), user: User = Depends(require_roles(*MANAGER_ROLES))):
    leader = _get_leader(db, user, payload.leader_id)
    team = Team(
        name=payload.name.strip(),
        leader_id=leader.id,
        technician_ids=[str(t) for t in payload.technician_ids],
        company_id=leader.company_id,
    )
    db.add(team)
    db.commit()
    db.refresh(team)
    log.info("team_created", team_id=str(team.id), company_id=team.company_id)
    return team


@router.put("/{team_id}", response_model=TeamResponse)
def update_team(
    team_id: uuid.UUID,
    update: TeamUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    team = _get_team(db, user, team_id)
    before = row_to_dict(team)
    data = update.dict(exclude_unset=True)
    if data.get("leader_id"):
        leader = _get_leader(db, user, data["leader_id"])
        team.leader_id = leader.id
        team.company_id = leader.company_id
    if data.get("name"):
        team.name = data["name"].strip()
    if data.get("technician_ids") is not None:
        team.technician_ids = [str(t) for t in data["technician_ids"]]
    create_audit_log(db, "teams", team.id, "UPDATE", user.id, old_data=before, new_data=row_to_dict(team))
    db.commit()
    db.refresh(team)
    return team


@router.delete("/{team_id}")
def delete_team(team_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_roles(*MANAGER_ROLES))):
    team = _get_team(db, user, team_id)
    create_audit_log(db, "teams", team.id, "DELETE", user.id, old_data=row_to_dict(team))
    db.delete(team)
    db.commit()
    return {"message": "Team deleted successfully"}
