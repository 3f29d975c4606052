from datetime import date

from fieldhub.models.models import Task, Team, User
from fieldhub.services.visibility import (
    can_edit_past_days,
    can_manage_prices,
    company_scope,
    sees_all_companies,
    visible_tasks,
    visible_teams,
    visible_users,
    write_company,
)


def _task(db, company_id, technician=None, code="1001"):
    task = Task(
        asset_id=code,
        asset_json={"id": code},
        service_type="Manutenção Preventiva",
        company_id=company_id,
        technician_id=technician.id if technician else None,
        scheduled_date=date(2026, 1, 10),
    )
    db.add(task)
    db.commit()
    return task


def test_technician_sees_only_own_tasks(db, make_user, technician):
    other = make_user("TECNICO")
    mine = _task(db, "internal", technician)
    _task(db, "internal", other)
    ids = [t.id for t in visible_tasks(technician, db.query(Task)).all()]
    assert ids == [mine.id]


def test_leader_sees_company_tasks(db, leader, technician, partner_leader):
    _task(db, "internal", technician)
    _task(db, "gf1")
    companies = {t.company_id for t in visible_tasks(leader, db.query(Task)).all()}
    assert companies == {"internal"}
    partner_companies = {t.company_id for t in visible_tasks(partner_leader, db.query(Task)).all()}
    assert partner_companies == {"gf1"}


def test_internal_chief_sees_every_company(db, chief):
    _task(db, "internal")
    _task(db, "gf1")
    assert sees_all_companies(chief)
    assert {t.company_id for t in visible_tasks(chief, db.query(Task)).all()} == {"internal", "gf1"}


def test_partner_chief_is_confined(make_user):
    partner_chief = make_user("PARCEIRO_CHEFE", company_id="gf1")
    assert not sees_all_companies(partner_chief)
    assert company_scope(partner_chief, "all") == "gf1"
    assert company_scope(partner_chief, "alvares") == "gf1"


def test_technician_sees_no_teams(db, leader, technician, make_team):
    make_team(leader, [technician])
    assert visible_teams(technician, db.query(Team)).all() == []
    assert len(visible_teams(leader, db.query(Team)).all()) == 1


def test_visible_users(db, leader, technician, partner_leader, chief):
    assert [u.id for u in visible_users(technician, db.query(User)).all()] == [technician.id]
    leader_view = {u.company_id for u in visible_users(leader, db.query(User)).all()}
    assert leader_view == {"internal"}
    chief_view = {u.company_id for u in visible_users(chief, db.query(User)).all()}
    assert chief_view == {"internal", "gf1"}


def test_company_scope_for_internal_users(leader):
    assert company_scope(leader) is None
    assert company_scope(leader, "all") is None
    assert company_scope(leader, "gf1") == "gf1"


def test_write_company(leader, partner_leader):
    assert write_company(leader) == "internal"
    assert write_company(leader, "all") == "internal"
    assert write_company(leader, "gf1") == "gf1"
    assert write_company(partner_leader, "alvares") == "gf1"


def test_price_and_past_day_permissions(chief, leader, technician, partner_leader):
    assert can_manage_prices(chief)
    assert can_manage_prices(leader)
    assert can_manage_prices(partner_leader)
    assert not can_manage_prices(technician)
    assert can_edit_past_days(chief)
    assert not can_edit_past_days(leader)
