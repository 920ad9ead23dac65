"""
Shared pytest fixtures for the Capstone Workflow Service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user / make_team: committed directory and team rows
    - mentored_team: confirmed two-member team with project, guide and expert
    - as_user: identity headers for API calls

Factory rows are committed, not flushed: every workflow service runs its own
unit of work and rolls the session back on failure.
"""

import pytest

from capstone import create_app
from capstone.models import db as _db
from capstone.models.team import Team, TeamMember
from capstone.models.user import User


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


def _make_user(reg_num, role="student", *, semester=5, project_type="internal",
               company_name=None, email="auto", available=True, name=None):
    if email == "auto":
        email = f"{reg_num.lower()}@campus.example.org"
    user = User(
        reg_num=reg_num,
        name=name or f"User {reg_num}",
        email=email,
        role=role,
        semester=semester if role == "student" else None,
        project_type=project_type if role == "student" else None,
        company_name=company_name,
        available=available,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def _make_team(team_id, leader, *members, semester=5, guide=None, expert=None,
               project_name="Smart Irrigation Controller"):
    """Confirmed team; every reg_num must already exist as a User."""
    team = Team(
        team_id=team_id,
        semester=semester,
        leader_reg_num=leader,
        guide_reg_num=guide,
        expert_reg_num=expert,
        project_name=project_name,
        project_type="internal" if project_name else None,
    )
    team.members.append(TeamMember(reg_num=leader, is_leader=True))
    for reg_num in members:
        team.members.append(TeamMember(reg_num=reg_num, is_leader=False))
    _db.session.add(team)
    _db.session.commit()
    return team


@pytest.fixture()
def make_user():
    return _make_user


@pytest.fixture()
def make_team():
    return _make_team


@pytest.fixture()
def mentored_team():
    """TEAM-0001: leader S1, member S2, guide G1, expert E1, semester 5."""
    _make_user("S1")
    _make_user("S2")
    _make_user("G1", role="staff")
    _make_user("E1", role="staff")
    _make_team("TEAM-0001", "S1", "S2", guide="G1", expert="E1")
    return "TEAM-0001"


@pytest.fixture()
def as_user():
    """Gateway identity headers: as_user("S1", "student")."""
    def _headers(reg_num, role):
        return {"X-Registration-Id": reg_num, "X-Role": role}
    return _headers
