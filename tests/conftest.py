"""
Shared fixtures: an in-memory database holding two teams, their captains and
players, plus factories for matches and deliveries.
"""
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from scorebook.database import Base, enable_sqlite_write_locking
from scorebook.models import User, UserRole, Team, TeamMember, MemberStatus, Match, MatchStatus
from scorebook.engine.ball_engine import BallEntryEngine, DeliveryInput
from scorebook.engine.approval_engine import ApprovalEngine
from scorebook.services import AuditService, StatsService


def no_sleep(seconds):
    pass


@pytest.fixture
def test_db():
    """Create an in-memory test database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = Session(engine)
    yield session
    session.close()
    engine.dispose()


def _add_user(session, name: str, role: UserRole = UserRole.PLAYER) -> User:
    user = User(email=f"{name.lower().replace(' ', '.')}@example.com", full_name=name, role=role)
    session.add(user)
    return user


def seed_league(session):
    """Two teams of three active members each (captain included)"""
    captain_a = _add_user(session, "Alice Captain", UserRole.CAPTAIN)
    captain_b = _add_user(session, "Bruno Captain", UserRole.CAPTAIN)
    a1 = _add_user(session, "Arjun Rao")
    a2 = _add_user(session, "Asha Menon")
    b1 = _add_user(session, "Ben Stokes")
    b2 = _add_user(session, "Bilal Khan")
    b_left = _add_user(session, "Boris Gone")
    admin = _add_user(session, "Ada Admin", UserRole.ADMIN)
    outsider = _add_user(session, "Olly Outsider")
    session.flush()

    team_a = Team(team_name="Falcons", captain_id=captain_a.id)
    team_b = Team(team_name="Hawks", captain_id=captain_b.id)
    session.add_all([team_a, team_b])
    session.flush()

    for team, players in ((team_a, [captain_a, a1, a2]), (team_b, [captain_b, b1, b2])):
        for player in players:
            session.add(TeamMember(team_id=team.id, player_id=player.id, status=MemberStatus.ACTIVE))
    session.add(TeamMember(team_id=team_b.id, player_id=b_left.id, status=MemberStatus.LEFT))
    session.commit()

    return SimpleNamespace(
        captain_a=captain_a,
        captain_b=captain_b,
        team_a=team_a,
        team_b=team_b,
        team_a_players=[a1, a2],
        team_b_players=[b1, b2],
        b_left=b_left,
        admin=admin,
        outsider=outsider,
    )


@pytest.fixture
def league(test_db):
    return seed_league(test_db)


@pytest.fixture
def make_match(test_db, league):
    """Factory for a Falcons (bat first) vs Hawks match in the given status"""
    def _make(status: MatchStatus = MatchStatus.SCHEDULED) -> Match:
        match = Match(
            team_a_id=league.team_a.id,
            team_b_id=league.team_b.id,
            venue="Riverside Oval",
            match_date=datetime(2026, 5, 1, 10, 0),
            status=status,
        )
        test_db.add(match)
        test_db.commit()
        return match

    return _make


@pytest.fixture
def make_delivery(league):
    """Factory for a dot ball in the given innings; keyword overrides win"""
    def _make(innings: int = 1, **overrides) -> DeliveryInput:
        if innings == 1:
            batting, bowling = league.team_a_players, league.team_b_players
        else:
            batting, bowling = league.team_b_players, league.team_a_players
        fields = dict(
            innings=innings,
            over_number=1,
            ball_number=1,
            batsman_on_strike=batting[0].id,
            batsman_non_strike=batting[1].id,
            bowler=bowling[0].id,
            runs=0,
        )
        fields.update(overrides)
        return DeliveryInput(**fields)

    return _make


@pytest.fixture
def ball_engine(test_db):
    return BallEntryEngine(test_db, audit=AuditService(test_db), sleep=no_sleep)


@pytest.fixture
def approval_engine(test_db):
    return ApprovalEngine(
        test_db,
        audit=AuditService(test_db),
        stats=StatsService(test_db),
        sleep=no_sleep,
    )


@pytest.fixture
def file_engine(tmp_path):
    """File-backed database locked the way the app locks SQLite, for multi-session tests"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'scorebook.db'}",
        connect_args={"timeout": 10, "check_same_thread": False},
    )
    enable_sqlite_write_locking(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_league(file_engine):
    """Ids of the seeded league; objects don't travel between thread sessions"""
    with Session(file_engine) as session:
        league = seed_league(session)
        return SimpleNamespace(
            captain_a=league.captain_a.id,
            captain_b=league.captain_b.id,
            team_a=league.team_a.id,
            team_b=league.team_b.id,
            team_a_players=[p.id for p in league.team_a_players],
            team_b_players=[p.id for p in league.team_b_players],
        )
