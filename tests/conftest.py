"""
Shared fixtures for the scheduler test suite.

All tests run against a frozen clock: Monday 2025-01-13 08:00.
"""

import pytest
from datetime import datetime, timedelta, date

from models import Provider, Team, Session, SessionStatus, SESSION_DURATION
from scheduler.clock import FixedClock
from scheduler.config import SchedulingConfig
from scheduler.engine import SchedulingEngine
from scheduler.errors import RepositoryError
from scheduler.state import (
    InMemorySessionRepository,
    InMemoryTeamRepository,
    InMemoryProviderRepository,
    InMemoryAuditEventRepository,
)

NOW = datetime(2025, 1, 13, 8, 0)          # Monday
TUESDAY_9AM = datetime(2025, 1, 14, 9, 0)


def build_session(session_id, client_id, rbt_id, start, status=SessionStatus.SCHEDULED, **extra):
    return Session(
        id=session_id,
        client_id=client_id,
        rbt_id=rbt_id,
        start_time=start,
        end_time=start + SESSION_DURATION,
        status=status,
        **extra,
    )


def weekly_history(client_id, rbt_id, count=8, last=None, prefix=None):
    """Completed sessions one week apart, newest at `last` (default: Friday before NOW)."""
    last = last or datetime(2025, 1, 10, 9, 0)
    prefix = prefix or f"hist_{rbt_id}"
    return [
        build_session(f"{prefix}_{i}", client_id, rbt_id, last - timedelta(weeks=i), SessionStatus.COMPLETED)
        for i in range(count)
    ]


class FailingSessionRepository(InMemorySessionRepository):
    """Session store whose reads blow up, as an unreachable database would."""

    def find_by_id(self, session_id):
        raise RepositoryError("connection refused")

    def find_by_client_id(self, client_id):
        raise RepositoryError("connection refused")

    def find_by_rbt_id(self, rbt_id):
        raise RepositoryError("connection refused")

    def find_active_by_date_range(self, start, end):
        raise RepositoryError("connection refused")


class TickingClock(FixedClock):
    """Moves forward a fixed step every time it is read."""

    def __init__(self, moment, step=timedelta(seconds=1)):
        super().__init__(moment)
        self.step = step

    def now(self):
        current = super().now()
        self.advance(self.step)
        return current


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def config():
    return SchedulingConfig()


@pytest.fixture
def make_session():
    return build_session


@pytest.fixture
def providers():
    return [
        Provider(id="rbt_a", first_name="Alice", last_name="Adams"),
        Provider(id="rbt_b", first_name="Ben", last_name="Brooks"),
        Provider(id="rbt_c", first_name="Cara", last_name="Cole", is_active=False),
        Provider(id="rbt_d", first_name="Dev", last_name="Diaz"),
    ]


@pytest.fixture
def team():
    return Team(
        id="team_1",
        client_id="client_1",
        rbt_ids=["rbt_a", "rbt_b", "rbt_c"],
        primary_rbt_id="rbt_a",
        effective_date=date(2024, 1, 1),
    )


@pytest.fixture
def history():
    """8 weekly sessions with rbt_a (latest 3 days ago) and one old one with rbt_b."""
    return weekly_history("client_1", "rbt_a") + [
        build_session("hist_b_0", "client_1", "rbt_b", datetime(2024, 11, 5, 13, 0), SessionStatus.COMPLETED)
    ]


@pytest.fixture
def upcoming():
    return build_session("sess_1", "client_1", "rbt_a", TUESDAY_9AM)


@pytest.fixture
def session_repo(history, upcoming):
    return InMemorySessionRepository(history + [upcoming])


@pytest.fixture
def team_repo(team):
    return InMemoryTeamRepository([team])


@pytest.fixture
def provider_repo(providers):
    return InMemoryProviderRepository(providers)


@pytest.fixture
def audit_repo():
    return InMemoryAuditEventRepository()


@pytest.fixture
def engine(session_repo, team_repo, provider_repo, audit_repo, config, clock):
    return SchedulingEngine(
        sessions=session_repo,
        teams=team_repo,
        providers=provider_repo,
        audit_events=audit_repo,
        config=config,
        clock=clock,
    )


@pytest.fixture
def failing_engine(team, providers, clock, upcoming):
    return SchedulingEngine(
        sessions=FailingSessionRepository([upcoming]),
        teams=InMemoryTeamRepository([team]),
        providers=InMemoryProviderRepository(providers),
        audit_events=InMemoryAuditEventRepository(),
        clock=clock,
    )
