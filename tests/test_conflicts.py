import pytest
from datetime import timedelta

from models import ConflictType, SessionStatus
from scheduler.conflicts import ConflictDetector, detect_double_bookings
from scheduler.state import InMemorySessionRepository

from conftest import build_session, TUESDAY_9AM

THREE_HOURS = timedelta(hours=3)


@pytest.fixture
def detector():
    repo = InMemorySessionRepository([
        build_session("s1", "client_1", "rbt_a", TUESDAY_9AM),
        build_session("s2", "client_2", "rbt_b", TUESDAY_9AM, SessionStatus.CANCELLED),
    ])
    return ConflictDetector(repo)


class TestConflictDetector:

    def test_provider_overlap(self, detector):
        start = TUESDAY_9AM + timedelta(hours=2)
        assert detector.has_conflict("client_9", "rbt_a", start, start + THREE_HOURS)

        violations = detector.find_conflicts("client_9", "rbt_a", start, start + THREE_HOURS)
        assert [v.constraint_type for v in violations] == [ConflictType.RBT_DOUBLE_BOOKED]
        assert violations[0].conflicting_session_id == "s1"

    def test_client_overlap(self, detector):
        violations = detector.find_conflicts("client_1", "rbt_d", TUESDAY_9AM, TUESDAY_9AM + THREE_HOURS)
        assert [v.constraint_type for v in violations] == [ConflictType.CLIENT_DOUBLE_BOOKED]

    def test_same_pair_reports_both(self, detector):
        violations = detector.find_conflicts("client_1", "rbt_a", TUESDAY_9AM, TUESDAY_9AM + THREE_HOURS)
        assert [v.constraint_type for v in violations] == [
            ConflictType.RBT_DOUBLE_BOOKED,
            ConflictType.CLIENT_DOUBLE_BOOKED,
        ]

    def test_back_to_back_is_not_a_conflict(self, detector):
        start = TUESDAY_9AM + THREE_HOURS
        assert not detector.has_conflict("client_1", "rbt_a", start, start + THREE_HOURS)

    def test_cancelled_sessions_never_block(self, detector):
        assert not detector.has_conflict("client_2", "rbt_b", TUESDAY_9AM, TUESDAY_9AM + THREE_HOURS)

    def test_excluded_session(self, detector):
        assert not detector.has_conflict("client_1", "rbt_a", TUESDAY_9AM, TUESDAY_9AM + THREE_HOURS, "s1")


class TestDoubleBookingScan:

    def test_flags_overlapping_pairs_per_provider(self):
        sessions = [
            build_session("s3", "client_3", "rbt_a", TUESDAY_9AM + timedelta(hours=6)),
            build_session("s1", "client_1", "rbt_a", TUESDAY_9AM),
            build_session("s2", "client_2", "rbt_a", TUESDAY_9AM + timedelta(hours=1)),
            build_session("s4", "client_4", "rbt_b", TUESDAY_9AM),
        ]
        clashes = detect_double_bookings(sessions)
        assert [(a.id, b.id) for a, b in clashes] == [("s1", "s2")]

    def test_cancelled_sessions_ignored(self):
        sessions = [
            build_session("s1", "client_1", "rbt_a", TUESDAY_9AM),
            build_session("s2", "client_2", "rbt_a", TUESDAY_9AM, SessionStatus.CANCELLED),
        ]
        assert detect_double_bookings(sessions) == []
