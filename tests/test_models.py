import pytest
from datetime import datetime, date, timedelta, time
from pydantic import ValidationError

from models import (
    Session,
    SessionStatus,
    Team,
    Provider,
    TimeWindow,
    ReschedulingPreferences,
    ScheduleSessionRequest,
    NewScheduleEvent,
    ScheduleEventType,
)

from conftest import build_session, TUESDAY_9AM


class TestSession:

    def test_duration_must_be_three_hours(self):
        with pytest.raises(ValidationError):
            Session(
                id="s1", client_id="c1", rbt_id="r1",
                start_time=TUESDAY_9AM, end_time=TUESDAY_9AM + timedelta(hours=2),
            )

    def test_defaults_to_scheduled(self):
        session = build_session("s1", "c1", "r1", TUESDAY_9AM)
        assert session.status == SessionStatus.SCHEDULED
        assert not session.is_terminal
        assert session.blocks_time

    def test_transitions_only_move_forward(self):
        session = build_session("s1", "c1", "r1", TUESDAY_9AM, SessionStatus.CONFIRMED)
        assert session.can_transition_to(SessionStatus.COMPLETED)
        assert not session.can_transition_to(SessionStatus.SCHEDULED)

    @pytest.mark.parametrize("status", [SessionStatus.COMPLETED, SessionStatus.CANCELLED, SessionStatus.NO_SHOW])
    def test_terminal_statuses_have_no_exits(self, status):
        session = build_session("s1", "c1", "r1", TUESDAY_9AM, status)
        assert session.is_terminal
        assert not any(session.can_transition_to(s) for s in SessionStatus)

    def test_overlap_is_half_open(self):
        session = build_session("s1", "c1", "r1", TUESDAY_9AM)
        assert session.overlaps(TUESDAY_9AM + timedelta(hours=2), TUESDAY_9AM + timedelta(hours=5))
        assert not session.overlaps(TUESDAY_9AM + timedelta(hours=3), TUESDAY_9AM + timedelta(hours=6))
        assert not session.overlaps(TUESDAY_9AM - timedelta(hours=3), TUESDAY_9AM)

    def test_cancelled_and_no_show_are_not_active(self):
        assert not build_session("s1", "c1", "r1", TUESDAY_9AM, SessionStatus.CANCELLED).is_active
        assert not build_session("s1", "c1", "r1", TUESDAY_9AM, SessionStatus.NO_SHOW).is_active
        assert build_session("s1", "c1", "r1", TUESDAY_9AM, SessionStatus.NO_SHOW).blocks_time


class TestTeam:

    def test_primary_must_be_member(self):
        with pytest.raises(ValidationError):
            Team(id="t1", client_id="c1", rbt_ids=["r1"], primary_rbt_id="r2", effective_date=date(2025, 1, 1))

    def test_active_team_needs_members(self):
        with pytest.raises(ValidationError):
            Team(id="t1", client_id="c1", rbt_ids=[], primary_rbt_id="r1", effective_date=date(2025, 1, 1))

    def test_members_are_deduplicated_in_order(self):
        team = Team(id="t1", client_id="c1", rbt_ids=["r2", "r1", "r2"], primary_rbt_id="r1",
                    effective_date=date(2025, 1, 1))
        assert team.rbt_ids == ["r2", "r1"]

    def test_end_date_not_before_effective_date(self):
        with pytest.raises(ValidationError):
            Team(id="t1", client_id="c1", rbt_ids=["r1"], primary_rbt_id="r1",
                 effective_date=date(2025, 1, 10), end_date=date(2025, 1, 1))


class TestRequests:

    def test_provider_full_name(self):
        assert Provider(id="r1", first_name="Sam").full_name == "Sam"
        assert Provider(id="r1", first_name="Sam", last_name="Lee").full_name == "Sam Lee"

    def test_time_window_must_be_ordered(self):
        with pytest.raises(ValidationError):
            TimeWindow(start_time=time(12), end_time=time(9))

    def test_preferred_time_matches_window_start(self):
        prefs = ReschedulingPreferences(preferred_times=[TimeWindow(start_time=time(9), end_time=time(12))])
        assert prefs.is_preferred_time(datetime(2025, 1, 15, 9, 0))
        assert not prefs.is_preferred_time(datetime(2025, 1, 15, 10, 0))

    def test_blank_client_id_rejected(self):
        with pytest.raises(ValidationError):
            ScheduleSessionRequest(client_id="   ", preferred_start_time=TUESDAY_9AM, created_by="u1")

    def test_event_requires_an_entity_reference(self):
        with pytest.raises(ValidationError):
            NewScheduleEvent(event_type=ScheduleEventType.SESSION_CREATED, created_by="u1")
