"""
End-to-end behaviour of the SchedulingEngine facade.
"""

import pytest
from datetime import datetime, timedelta

from models import (
    ConflictType,
    SessionStatus,
    ScheduleSessionRequest,
    ScheduleEventType,
    ScheduleEventQuery,
    ReschedulingPreferences,
    ReschedulingConstraints,
    AuditEntityType,
)
from scheduler.engine import SchedulingEngine, INTERNAL_ERROR
from scheduler.errors import RepositoryError
from scheduler.state import InMemoryAuditEventRepository

from conftest import build_session, NOW, TUESDAY_9AM


def _request(start, **kwargs):
    return ScheduleSessionRequest(
        client_id=kwargs.pop("client_id", "client_1"),
        preferred_start_time=start,
        created_by="coordinator",
        location="Home",
        **kwargs,
    )


class UnwritableAuditRepository(InMemoryAuditEventRepository):

    def create(self, event):
        raise RepositoryError("audit store offline")


class TestScheduleSession:

    def test_auto_selects_strongest_provider(self, engine):
        result = engine.schedule_session(_request(datetime(2025, 1, 15, 9)))

        assert result.success
        assert result.session.rbt_id == "rbt_a"
        assert result.session.end_time == datetime(2025, 1, 15, 12)
        assert result.rbt_selection.continuity_score == 71.0
        assert engine.sessions.find_by_id(result.session.id) == result.session

        [event] = engine.audit.find_by_session(result.session.id)
        assert event.event_type == ScheduleEventType.SESSION_CREATED
        assert event.metadata["continuity_score"] == 71.0

    def test_falls_back_to_free_team_member(self, engine):
        engine.sessions.create(build_session("busy", "client_2", "rbt_a", datetime(2025, 1, 15, 9)))
        result = engine.schedule_session(_request(datetime(2025, 1, 15, 9)))

        assert result.success
        assert result.session.rbt_id == "rbt_b"

    def test_explicit_provider(self, engine):
        result = engine.schedule_session(_request(datetime(2025, 1, 15, 9), rbt_id="rbt_b"))
        assert result.success
        assert result.rbt_selection.selection_reason == "Requested provider"

    def test_provider_outside_team_rejected(self, engine):
        result = engine.schedule_session(_request(datetime(2025, 1, 15, 9), rbt_id="rbt_d"))
        assert not result.success
        assert result.conflicts[0].type == ConflictType.RBT_UNAVAILABLE

    def test_inactive_team_member_rejected(self, engine):
        result = engine.schedule_session(_request(datetime(2025, 1, 15, 9), rbt_id="rbt_c"))
        assert not result.success
        assert "not active" in result.conflicts[0].description

    def test_no_active_team(self, engine):
        result = engine.schedule_session(_request(datetime(2025, 1, 15, 9), client_id="client_9"))
        assert not result.success
        assert [c.type for c in result.conflicts] == [ConflictType.NO_ACTIVE_TEAM]

    def test_weekend_returns_alternatives(self, engine):
        result = engine.schedule_session(_request(datetime(2025, 1, 18, 9)))

        assert not result.success
        assert result.conflicts[0].type == ConflictType.BUSINESS_HOURS_VIOLATION
        assert result.alternatives
        assert all(a.start_time.weekday() < 5 for a in result.alternatives)

    def test_alternatives_can_be_disabled(self, engine):
        result = engine.schedule_session(_request(datetime(2025, 1, 18, 9), allow_alternatives=False))
        assert result.alternatives == []

    def test_client_already_booked(self, engine):
        result = engine.schedule_session(_request(TUESDAY_9AM + timedelta(hours=1)))

        assert not result.success
        assert [c.type for c in result.conflicts] == [ConflictType.CLIENT_DOUBLE_BOOKED]
        assert result.conflicts[0].conflicting_session_id == "sess_1"

    def test_repository_failure_is_internal_error(self, failing_engine):
        result = failing_engine.schedule_session(_request(datetime(2025, 1, 15, 9)))
        assert not result.success
        assert result.error == INTERNAL_ERROR
        assert "connection refused" not in result.message


class TestFindReschedulingOptions:

    def test_current_provider_only_by_default(self, engine):
        result = engine.find_rescheduling_options(
            "sess_1", "Client illness", ReschedulingPreferences(max_days_from_original=3)
        )

        assert result.success
        assert result.original_session.id == "sess_1"
        assert 0 < len(result.recommended_options) <= 5
        assert {o.rbt_id for o in result.recommended_options} == {"rbt_a"}
        assert [o.rank for o in result.recommended_options] == list(range(1, len(result.recommended_options) + 1))
        assert result.optimization_metrics.continuity_preservation_rate == 1.0
        assert result.optimization_metrics.slots_checked == 31

    def test_options_never_conflict(self, engine):
        engine.sessions.create(build_session("busy", "client_2", "rbt_a", datetime(2025, 1, 14, 13)))
        result = engine.find_rescheduling_options(
            "sess_1", "Client illness", ReschedulingPreferences(allow_different_rbt=True)
        )
        for option in result.recommended_options:
            assert not engine.detector.has_conflict("client_1", option.rbt_id, option.start_time,
                                                    option.end_time, "sess_1")

    def test_insufficient_notice(self, engine):
        engine.sessions.create(build_session("soon", "client_1", "rbt_a", NOW + timedelta(minutes=10)))
        result = engine.find_rescheduling_options(
            "soon", "Client illness", constraints=ReschedulingConstraints(min_notice_hours=24)
        )

        assert not result.success
        assert result.recommended_options == []
        assert result.violations == ["Insufficient notice: 0.2 hours, minimum 24 required"]

    def test_completed_session(self, engine):
        result = engine.find_rescheduling_options("hist_rbt_a_0", "Client illness")
        assert not result.success
        assert result.violations == ["Cannot reschedule a completed session"]

    def test_session_not_found(self, engine):
        result = engine.find_rescheduling_options("missing", "Client illness")
        assert not result.success
        assert result.message == "Session not found"

    def test_blank_inputs_rejected_before_lookup(self, engine):
        result = engine.find_rescheduling_options(" ", "")
        assert not result.success
        assert result.violations == ["session_id is required", "reason is required"]

    def test_expired_deadline_is_partial_not_failure(self, engine):
        result = engine.find_rescheduling_options("sess_1", "Client illness", deadline=NOW)

        assert result.success
        assert result.optimization_metrics.partial
        assert result.message.endswith("(search stopped at deadline)")

    def test_no_team_means_no_options(self, engine, team_repo, team):
        team_repo.save(team.model_copy(update={"is_active": False}))
        result = engine.find_rescheduling_options("sess_1", "Client illness")

        assert result.success
        assert result.recommended_options == []

    def test_repository_failure_is_internal_error(self, failing_engine):
        result = failing_engine.find_rescheduling_options("sess_1", "Client illness")
        assert result.error == INTERNAL_ERROR


class TestRescheduleSession:

    def test_closes_original_and_links_replacement(self, engine):
        new_start = datetime(2025, 1, 15, 10)
        result = engine.reschedule_session("sess_1", new_start, "Client illness", "coordinator")

        assert result.success
        assert result.original_session.status == SessionStatus.CANCELLED
        assert result.original_session.cancellation_reason == "Rescheduled: Client illness"
        assert result.new_session.rescheduled_from_id == "sess_1"
        assert result.new_session.start_time == new_start
        assert result.new_session.rbt_id == "rbt_a"
        assert result.impact.continuity_disruption == 0.0
        assert [e.event_type for e in result.events] == [
            ScheduleEventType.SESSION_RESCHEDULED,
            ScheduleEventType.SESSION_CREATED,
        ]
        assert engine.sessions.find_by_id("sess_1").status == SessionStatus.CANCELLED

    def test_same_day_move_ignores_own_slot(self, engine):
        result = engine.reschedule_session("sess_1", TUESDAY_9AM + timedelta(hours=1), "Traffic", "coordinator")
        assert result.success

    def test_conflicting_slot_rejected(self, engine):
        engine.sessions.create(build_session("busy", "client_2", "rbt_a", datetime(2025, 1, 15, 9)))
        result = engine.reschedule_session("sess_1", datetime(2025, 1, 15, 10), "Client illness", "coordinator")

        assert not result.success
        assert ConflictType.RBT_DOUBLE_BOOKED in [c.type for c in result.conflicts]
        assert engine.sessions.find_by_id("sess_1").status == SessionStatus.SCHEDULED

    def test_provider_must_be_on_team(self, engine):
        result = engine.reschedule_session("sess_1", datetime(2025, 1, 15, 9), "Client illness",
                                           "coordinator", new_rbt_id="rbt_d")
        assert not result.success
        assert result.conflicts[0].type == ConflictType.RBT_UNAVAILABLE

    def test_outside_business_hours_rejected(self, engine):
        result = engine.reschedule_session("sess_1", datetime(2025, 1, 15, 17), "Client illness", "coordinator")
        assert not result.success
        assert result.conflicts[0].type == ConflictType.BUSINESS_HOURS_VIOLATION

    def test_execute_option(self, engine):
        found = engine.find_rescheduling_options("sess_1", "Client illness")
        best = found.recommended_options[0]

        result = engine.execute_option("sess_1", best, "Client illness", "coordinator")

        assert result.success
        assert result.new_session.start_time == best.start_time
        assert result.new_session.rbt_id == best.rbt_id

    def test_audit_trail_follows_the_move(self, engine):
        engine.reschedule_session("sess_1", datetime(2025, 1, 15, 10), "Client illness", "coordinator")
        trail = engine.get_audit_trail(AuditEntityType.CLIENT, "client_1")

        assert [e.event_type for e in trail.events] == [
            ScheduleEventType.SESSION_RESCHEDULED,
            ScheduleEventType.SESSION_CREATED,
        ]


class TestCancelSession:

    def test_cancel(self, engine):
        result = engine.cancel_session("sess_1", "Family emergency", "coordinator")

        assert result.success
        assert result.session.status == SessionStatus.CANCELLED
        assert result.event.old_values["status"] == "scheduled"
        assert result.event.new_values["status"] == "cancelled"

    def test_terminal_sessions_cannot_be_cancelled(self, engine):
        engine.cancel_session("sess_1", "Family emergency", "coordinator")
        result = engine.cancel_session("sess_1", "Again", "coordinator")

        assert not result.success
        assert result.message == "Cannot cancel a cancelled session"

    def test_blank_actor_rejected(self, engine):
        result = engine.cancel_session("sess_1", "Family emergency", "")
        assert result.violations == ["cancelled_by is required"]


class TestDoubleBookings:

    def test_scan(self, engine):
        engine.sessions.create(build_session("clash", "client_2", "rbt_a", TUESDAY_9AM + timedelta(hours=1)))
        clashes = engine.find_double_bookings(NOW, NOW + timedelta(days=7))
        assert [(a.id, b.id) for a, b in clashes] == [("sess_1", "clash")]

    def test_inverted_range(self, engine):
        with pytest.raises(ValueError):
            engine.find_double_bookings(NOW, NOW)


class TestSharedStores:

    def test_engines_built_per_request_share_one_audit_store(
        self, session_repo, team_repo, provider_repo, audit_repo, clock
    ):
        def fresh_engine():
            return SchedulingEngine(session_repo, team_repo, provider_repo, audit_repo, clock=clock)

        first = fresh_engine().schedule_session(_request(datetime(2025, 1, 15, 9)))
        second = fresh_engine().schedule_session(_request(datetime(2025, 1, 16, 9)))

        assert first.success and second.success
        created = audit_repo.query(ScheduleEventQuery(event_type=ScheduleEventType.SESSION_CREATED))
        assert {e.session_id for e in created} == {first.session.id, second.session.id}

    def test_failed_audit_write_names_the_saved_session(
        self, session_repo, team_repo, provider_repo, clock, caplog
    ):
        engine = SchedulingEngine(
            session_repo, team_repo, provider_repo, UnwritableAuditRepository(), clock=clock
        )

        result = engine.schedule_session(_request(datetime(2025, 1, 15, 9)))

        assert result.error == INTERNAL_ERROR
        [saved] = [s for s in session_repo.find_by_client_id("client_1") if s.start_time == datetime(2025, 1, 15, 9)]
        assert f"sessions already saved: {saved.id}" in caplog.text
