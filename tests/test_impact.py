from datetime import datetime, timedelta

from scheduler.impact import ImpactAnalyzer
from scheduler.scoring import ContinuityScorer

from conftest import build_session, FailingSessionRepository, TUESDAY_9AM


class TestImpactAnalyzer:

    def test_unchanged_provider_has_no_continuity_disruption(self, engine):
        impact = engine.analyze_rescheduling_impact("sess_1", datetime(2025, 1, 15, 9))

        assert impact.continuity_disruption == 0.0
        assert impact.notification_count == 2
        assert impact.affected_sessions == []
        assert impact.operational_complexity == 0.0

    def test_explicit_same_provider_is_unchanged(self, engine):
        impact = engine.analyze_rescheduling_impact("sess_1", datetime(2025, 1, 15, 9), "rbt_a")
        assert impact.continuity_disruption == 0.0

    def test_provider_change_costs_continuity(self, engine):
        impact = engine.analyze_rescheduling_impact("sess_1", datetime(2025, 1, 15, 9), "rbt_b")

        # 71 with rbt_a against 2 with rbt_b
        assert impact.continuity_disruption == 69.0
        assert impact.notification_count == 4
        assert impact.operational_complexity == 20.0

    def test_nearby_sessions_are_affected(self, engine):
        engine.sessions.create(build_session("near", "client_2", "rbt_a", datetime(2025, 1, 15, 13)))
        engine.sessions.create(build_session("far", "client_2", "rbt_a", datetime(2025, 1, 20, 13)))

        impact = engine.analyze_rescheduling_impact("sess_1", datetime(2025, 1, 15, 9))

        assert [s.id for s in impact.affected_sessions] == ["near"]
        assert impact.cascading_changes == 0
        assert impact.operational_complexity == 10.0

    def test_window_ends_a_day_after_the_later_start(self, engine):
        # Later start is Wed 09:00, so the window closes Thu 09:00
        engine.sessions.create(build_session("edge", "client_2", "rbt_a", datetime(2025, 1, 16, 9)))
        engine.sessions.create(build_session("past_edge", "client_3", "rbt_a", datetime(2025, 1, 16, 10)))

        impact = engine.analyze_rescheduling_impact("sess_1", datetime(2025, 1, 15, 9))

        assert [s.id for s in impact.affected_sessions] == ["edge"]

    def test_complexity_is_capped(self, engine):
        for i in range(12):
            engine.sessions.create(build_session(
                f"busy_{i}", f"client_{i + 10}", "rbt_b", TUESDAY_9AM + timedelta(hours=i % 3, days=i // 3 % 2)
            ))
        impact = engine.analyze_rescheduling_impact("sess_1", datetime(2025, 1, 15, 9), "rbt_b")
        assert impact.operational_complexity == 100.0

    def test_unknown_session_yields_zeroed_report(self, engine):
        impact = engine.analyze_rescheduling_impact("missing", datetime(2025, 1, 15, 9))
        assert impact.affected_sessions == []
        assert impact.notification_count == 0

    def test_repository_failure_degrades_to_zeroed_report(self, clock, upcoming):
        analyzer = ImpactAnalyzer(FailingSessionRepository([upcoming]), ContinuityScorer(clock))
        impact = analyzer.analyze_impact("sess_1", datetime(2025, 1, 15, 9), "rbt_b")

        assert impact.continuity_disruption == 0.0
        assert impact.operational_complexity == 0.0
        assert impact.cascading_changes == 0
