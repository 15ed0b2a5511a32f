import pytest
from datetime import date

from models import ScheduleEventType, AuditEntityType
from scheduler.errors import TeamRuleError


@pytest.fixture
def manager(engine):
    return engine.team_manager


class TestTeamManager:

    def test_create_team(self, manager, engine):
        team = manager.create_team("client_2", ["rbt_a", "rbt_d"], "rbt_d", "admin")

        assert team.id.startswith("team_")
        assert team.effective_date == date(2025, 1, 13)
        assert engine.teams.find_active_by_client_id("client_2") == team

        [event] = engine.audit.find_by_type(ScheduleEventType.TEAM_CREATED)
        assert event.metadata["team_id"] == team.id
        assert event.old_values is None

    def test_one_active_team_per_client(self, manager):
        with pytest.raises(TeamRuleError):
            manager.create_team("client_1", ["rbt_d"], "rbt_d", "admin")

    def test_inactive_providers_cannot_join(self, manager):
        with pytest.raises(TeamRuleError):
            manager.create_team("client_2", ["rbt_c"], "rbt_c", "admin")
        with pytest.raises(TeamRuleError):
            manager.add_provider("team_1", "rbt_z", "admin")

    def test_add_provider(self, manager, engine):
        team = manager.add_provider("team_1", "rbt_d", "admin")

        assert team.rbt_ids == ["rbt_a", "rbt_b", "rbt_c", "rbt_d"]
        assert team.updated_by == "admin"
        [event] = engine.audit.find_by_type(ScheduleEventType.RBT_ADDED)
        assert event.rbt_id == "rbt_d"
        assert "rbt_d" not in event.old_values["rbt_ids"]

    def test_duplicate_member_rejected(self, manager):
        with pytest.raises(TeamRuleError):
            manager.add_provider("team_1", "rbt_b", "admin")

    def test_primary_cannot_be_removed(self, manager):
        with pytest.raises(TeamRuleError):
            manager.remove_provider("team_1", "rbt_a", "admin")

    def test_remove_provider(self, manager):
        team = manager.remove_provider("team_1", "rbt_b", "admin", reason="Moved clinics")
        assert team.rbt_ids == ["rbt_a", "rbt_c"]

    def test_change_primary(self, manager, engine):
        team = manager.change_primary("team_1", "rbt_b", "admin")

        assert team.primary_rbt_id == "rbt_b"
        trail = engine.get_audit_trail(AuditEntityType.TEAM, "client_1")
        assert trail.events[-1].description == "Primary provider changed from rbt_a to rbt_b for client client_1"

    def test_primary_must_be_member(self, manager):
        with pytest.raises(TeamRuleError):
            manager.change_primary("team_1", "rbt_d", "admin")

    def test_end_team(self, manager, engine):
        team = manager.end_team("team_1", "admin", reason="Discharged")

        assert not team.is_active
        assert team.end_date == date(2025, 1, 13)
        assert engine.teams.find_active_by_client_id("client_1") is None
        with pytest.raises(TeamRuleError):
            manager.add_provider("team_1", "rbt_d", "admin")

    def test_unknown_team(self, manager):
        with pytest.raises(TeamRuleError):
            manager.end_team("team_9", "admin")
