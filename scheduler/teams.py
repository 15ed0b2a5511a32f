"""
Team Roster Management.

A client's team bounds who may deliver their sessions. Every roster
change is validated, saved, and audited with before/after snapshots.
"""

import uuid
import logging
from datetime import date as date_type
from typing import Any, Dict, List, Optional

from models import Team, ScheduleEventType
from .audit import AuditLog
from .clock import Clock
from .errors import TeamRuleError
from .repositories import TeamRepository, ProviderRepository

logger = logging.getLogger(__name__)


class TeamManager:

    def __init__(
        self,
        teams: TeamRepository,
        providers: ProviderRepository,
        audit: AuditLog,
        clock: Optional[Clock] = None
    ):
        self.teams = teams
        self.providers = providers
        self.audit = audit
        self.clock = clock or Clock()

    def create_team(
        self,
        client_id: str,
        rbt_ids: List[str],
        primary_rbt_id: str,
        created_by: str,
        effective_date: Optional[date_type] = None
    ) -> Team:
        if self.teams.find_active_by_client_id(client_id):
            raise TeamRuleError(f"Client {client_id} already has an active team")
        if not rbt_ids:
            raise TeamRuleError("A team requires at least one provider")
        if primary_rbt_id not in rbt_ids:
            raise TeamRuleError("Primary provider must be a member of the team")
        for rbt_id in rbt_ids:
            self._require_active_provider(rbt_id)

        now = self.clock.now()
        team = Team(
            id=f"team_{uuid.uuid4().hex[:12]}",
            client_id=client_id,
            rbt_ids=rbt_ids,
            primary_rbt_id=primary_rbt_id,
            effective_date=effective_date or now.date(),
            created_by=created_by,
            created_at=now,
        )
        self.teams.save(team)
        self.audit.log_team_change(ScheduleEventType.TEAM_CREATED, None, team, created_by, rbt_id=primary_rbt_id)
        logger.info(f"👥 Created team {team.id} for {client_id} ({len(team.rbt_ids)} providers)")
        return team

    def add_provider(self, team_id: str, rbt_id: str, changed_by: str) -> Team:
        team = self._require_active_team(team_id)
        if rbt_id in team.rbt_ids:
            raise TeamRuleError(f"Provider {rbt_id} is already on the team")
        self._require_active_provider(rbt_id)

        updated = self._revise(team, changed_by, rbt_ids=team.rbt_ids + [rbt_id])
        self.audit.log_team_change(ScheduleEventType.RBT_ADDED, team, updated, changed_by, rbt_id=rbt_id)
        return updated

    def remove_provider(self, team_id: str, rbt_id: str, changed_by: str, reason: Optional[str] = None) -> Team:
        team = self._require_active_team(team_id)
        if rbt_id not in team.rbt_ids:
            raise TeamRuleError(f"Provider {rbt_id} is not on the team")
        if rbt_id == team.primary_rbt_id:
            raise TeamRuleError("Cannot remove the primary provider; change the primary first")

        updated = self._revise(team, changed_by, rbt_ids=[r for r in team.rbt_ids if r != rbt_id])
        self.audit.log_team_change(ScheduleEventType.RBT_REMOVED, team, updated, changed_by,
                                   rbt_id=rbt_id, reason=reason)
        return updated

    def change_primary(self, team_id: str, new_primary_id: str, changed_by: str, reason: Optional[str] = None) -> Team:
        team = self._require_active_team(team_id)
        if new_primary_id not in team.rbt_ids:
            raise TeamRuleError("New primary provider must be a member of the team")
        if new_primary_id == team.primary_rbt_id:
            raise TeamRuleError(f"Provider {new_primary_id} is already the primary")

        updated = self._revise(team, changed_by, primary_rbt_id=new_primary_id)
        self.audit.log_team_change(ScheduleEventType.PRIMARY_CHANGED, team, updated, changed_by,
                                   rbt_id=new_primary_id, reason=reason)
        return updated

    def end_team(self, team_id: str, ended_by: str, end_date: Optional[date_type] = None,
                 reason: Optional[str] = None) -> Team:
        team = self._require_active_team(team_id)
        end_date = end_date or self.clock.now().date()
        if end_date < team.effective_date:
            raise TeamRuleError("Team end date cannot be before its effective date")

        updated = self._revise(team, ended_by, is_active=False, end_date=end_date)
        self.audit.log_team_change(ScheduleEventType.TEAM_ENDED, team, updated, ended_by, reason=reason)
        logger.info(f"Ended team {team.id} for {team.client_id}")
        return updated

    # --- Helpers ---

    def _revise(self, team: Team, changed_by: str, **changes: Any) -> Team:
        """Re-validate the whole roster, then save."""
        data: Dict[str, Any] = team.model_dump()
        data.update(changes, updated_by=changed_by, updated_at=self.clock.now())
        return self.teams.save(Team(**data))

    def _require_active_team(self, team_id: str) -> Team:
        team = self.teams.find_by_id(team_id)
        if team is None:
            raise TeamRuleError(f"Team {team_id} not found")
        if not team.is_active:
            raise TeamRuleError(f"Team {team_id} has ended")
        return team

    def _require_active_provider(self, rbt_id: str) -> None:
        provider = self.providers.find_by_id(rbt_id)
        if provider is None or not provider.is_active:
            raise TeamRuleError(f"Provider {rbt_id} not found or inactive")
