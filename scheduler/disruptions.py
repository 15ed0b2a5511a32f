"""
Provider Unavailability Handling.

When a provider reports time off or illness, their upcoming sessions in
that period are identified, the disruption is recorded, and (optionally)
each session is handed to the best free team member at the same time.
"""

import logging
from datetime import datetime
from typing import List, Optional

from models import (
    Session,
    SessionStatus,
    UnavailabilityResult,
    ReassignmentOutcome,
    ReassignmentStatus,
)
from .audit import AuditLog
from .clock import Clock
from .conflicts import ConflictDetector
from .constraints import ConstraintChecker
from .errors import RepositoryError
from .repositories import SessionRepository, TeamRepository, ProviderRepository
from .scoring import ContinuityScorer

logger = logging.getLogger(__name__)

REASSIGNMENT_REASON = "Provider unavailability - reassigned to team member"


class ProviderUnavailabilityHandler:

    def __init__(
        self,
        sessions: SessionRepository,
        teams: TeamRepository,
        providers: ProviderRepository,
        detector: ConflictDetector,
        checker: ConstraintChecker,
        scorer: ContinuityScorer,
        audit: AuditLog,
        clock: Optional[Clock] = None
    ):
        self.sessions = sessions
        self.teams = teams
        self.providers = providers
        self.detector = detector
        self.checker = checker
        self.scorer = scorer
        self.audit = audit
        self.clock = clock or Clock()

    def process(
        self,
        rbt_id: str,
        start: datetime,
        end: datetime,
        reason: str,
        reported_by: str,
        auto_reassign: bool = False
    ) -> UnavailabilityResult:
        if start >= end:
            return UnavailabilityResult(success=False, message="Unavailability end must be after start")
        if not reason or not reason.strip() or not reported_by or not reported_by.strip():
            return UnavailabilityResult(success=False, message="reason and reported_by are required")

        try:
            provider = self.providers.find_by_id(rbt_id)
            if provider is None or not provider.is_active:
                return UnavailabilityResult(success=False, message=f"Provider {rbt_id} not found or inactive")

            affected = self._find_affected_sessions(rbt_id, start, end)
            event = self.audit.log_provider_unavailable(
                rbt_id, start, end, reason, reported_by, [s.id for s in affected]
            )
            logger.info(f"⚠️ Provider {rbt_id} unavailable {start:%Y-%m-%d %H:%M} - {end:%Y-%m-%d %H:%M}: "
                        f"{len(affected)} session(s) affected")

            reassignments = []
            if auto_reassign:
                reassignments = [self._reassign(session, reported_by) for session in affected]

            succeeded = sum(1 for r in reassignments if r.status == ReassignmentStatus.SUCCESSFUL)
            message = f"Unavailability recorded; {len(affected)} session(s) affected"
            if auto_reassign:
                message += f", {succeeded} reassigned"

            return UnavailabilityResult(
                success=True,
                message=message,
                affected_sessions=affected,
                reassignments=reassignments,
                event=event,
            )

        except RepositoryError:
            logger.exception(f"Repository failure while processing unavailability for {rbt_id}")
            return UnavailabilityResult(
                success=False,
                message="An internal error occurred while processing the request",
                error="internal_error",
            )

    def _find_affected_sessions(self, rbt_id: str, start: datetime, end: datetime) -> List[Session]:
        return [
            s for s in self.sessions.find_by_rbt_id(rbt_id)
            if s.status in (SessionStatus.SCHEDULED, SessionStatus.CONFIRMED)
            and start <= s.start_time < end
        ]

    def _reassign(self, session: Session, updated_by: str) -> ReassignmentOutcome:
        """Hand the session to the best free team member, keeping its time."""
        team = self.teams.find_active_by_client_id(session.client_id)
        if not team:
            return ReassignmentOutcome(original_session=session, status=ReassignmentStatus.FAILED,
                                       reason="No active team found for client")

        candidates = [
            rbt_id for rbt_id in team.rbt_ids
            if rbt_id != session.rbt_id and self._is_free(rbt_id, session)
        ]
        if not candidates:
            return ReassignmentOutcome(original_session=session, status=ReassignmentStatus.FAILED,
                                       reason="No other team members available")

        history = self.sessions.find_by_client_id(session.client_id)
        selection = self.scorer.select_optimal_provider(candidates, session.client_id, history, team)

        reassigned = session.model_copy(update={
            "rbt_id": selection.selected_rbt_id,
            "updated_by": updated_by,
            "updated_at": self.clock.now(),
        })
        self.sessions.update(reassigned)
        self.audit.log_session_rescheduled(
            session, reassigned, REASSIGNMENT_REASON, updated_by,
            metadata={"original_rbt_id": session.rbt_id},
        )

        logger.info(f"Reassigned {session.id} from {session.rbt_id} to {selection.selected_rbt_id}")
        return ReassignmentOutcome(
            original_session=session,
            status=ReassignmentStatus.SUCCESSFUL,
            new_rbt_id=selection.selected_rbt_id,
            new_session=reassigned,
            continuity_score=selection.continuity_score,
            reason=REASSIGNMENT_REASON,
        )

    def _is_free(self, rbt_id: str, session: Session) -> bool:
        provider = self.providers.find_by_id(rbt_id)
        if not provider or not provider.is_active:
            return False
        if self.detector.has_conflict(session.client_id, rbt_id, session.start_time, session.end_time, session.id):
            return False
        return not self.checker.check_daily_limits(rbt_id, session.start_time, self.sessions.find_by_rbt_id(rbt_id))
