"""
The Continuity Scheduling Engine.

This module is the public face of the scheduling core. It wires the
collaborators together and exposes the operations callers use:
1. schedule_session          - book a new session, picking the best provider.
2. find_rescheduling_options - search, score and rank alternative slots.
3. analyze_rescheduling_impact / get_audit_trail - reporting.
4. reschedule_session / execute_option / cancel_session - mutations, each audited.

Business-rule failures come back as success=False results. Storage faults are
logged and surfaced as error="internal_error" with no internal detail.
"""

import time
import uuid
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from models import (
    Session,
    SessionStatus,
    SESSION_DURATION,
    ScheduleSessionRequest,
    ScheduleSessionResult,
    ReschedulingPreferences,
    ReschedulingConstraints,
    ReschedulingResult,
    ReschedulingOption,
    ReschedulingImpact,
    RescheduleExecutionResult,
    CancellationResult,
    UnavailabilityResult,
    ProviderSelection,
    SchedulingConflict,
    ConflictType,
    AuditEntityType,
    AuditTrail,
    OptimizationMetrics,
)
from .audit import AuditLog
from .candidates import CandidateGenerator
from .clock import Clock
from .config import SchedulingConfig
from .conflicts import ConflictDetector, detect_double_bookings
from .constraints import ConstraintChecker, ConstraintViolation
from .disruptions import ProviderUnavailabilityHandler
from .errors import RepositoryError
from .impact import ImpactAnalyzer
from .ranking import OptionEvaluator, rank_options, build_metrics
from .repositories import (
    SessionRepository,
    TeamRepository,
    ProviderRepository,
    AuditEventRepository,
)
from .scoring import ContinuityScorer
from .teams import TeamManager

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "internal_error"
INTERNAL_ERROR_MESSAGE = "An internal error occurred while processing the request"


def _new_session_id() -> str:
    return f"sess_{uuid.uuid4().hex[:12]}"


def _saved_note(persisted: List[str]) -> str:
    """Names the sessions already written before a later step failed."""
    if not persisted:
        return ""
    return f"; sessions already saved: {', '.join(persisted)}"


def _validate_ids(**ids: Optional[str]) -> List[str]:
    """Raw-argument validation: every named id must be a non-blank string."""
    return [f"{name} is required" for name, value in ids.items() if not value or not value.strip()]


class SchedulingEngine:
    """
    Main scheduling engine.
    Stateless per request apart from its injected collaborators.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        teams: TeamRepository,
        providers: ProviderRepository,
        audit_events: AuditEventRepository,
        config: Optional[SchedulingConfig] = None,
        clock: Optional[Clock] = None
    ):
        self.sessions = sessions
        self.teams = teams
        self.providers = providers
        self.config = config or SchedulingConfig()
        self.clock = clock or Clock()
        self.duration = SESSION_DURATION

        # Initialize Helpers
        self.audit = AuditLog(audit_events, self.clock)
        self.checker = ConstraintChecker(self.config, self.clock)
        self.scorer = ContinuityScorer(self.clock, self.config.recent_window_days)
        self.detector = ConflictDetector(sessions)
        self.generator = CandidateGenerator(
            sessions, teams, providers, self.checker, self.detector, self.config, self.clock
        )
        self.evaluator = OptionEvaluator(self.scorer, providers, self.config, self.clock)
        self.impact = ImpactAnalyzer(sessions, self.scorer, self.config)
        self.team_manager = TeamManager(teams, providers, self.audit, self.clock)
        self.unavailability = ProviderUnavailabilityHandler(
            sessions, teams, providers, self.detector, self.checker, self.scorer, self.audit, self.clock
        )

    # --- Scheduling ---

    def schedule_session(self, request: ScheduleSessionRequest) -> ScheduleSessionResult:
        """
        Book a session at the requested time. Without an explicit provider,
        the team member with the strongest continuity who is free is chosen.
        """
        start = request.preferred_start_time
        end = start + self.duration

        persisted: List[str] = []
        try:
            team = self.teams.find_active_by_client_id(request.client_id)
            if not team:
                return ScheduleSessionResult(
                    success=False,
                    message="No active team found for client",
                    conflicts=[SchedulingConflict(
                        type=ConflictType.NO_ACTIVE_TEAM,
                        description=f"Client {request.client_id} has no active team",
                        suggested_resolution="Create a team for the client before scheduling",
                    )],
                )

            # 1. Hard time rules
            time_violations = self.checker.check_time_constraints(start, end)
            if time_violations:
                return self._schedule_failure(request, "Requested time violates scheduling constraints", time_violations)

            history = self.sessions.find_by_client_id(request.client_id)

            # 2. Provider
            if request.rbt_id:
                violations = self._membership_violations(request.rbt_id, team.rbt_ids)
                if violations:
                    return self._schedule_failure(request, "Requested provider cannot take this session", violations)
                selection = ProviderSelection(
                    selected_rbt_id=request.rbt_id,
                    continuity_score=self.scorer.score(request.rbt_id, request.client_id, history).score,
                    selection_reason="Requested provider",
                )
            else:
                available = [
                    rbt_id for rbt_id in team.rbt_ids
                    if self._is_active_provider(rbt_id)
                    and not self.detector.has_conflict(request.client_id, rbt_id, start, end)
                    and not self.checker.check_daily_limits(rbt_id, start, self.sessions.find_by_rbt_id(rbt_id))
                ]
                if not available:
                    blocking = [
                        ConstraintViolation(
                            ConflictType.CLIENT_DOUBLE_BOOKED,
                            f"Client already has a session from {s.start_time:%Y-%m-%d %H:%M} to {s.end_time:%H:%M}",
                            "Select a different time",
                            conflicting_session_id=s.id,
                        )
                        for s in history if s.blocks_time and s.overlaps(start, end)
                    ]
                    blocking = blocking or [ConstraintViolation(
                        ConflictType.RBT_UNAVAILABLE,
                        "All team providers are booked or at their daily limit",
                        "Select a different time",
                    )]
                    return self._schedule_failure(
                        request, "No team providers available at the requested time", blocking
                    )
                selection = self.scorer.select_optimal_provider(available, request.client_id, history, team)

            rbt_id = selection.selected_rbt_id

            # 3. Conflicts and daily limits for the chosen provider
            violations = self.detector.find_conflicts(request.client_id, rbt_id, start, end)
            violations += self.checker.check_daily_limits(rbt_id, start, self.sessions.find_by_rbt_id(rbt_id))
            if violations:
                return self._schedule_failure(request, "Scheduling conflicts detected", violations)

            # 4. Commit, then audit
            session = Session(
                id=_new_session_id(),
                client_id=request.client_id,
                rbt_id=rbt_id,
                start_time=start,
                end_time=end,
                location=request.location,
                created_by=request.created_by,
                created_at=self.clock.now(),
            )
            self.sessions.create(session)
            persisted.append(session.id)
            self.audit.log_session_created(
                session, request.created_by,
                metadata={"selection_reason": selection.selection_reason,
                          "continuity_score": selection.continuity_score},
            )

            logger.info(f"✅ Scheduled {session.id} for {session.client_id} with {rbt_id} at {start:%Y-%m-%d %H:%M}")
            return ScheduleSessionResult(
                success=True,
                message="Session scheduled successfully",
                session=session,
                rbt_selection=selection,
            )

        except RepositoryError:
            logger.exception(
                f"Repository failure while scheduling for client {request.client_id}{_saved_note(persisted)}"
            )
            return ScheduleSessionResult(success=False, message=INTERNAL_ERROR_MESSAGE, error=INTERNAL_ERROR)

    def _schedule_failure(
        self,
        request: ScheduleSessionRequest,
        message: str,
        violations: List[ConstraintViolation]
    ) -> ScheduleSessionResult:
        alternatives = []
        if request.allow_alternatives:
            alternatives = self.generator.find_alternatives(
                request.client_id,
                request.preferred_start_time,
                scorer=self.scorer,
                limit=min(request.max_alternatives, self.config.max_alternatives),
            )
        logger.info(f"Could not schedule for {request.client_id}: {message} ({len(alternatives)} alternatives)")
        return ScheduleSessionResult(
            success=False,
            message=message,
            conflicts=[v.to_conflict() for v in violations],
            alternatives=alternatives,
        )

    # --- Rescheduling ---

    def find_rescheduling_options(
        self,
        session_id: str,
        reason: str,
        preferences: Optional[ReschedulingPreferences] = None,
        constraints: Optional[ReschedulingConstraints] = None,
        deadline: Optional[datetime] = None
    ) -> ReschedulingResult:
        started = time.perf_counter()

        violations = _validate_ids(session_id=session_id, reason=reason)
        if violations:
            return ReschedulingResult(success=False, message="Invalid rescheduling request", violations=violations)

        preferences = preferences or ReschedulingPreferences(
            max_days_from_original=self.config.max_days_from_original
        )

        try:
            session = self.sessions.find_by_id(session_id)
            if session is None:
                return ReschedulingResult(success=False, message="Session not found", violations=["Session not found"])

            violations = self.checker.check_reschedule_eligibility(session, constraints)
            if violations:
                return ReschedulingResult(
                    success=False,
                    message=f"Rescheduling constraints not met: {'; '.join(violations)}",
                    original_session=session,
                    violations=violations,
                    optimization_metrics=OptimizationMetrics(
                        processing_time_ms=(time.perf_counter() - started) * 1000
                    ),
                )

            logger.info(f"🔎 Finding rescheduling options for {session_id} (reason: {reason})")

            # 1. Search space
            batch = self.generator.generate_candidates(session, preferences, constraints, deadline)

            # 2. Score against one snapshot of client history
            history = self.sessions.find_by_client_id(session.client_id)
            evaluated = self.evaluator.evaluate(session, batch.candidates, preferences, history)

            # 3. Rank
            ranked = rank_options(evaluated, preferences.prioritize_continuity, self.config.max_recommended_options)

            metrics = build_metrics(
                session, ranked,
                candidates_evaluated=len(batch.candidates),
                slots_checked=batch.slots_checked,
                processing_time_ms=(time.perf_counter() - started) * 1000,
                partial=batch.partial,
            )

            if ranked:
                message = f"Found {len(ranked)} rescheduling options"
            else:
                message = "No rescheduling options available within the search window"
            if batch.partial:
                message += " (search stopped at deadline)"

            logger.info(f"{message} for {session_id}")
            return ReschedulingResult(
                success=True,
                message=message,
                original_session=session,
                recommended_options=ranked,
                optimization_metrics=metrics,
            )

        except RepositoryError:
            logger.exception(f"Repository failure while finding options for session {session_id}")
            return ReschedulingResult(success=False, message=INTERNAL_ERROR_MESSAGE, error=INTERNAL_ERROR)

    def analyze_rescheduling_impact(
        self,
        session_id: str,
        new_start: datetime,
        new_rbt_id: Optional[str] = None
    ) -> ReschedulingImpact:
        return self.impact.analyze_impact(session_id, new_start, new_rbt_id)

    def reschedule_session(
        self,
        session_id: str,
        new_start: datetime,
        reason: str,
        rescheduled_by: str,
        new_rbt_id: Optional[str] = None,
        constraints: Optional[ReschedulingConstraints] = None
    ) -> RescheduleExecutionResult:
        """
        Close the original occurrence and create its replacement.
        The old session is cancelled with the reason, the new one links back via
        rescheduled_from_id, and both steps are audited.
        """
        violations = _validate_ids(session_id=session_id, reason=reason, rescheduled_by=rescheduled_by)
        if violations:
            return RescheduleExecutionResult(success=False, message="Invalid reschedule request", violations=violations)

        persisted: List[str] = []
        try:
            session = self.sessions.find_by_id(session_id)
            if session is None:
                return RescheduleExecutionResult(success=False, message="Session not found",
                                                 violations=["Session not found"])

            violations = self.checker.check_reschedule_eligibility(session, constraints)
            if violations:
                return RescheduleExecutionResult(
                    success=False,
                    message=f"Rescheduling constraints not met: {'; '.join(violations)}",
                    original_session=session,
                    violations=violations,
                )

            rbt_id = new_rbt_id or session.rbt_id
            new_end = new_start + self.duration

            problems = self.checker.check_time_constraints(new_start, new_end)
            if rbt_id != session.rbt_id:
                team = self.teams.find_active_by_client_id(session.client_id)
                problems += self._membership_violations(rbt_id, team.rbt_ids if team else [])
            problems += self.detector.find_conflicts(session.client_id, rbt_id, new_start, new_end, session.id)
            problems += self.checker.check_daily_limits(
                rbt_id, new_start, self.sessions.find_by_rbt_id(rbt_id), exclude_session_id=session.id
            )
            if problems:
                return RescheduleExecutionResult(
                    success=False,
                    message="Cannot reschedule to the requested slot",
                    original_session=session,
                    conflicts=[p.to_conflict() for p in problems],
                )

            # Impact is measured against the schedule as it stands before the move
            impact = self.impact.analyze_impact(session.id, new_start, rbt_id)

            now = self.clock.now()
            closed = session.model_copy(update={
                "status": SessionStatus.CANCELLED,
                "cancellation_reason": f"Rescheduled: {reason}",
                "updated_by": rescheduled_by,
                "updated_at": now,
            })
            self.sessions.update(closed)
            persisted.append(closed.id)

            replacement = Session(
                id=_new_session_id(),
                client_id=session.client_id,
                rbt_id=rbt_id,
                start_time=new_start,
                end_time=new_end,
                location=session.location,
                notes=session.notes,
                rescheduled_from_id=session.id,
                created_by=rescheduled_by,
                created_at=now,
            )
            self.sessions.create(replacement)
            persisted.append(replacement.id)

            events = [
                self.audit.log_session_rescheduled(
                    session, replacement, reason, rescheduled_by,
                    metadata={
                        "continuity_disruption": impact.continuity_disruption,
                        "operational_complexity": impact.operational_complexity,
                    },
                ),
                self.audit.log_session_created(replacement, rescheduled_by, reason=f"Rescheduled from {session.id}"),
            ]

            logger.info(f"🔁 Rescheduled {session.id} -> {replacement.id} ({rbt_id} at {new_start:%Y-%m-%d %H:%M})")
            return RescheduleExecutionResult(
                success=True,
                message="Session rescheduled successfully",
                original_session=closed,
                new_session=replacement,
                impact=impact,
                events=events,
            )

        except RepositoryError:
            logger.exception(f"Repository failure while rescheduling session {session_id}{_saved_note(persisted)}")
            return RescheduleExecutionResult(success=False, message=INTERNAL_ERROR_MESSAGE, error=INTERNAL_ERROR)

    def execute_option(
        self,
        session_id: str,
        option: ReschedulingOption,
        reason: str,
        rescheduled_by: str
    ) -> RescheduleExecutionResult:
        """Commit one of the options returned by find_rescheduling_options."""
        return self.reschedule_session(
            session_id, option.start_time, reason, rescheduled_by, new_rbt_id=option.rbt_id
        )

    def cancel_session(self, session_id: str, reason: str, cancelled_by: str) -> CancellationResult:
        violations = _validate_ids(session_id=session_id, reason=reason, cancelled_by=cancelled_by)
        if violations:
            return CancellationResult(success=False, message="Invalid cancellation request", violations=violations)

        persisted: List[str] = []
        try:
            session = self.sessions.find_by_id(session_id)
            if session is None:
                return CancellationResult(success=False, message="Session not found", violations=["Session not found"])

            if not session.can_transition_to(SessionStatus.CANCELLED):
                message = f"Cannot cancel a {session.status.value} session"
                return CancellationResult(success=False, message=message, session=session, violations=[message])

            cancelled = session.model_copy(update={
                "status": SessionStatus.CANCELLED,
                "cancellation_reason": reason,
                "updated_by": cancelled_by,
                "updated_at": self.clock.now(),
            })
            self.sessions.update(cancelled)
            persisted.append(cancelled.id)
            event = self.audit.log_session_cancelled(session, cancelled, reason, cancelled_by)

            logger.info(f"🚫 Cancelled {session_id}: {reason}")
            return CancellationResult(success=True, message="Session cancelled", session=cancelled, event=event)

        except RepositoryError:
            logger.exception(f"Repository failure while cancelling session {session_id}{_saved_note(persisted)}")
            return CancellationResult(success=False, message=INTERNAL_ERROR_MESSAGE, error=INTERNAL_ERROR)

    def report_provider_unavailable(
        self,
        rbt_id: str,
        start: datetime,
        end: datetime,
        reason: str,
        reported_by: str,
        auto_reassign: bool = False
    ) -> UnavailabilityResult:
        return self.unavailability.process(rbt_id, start, end, reason, reported_by, auto_reassign)

    # --- Reporting ---

    def get_audit_trail(
        self,
        entity_type: AuditEntityType,
        entity_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> AuditTrail:
        return self.audit.get_audit_trail(entity_type, entity_id, start, end)

    def find_double_bookings(self, start: datetime, end: datetime) -> List[Tuple[Session, Session]]:
        if start >= end:
            raise ValueError("start must be before end")
        return detect_double_bookings(self.sessions.find_active_by_date_range(start, end))

    # --- Helpers ---

    def _is_active_provider(self, rbt_id: str) -> bool:
        provider = self.providers.find_by_id(rbt_id)
        return bool(provider and provider.is_active)

    def _membership_violations(self, rbt_id: str, team_rbt_ids: List[str]) -> List[ConstraintViolation]:
        if rbt_id not in team_rbt_ids:
            return [ConstraintViolation(
                ConflictType.RBT_UNAVAILABLE,
                f"RBT {rbt_id} is not a member of the client's team",
                "Select an RBT from the client's team",
            )]
        if not self._is_active_provider(rbt_id):
            return [ConstraintViolation(
                ConflictType.RBT_UNAVAILABLE,
                f"RBT {rbt_id} is not active",
                "Select an active RBT",
            )]
        return []
