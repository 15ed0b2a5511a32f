"""
Candidate Generation.

Enumerates feasible (provider, start time) pairs around a reference session.
The search space is providers x day offsets x time slots. Each slot is first
pruned by the constraint checker (cheap, in-process) and then checked for
conflicts against the session store. Conflict checks are independent, so
they fan out over a bounded thread pool; results are consumed in submission
order, which keeps the output deterministic.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, time as time_type, timedelta
from typing import List, Optional, Tuple

from models import (
    Session,
    AlternativeOption,
    SESSION_DURATION,
    Availability,
    ReschedulingPreferences,
    ReschedulingConstraints,
)
from .config import SchedulingConfig
from .clock import Clock
from .constraints import ConstraintChecker, is_business_day
from .conflicts import ConflictDetector
from .repositories import SessionRepository, TeamRepository, ProviderRepository
from .scoring import ContinuityScorer

logger = logging.getLogger(__name__)

# Ranking tiers for scheduling alternatives (tier * 100 + continuity)
AVAILABILITY_TIER = {
    Availability.PREFERRED: 3,
    Availability.AVAILABLE: 2,
    Availability.POSSIBLE: 1,
}


def classify_availability(day_offset: int) -> Availability:
    if day_offset == 0:
        return Availability.PREFERRED
    if day_offset <= 3:
        return Availability.AVAILABLE
    return Availability.POSSIBLE


@dataclass
class CandidateBatch:
    """Surviving candidates plus bookkeeping for metrics."""
    candidates: List[AlternativeOption] = field(default_factory=list)
    slots_checked: int = 0
    partial: bool = False


class CandidateGenerator:
    """
    Builds the rescheduling search space for one reference session.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        teams: TeamRepository,
        providers: ProviderRepository,
        checker: ConstraintChecker,
        detector: ConflictDetector,
        config: Optional[SchedulingConfig] = None,
        clock: Optional[Clock] = None
    ):
        self.sessions = sessions
        self.teams = teams
        self.providers = providers
        self.checker = checker
        self.detector = detector
        self.config = config or SchedulingConfig()
        self.clock = clock or Clock()
        self.duration = SESSION_DURATION

    def generate_candidates(
        self,
        reference: Session,
        preferences: Optional[ReschedulingPreferences] = None,
        constraints: Optional[ReschedulingConstraints] = None,
        deadline: Optional[datetime] = None
    ) -> CandidateBatch:
        preferences = preferences or ReschedulingPreferences(max_days_from_original=self.config.max_days_from_original)
        constraints = constraints or ReschedulingConstraints()

        if self._expired(deadline):
            logger.warning(f"Deadline already passed before generating candidates for {reference.id}")
            return CandidateBatch(partial=True)

        # 1. Provider search space
        rbt_ids = self._eligible_providers(reference, preferences, constraints)
        if not rbt_ids:
            logger.info(f"No eligible providers for session {reference.id}")
            return CandidateBatch()

        # 2. Days x slots, pruned by the cheap in-process checks
        offsets = [0] if constraints.must_maintain_date else range(preferences.max_days_from_original + 1)
        slots = self._slot_times(reference, preferences, constraints)

        pairs: List[Tuple[str, datetime, int]] = []
        for rbt_id in rbt_ids:
            for offset in offsets:
                day = reference.start_time.date() + timedelta(days=offset)
                if not is_business_day(day, self.config):
                    continue
                for slot in slots:
                    start = datetime.combine(day, slot, tzinfo=reference.start_time.tzinfo)
                    if rbt_id == reference.rbt_id and start == reference.start_time:
                        continue  # not a move
                    if not self.checker.is_valid_slot(start, start + self.duration):
                        continue
                    pairs.append((rbt_id, start, offset))

        # 3. Conflict checks (the expensive part)
        survivors, checked, partial = self._check_pairs(
            reference.client_id, pairs, exclude_session_id=reference.id, deadline=deadline
        )

        candidates = [
            AlternativeOption(
                rbt_id=rbt_id,
                start_time=start,
                end_time=start + self.duration,
                availability=classify_availability(offset),
            )
            for rbt_id, start, offset in survivors
        ]

        logger.info(
            f"Generated {len(candidates)} candidates for session {reference.id} "
            f"({checked} slots checked{', partial' if partial else ''})"
        )
        return CandidateBatch(candidates=candidates, slots_checked=checked, partial=partial)

    def find_alternatives(
        self,
        client_id: str,
        anchor: datetime,
        days: Optional[int] = None,
        scorer: Optional[ContinuityScorer] = None,
        limit: Optional[int] = None
    ) -> List[AlternativeOption]:
        """
        Conflict-free slots with any active team member, starting from anchor.
        Ranked by availability tier first and continuity second.
        """
        days = self.config.alternative_search_days if days is None else days
        limit = self.config.max_alternatives if limit is None else limit
        scorer = scorer or ContinuityScorer(self.clock, self.config.recent_window_days)

        team = self.teams.find_active_by_client_id(client_id)
        if not team:
            return []

        rbt_ids = [rbt_id for rbt_id in team.rbt_ids if self._is_active_provider(rbt_id)]
        history = self.sessions.find_by_client_id(client_id)
        provider_sessions = {rbt_id: self.sessions.find_by_rbt_id(rbt_id) for rbt_id in rbt_ids}

        pairs = []
        for rbt_id in rbt_ids:
            for offset in range(days + 1):
                day = anchor.date() + timedelta(days=offset)
                if not is_business_day(day, self.config):
                    continue
                for hour in self.config.slot_start_hours:
                    start = datetime.combine(day, time_type(hour, 0), tzinfo=anchor.tzinfo)
                    if not self.checker.is_valid_slot(start, start + self.duration):
                        continue
                    if self.checker.check_daily_limits(rbt_id, start, provider_sessions[rbt_id]):
                        continue
                    pairs.append((rbt_id, start, offset))

        survivors, _, _ = self._check_pairs(client_id, pairs)

        continuity = {rbt_id: scorer.score(rbt_id, client_id, history).score for rbt_id in rbt_ids}
        options = [
            AlternativeOption(
                rbt_id=rbt_id,
                start_time=start,
                end_time=start + self.duration,
                continuity_score=continuity[rbt_id],
                availability=classify_availability(offset),
            )
            for rbt_id, start, offset in survivors
        ]
        options.sort(
            key=lambda o: (-(AVAILABILITY_TIER[o.availability] * 100 + o.continuity_score), o.start_time)
        )
        return options[:limit]

    # --- Helpers ---

    def _eligible_providers(
        self,
        reference: Session,
        preferences: ReschedulingPreferences,
        constraints: ReschedulingConstraints
    ) -> List[str]:
        team = self.teams.find_active_by_client_id(reference.client_id)
        if not team:
            return []

        if constraints.must_maintain_rbt or not preferences.allow_different_rbt:
            rbt_ids = [reference.rbt_id]
        else:
            rbt_ids = list(team.rbt_ids)
            if preferences.preferred_rbts:
                rbt_ids = [r for r in rbt_ids if r in preferences.preferred_rbts]

        return [r for r in rbt_ids if self._is_active_provider(r)]

    def _is_active_provider(self, rbt_id: str) -> bool:
        provider = self.providers.find_by_id(rbt_id)
        if not provider or not provider.is_active:
            logger.debug(f"Skipping unknown or inactive provider {rbt_id}")
            return False
        return True

    def _slot_times(
        self,
        reference: Session,
        preferences: ReschedulingPreferences,
        constraints: ReschedulingConstraints
    ) -> List[time_type]:
        if constraints.must_maintain_time:
            return [reference.start_time.time()]
        if preferences.preferred_times:
            return [w.start_time for w in preferences.preferred_times]
        return [time_type(hour, 0) for hour in self.config.slot_start_hours]

    def _check_pairs(
        self,
        client_id: str,
        pairs: List[Tuple[str, datetime, int]],
        exclude_session_id: Optional[str] = None,
        deadline: Optional[datetime] = None
    ) -> Tuple[List[Tuple[str, datetime, int]], int, bool]:
        """
        Run conflict checks on the pool. Returns (survivors, checked, partial).
        """
        if not pairs:
            return [], 0, False

        survivors = []
        checked = 0
        partial = False

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = [
                executor.submit(
                    self.detector.has_conflict,
                    client_id, rbt_id, start, start + self.duration, exclude_session_id
                )
                for rbt_id, start, _ in pairs
            ]

            for pair, future in zip(pairs, futures):
                remaining = self._remaining_seconds(deadline)
                if remaining is not None and remaining <= 0:
                    partial = True
                    break
                try:
                    conflicted = future.result(timeout=remaining)
                except FutureTimeout:
                    partial = True
                    break
                checked += 1
                if not conflicted:
                    survivors.append(pair)

            if partial:
                for future in futures:
                    future.cancel()
                logger.warning(f"Deadline reached after {checked}/{len(pairs)} conflict checks")

        return survivors, checked, partial

    def _remaining_seconds(self, deadline: Optional[datetime]) -> Optional[float]:
        if deadline is None:
            return None
        return (deadline - self.clock.now()).total_seconds()

    def _expired(self, deadline: Optional[datetime]) -> bool:
        remaining = self._remaining_seconds(deadline)
        return remaining is not None and remaining <= 0
