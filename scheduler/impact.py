"""
Disruption Impact Analysis.

Estimates what a proposed (or executed) move costs: which nearby sessions
are touched, how many people must be told, how much continuity is lost and
how hard the change is to carry out. The figures are advisory: any storage
failure yields a zeroed report instead of an error.
"""

import math
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from models import Session, ReschedulingImpact, SESSION_DURATION
from .config import SchedulingConfig
from .errors import RepositoryError
from .repositories import SessionRepository
from .scoring import ContinuityScorer

logger = logging.getLogger(__name__)

# Coarse heuristics, kept as-is
CASCADE_FACTOR = 0.5               # secondary changes per affected session
AFFECTED_SESSION_COMPLEXITY = 10   # complexity points per affected session
CASCADE_COMPLEXITY = 15            # complexity points per cascading change
PROVIDER_CHANGE_COMPLEXITY = 20
BASE_NOTIFICATIONS = 2             # client + original provider
PROVIDER_CHANGE_NOTIFICATIONS = 2  # new provider + coordinator

SEARCH_PADDING = timedelta(days=1)


class ImpactAnalyzer:

    def __init__(
        self,
        sessions: SessionRepository,
        scorer: ContinuityScorer,
        config: Optional[SchedulingConfig] = None
    ):
        self.sessions = sessions
        self.scorer = scorer
        self.config = config or SchedulingConfig()

    def analyze_impact(
        self,
        session_id: str,
        new_start: datetime,
        new_rbt_id: Optional[str] = None
    ) -> ReschedulingImpact:
        try:
            original = self.sessions.find_by_id(session_id)
            if original is None:
                logger.warning(f"Impact analysis skipped: session {session_id} not found")
                return ReschedulingImpact()

            effective_rbt_id = new_rbt_id or original.rbt_id
            provider_changed = effective_rbt_id != original.rbt_id
            new_end = new_start + SESSION_DURATION

            affected = self._find_affected_sessions(original, new_start, new_end, effective_rbt_id)
            cascading = math.floor(len(affected) * CASCADE_FACTOR)

            notifications = BASE_NOTIFICATIONS
            if provider_changed:
                notifications += PROVIDER_CHANGE_NOTIFICATIONS

            disruption = self._continuity_disruption(original, effective_rbt_id) if provider_changed else 0.0

            complexity = len(affected) * AFFECTED_SESSION_COMPLEXITY + cascading * CASCADE_COMPLEXITY
            if provider_changed:
                complexity += PROVIDER_CHANGE_COMPLEXITY

            return ReschedulingImpact(
                affected_sessions=affected,
                cascading_changes=cascading,
                notification_count=notifications,
                continuity_disruption=disruption,
                operational_complexity=min(100, complexity),
            )

        except RepositoryError as e:
            logger.warning(f"Impact analysis degraded for session {session_id}: {e}")
            return ReschedulingImpact()

    def _find_affected_sessions(
        self,
        original: Session,
        new_start: datetime,
        new_end: datetime,
        effective_rbt_id: str
    ) -> List[Session]:
        window_start = min(original.start_time, new_start) - SEARCH_PADDING
        window_end = max(original.start_time, new_start) + SEARCH_PADDING

        return [
            s for s in self.sessions.find_active_by_date_range(window_start, window_end)
            if s.id != original.id and (
                s.rbt_id == original.rbt_id
                or s.rbt_id == effective_rbt_id
                or s.client_id == original.client_id
            )
        ]

    def _continuity_disruption(self, original: Session, new_rbt_id: str) -> float:
        history = self.sessions.find_by_client_id(original.client_id)
        before = self.scorer.score(original.rbt_id, original.client_id, history).score
        after = self.scorer.score(new_rbt_id, original.client_id, history).score
        return min(100.0, max(0.0, before - after))
