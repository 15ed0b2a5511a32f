"""
Continuity Scoring Engine.

This module determines the 'Relationship Strength' between a provider and
a client. Unlike hard constraints (binary Yes/No), it provides a gradient
(0.0 - 100.0) built from the pair's completed-session history, and uses it
to pick the best provider among eligible candidates.

Every component is deterministic and explainable: no learned weights,
no I/O. "Now" comes from the injected clock.
"""

import math
import logging
import statistics
from datetime import datetime, timedelta, date as date_type
from typing import List, Dict, Iterable, Optional
from collections import Counter

from models import (
    Session,
    SessionStatus,
    Team,
    ContinuityScore,
    ScoreComponents,
    ProviderSelection,
    ProviderAlternative,
    PairingHistory,
    ContinuityMetrics,
    ContinuityTrend,
)
from .clock import Clock

logger = logging.getLogger(__name__)

PRIMARY_PROVIDER_BONUS = 50.0
IDEAL_INTERVAL_DAYS = 7

# (max days since last session, points), checked in order
RECENCY_TIERS = [(7, 20.0), (14, 15.0), (30, 10.0), (60, 5.0)]


def _completed_for_pair(rbt_id: str, client_id: str, history: Iterable[Session]) -> List[Session]:
    sessions = [
        s for s in history
        if s.rbt_id == rbt_id and s.client_id == client_id and s.status == SessionStatus.COMPLETED
    ]
    sessions.sort(key=lambda s: s.start_time)
    return sessions


def _week_start(moment: datetime) -> date_type:
    """Monday of the ISO week containing moment."""
    day = moment.date()
    return day - timedelta(days=day.weekday())


class ContinuityScorer:
    """
    Evaluates provider/client pairings based on session history
    (Volume, Recent Activity, Recency, Cadence Consistency).
    """

    def __init__(self, clock: Optional[Clock] = None, recent_window_days: int = 30):
        self.clock = clock or Clock()
        self.recent_window_days = recent_window_days

    def score(self, rbt_id: str, client_id: str, history: Iterable[Session]) -> ContinuityScore:
        """
        Master scoring function. Returns 0-100.
        """
        sessions = _completed_for_pair(rbt_id, client_id, history)
        if not sessions:
            return ContinuityScore(rbt_id=rbt_id, client_id=client_id, score=0.0)

        now = self.clock.now()
        recent_cutoff = now - timedelta(days=self.recent_window_days)

        total = len(sessions)
        recent = sum(1 for s in sessions if s.start_time >= recent_cutoff)
        last_session = sessions[-1].start_time

        components = ScoreComponents(
            # 1. Historical relationship strength (0-40)
            history=min(total * 2.0, 40.0),
            # 2. Recent activity (0-25)
            recent_activity=min(recent * 5.0, 25.0),
            # 3. Recency (0-20)
            recency=self._score_recency((now - last_session).days),
            # 4. Cadence consistency (0-15)
            consistency=self._score_consistency(sessions),
        )

        total_score = (
            components.history
            + components.recent_activity
            + components.recency
            + components.consistency
        )

        return ContinuityScore(
            rbt_id=rbt_id,
            client_id=client_id,
            score=min(total_score, 100.0),
            total_sessions=total,
            recent_sessions=recent,
            last_session_date=last_session,
            components=components,
        )

    def _score_recency(self, days_since_last: int) -> float:
        for max_days, points in RECENCY_TIERS:
            if days_since_last <= max_days:
                return points
        return 0.0

    def _score_consistency(self, sessions: List[Session]) -> float:
        """
        Reward a steady weekly cadence. Needs at least three sessions.
        Intervals are whole days (floored), spread is the population std dev.
        """
        if len(sessions) < 3:
            return 0.0

        intervals = [
            (curr.start_time - prev.start_time).days
            for prev, curr in zip(sessions, sessions[1:])
        ]
        avg_interval = statistics.fmean(intervals)
        std_dev = statistics.pstdev(intervals)

        interval_score = max(0.0, 10.0 - abs(avg_interval - IDEAL_INTERVAL_DAYS))
        spread_score = max(0.0, 5.0 - std_dev)
        return min(interval_score + spread_score, 15.0)

    # --- Provider Selection ---

    def select_optimal_provider(
        self,
        candidate_ids: List[str],
        client_id: str,
        history: Iterable[Session],
        team: Optional[Team] = None
    ) -> ProviderSelection:
        """
        Pick the provider with the strongest continuity for this client.
        The team's primary gets a ranking bonus that is not reported in its score.
        """
        if not candidate_ids:
            raise ValueError("No candidate providers supplied")

        history = list(history)

        if len(candidate_ids) == 1:
            only = self.score(candidate_ids[0], client_id, history)
            return ProviderSelection(
                selected_rbt_id=only.rbt_id,
                continuity_score=only.score,
                selection_reason="Only available provider",
            )

        primary_id = team.primary_rbt_id if team else None
        ranked = []
        for rbt_id in candidate_ids:
            result = self.score(rbt_id, client_id, history)
            ranking_score = result.score + (PRIMARY_PROVIDER_BONUS if rbt_id == primary_id else 0.0)
            ranked.append((ranking_score, result))

        # sort() is stable: equal scores keep candidate order
        ranked.sort(key=lambda pair: pair[0], reverse=True)
        _, selected = ranked[0]

        alternatives = [
            ProviderAlternative(
                rbt_id=result.rbt_id,
                continuity_score=result.score,
                reason=self._selection_reason(result, primary_id, compared=True),
            )
            for _, result in ranked[1:]
        ]

        logger.debug(f"Selected {selected.rbt_id} for {client_id} (continuity {selected.score:.1f})")
        return ProviderSelection(
            selected_rbt_id=selected.rbt_id,
            continuity_score=selected.score,
            selection_reason=self._selection_reason(selected, primary_id),
            alternatives=alternatives,
        )

    def _selection_reason(self, result: ContinuityScore, primary_id: Optional[str], compared: bool = False) -> str:
        if result.rbt_id == primary_id:
            return "Primary provider for this client"
        if result.total_sessions > 0:
            if result.recent_sessions > 0:
                return f"Strong continuity - {result.total_sessions} total sessions, {result.recent_sessions} recent"
            return f"Previous experience - {result.total_sessions} total sessions"
        if compared:
            return "Lower continuity score than selected provider"
        return "New provider assignment"

    # --- Pairing Analytics ---

    def build_pairing_history(self, rbt_id: str, client_id: str, history: Iterable[Session]) -> PairingHistory:
        sessions = _completed_for_pair(rbt_id, client_id, history)
        if not sessions:
            return PairingHistory(rbt_id=rbt_id, client_id=client_id)

        first = sessions[0].start_time
        last = sessions[-1].start_time
        recent_cutoff = self.clock.now() - timedelta(days=self.recent_window_days)

        total_weeks = max(1, math.ceil((last - first) / timedelta(weeks=1)))

        return PairingHistory(
            rbt_id=rbt_id,
            client_id=client_id,
            session_count=len(sessions),
            first_session_date=first,
            last_session_date=last,
            recent_session_count=sum(1 for s in sessions if s.start_time >= recent_cutoff),
            weekly_frequency=len(sessions) / total_weeks,
            continuity_streak=self._continuity_streak(sessions),
        )

    def _continuity_streak(self, sessions: List[Session]) -> int:
        """Consecutive weeks with a session, walking back from the latest week."""
        weeks = sorted({_week_start(s.start_time) for s in sessions}, reverse=True)
        if not weeks:
            return 0

        streak = 1
        for later, earlier in zip(weeks, weeks[1:]):
            if later - earlier != timedelta(weeks=1):
                break
            streak += 1
        return streak

    def track_pairing_history(self, client_id: str, history: Iterable[Session]) -> List[PairingHistory]:
        """One PairingHistory per provider who has completed sessions with the client."""
        history = list(history)
        rbt_ids = sorted({
            s.rbt_id for s in history
            if s.client_id == client_id and s.status == SessionStatus.COMPLETED
        })
        pairings = [self.build_pairing_history(rbt_id, client_id, history) for rbt_id in rbt_ids]
        pairings.sort(key=lambda p: p.session_count, reverse=True)
        return pairings

    def generate_continuity_metrics(
        self,
        client_id: str,
        history: Iterable[Session],
        team_members: List[str]
    ) -> ContinuityMetrics:
        history = list(history)
        completed = sorted(
            (s for s in history if s.client_id == client_id and s.status == SessionStatus.COMPLETED),
            key=lambda s: s.start_time
        )
        if not completed:
            return ContinuityMetrics(client_id=client_id)

        counts = Counter(s.rbt_id for s in completed)
        dominant_id, dominant_count = counts.most_common(1)[0]

        team_scores = [self.score(rbt_id, client_id, history).score for rbt_id in team_members]
        average = sum(team_scores) / len(team_scores) if team_scores else 0.0

        return ContinuityMetrics(
            client_id=client_id,
            total_sessions=len(completed),
            unique_rbts=len(counts),
            dominant_rbt_id=dominant_id,
            dominant_rbt_share=dominant_count / len(completed),
            average_continuity_score=average,
            trend=self._continuity_trend(completed),
            first_session_day=completed[0].start_time.date(),
        )

    def _continuity_trend(self, sessions: List[Session]) -> ContinuityTrend:
        """
        Compare the first and second halves of the history. Fewer providers
        or a larger dominant share in the later half means improving.
        """
        if len(sessions) < 6:
            return ContinuityTrend.STABLE

        midpoint = len(sessions) // 2
        first_half, second_half = sessions[:midpoint], sessions[midpoint:]

        first_rbts = len({s.rbt_id for s in first_half})
        second_rbts = len({s.rbt_id for s in second_half})
        first_share = self._dominant_share(first_half)
        second_share = self._dominant_share(second_half)

        if second_share > first_share + 0.10 or second_rbts < first_rbts:
            return ContinuityTrend.IMPROVING
        if second_share < first_share - 0.10 or second_rbts > first_rbts:
            return ContinuityTrend.DECLINING
        return ContinuityTrend.STABLE

    @staticmethod
    def _dominant_share(sessions: List[Session]) -> float:
        if not sessions:
            return 0.0
        counts: Dict[str, int] = Counter(s.rbt_id for s in sessions)
        return max(counts.values()) / len(sessions)
