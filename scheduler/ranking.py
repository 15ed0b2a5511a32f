"""
Option Evaluation & Ranking.

Each surviving candidate is scored on three axes and combined into a single
optimization score:

1. Continuity  - relationship strength with the client (ContinuityScorer).
2. Impact      - how far the move drifts from the original slot.
3. Feasibility - how well it matches stated preferences and notice norms.

Ranking is deterministic: identical inputs always produce identical order.
"""

import logging
from functools import cmp_to_key
from typing import List, Dict, Iterable, Optional

from models import (
    Session,
    AlternativeOption,
    ReschedulingOption,
    ReschedulingPreferences,
    OptimizationMetrics,
)
from .config import SchedulingConfig, ScoreWeights
from .clock import Clock
from .repositories import ProviderRepository
from .scoring import ContinuityScorer

logger = logging.getLogger(__name__)

# Ranking tie-break: scores closer than this are treated as equal
SCORE_TIE_THRESHOLD = 5.0

SHORT_NOTICE_HOURS = 24
LONG_LEAD_HOURS = 168


def _hour_of_day(session_or_option) -> float:
    start = session_or_option.start_time
    return start.hour + start.minute / 60


class OptionEvaluator:
    """
    Turns raw candidates into scored, explained ReschedulingOptions.
    """

    def __init__(
        self,
        scorer: ContinuityScorer,
        providers: ProviderRepository,
        config: Optional[SchedulingConfig] = None,
        clock: Optional[Clock] = None
    ):
        self.scorer = scorer
        self.providers = providers
        self.config = config or SchedulingConfig()
        self.clock = clock or Clock()

    def evaluate(
        self,
        original: Session,
        candidates: Iterable[AlternativeOption],
        preferences: ReschedulingPreferences,
        history: List[Session]
    ) -> List[ReschedulingOption]:
        """
        Score every candidate against one snapshot of client history.
        Candidates are independent of each other; order is preserved.
        """
        weights = self._weights(preferences)
        names: Dict[str, str] = {}
        continuity_cache: Dict[str, float] = {}
        options = []

        for candidate in candidates:
            if candidate.rbt_id not in continuity_cache:
                continuity_cache[candidate.rbt_id] = self.scorer.score(
                    candidate.rbt_id, original.client_id, history
                ).score
            if candidate.rbt_id not in names:
                names[candidate.rbt_id] = self._provider_name(candidate.rbt_id)

            continuity = continuity_cache[candidate.rbt_id]
            impact = self.impact_score(original, candidate)
            feasibility = self.feasibility_score(candidate, preferences)
            retains = candidate.rbt_id == original.rbt_id

            optimization = (
                continuity * weights.continuity
                + impact * weights.impact
                + feasibility * weights.feasibility
            )

            options.append(ReschedulingOption(
                rbt_id=candidate.rbt_id,
                rbt_name=names[candidate.rbt_id],
                start_time=candidate.start_time,
                end_time=candidate.end_time,
                optimization_score=optimization,
                continuity_score=continuity,
                impact_score=impact,
                feasibility_score=feasibility,
                retains_provider=retains,
                reason_for_recommendation=self.recommendation_reason(continuity, impact, feasibility, retains),
                required_notifications=self.required_notifications(original, candidate),
            ))

        logger.debug(f"Evaluated {len(options)} options for session {original.id}")
        return options

    def _weights(self, preferences: ReschedulingPreferences) -> ScoreWeights:
        if preferences.prioritize_continuity:
            return self.config.continuity_weights
        return self.config.default_weights

    def _provider_name(self, rbt_id: str) -> str:
        provider = self.providers.find_by_id(rbt_id)
        return provider.full_name if provider else "Unknown provider"

    def impact_score(self, original: Session, candidate: AlternativeOption) -> float:
        """
        100 minus 5/hour of time-of-day drift, 3/day of date drift,
        and 15 for a provider change. Floored at 0.
        """
        score = 100.0
        score -= abs(_hour_of_day(original) - _hour_of_day(candidate)) * 5
        score -= abs((candidate.start_time.date() - original.start_time.date()).days) * 3
        if candidate.rbt_id != original.rbt_id:
            score -= 15
        return max(0.0, min(100.0, score))

    def feasibility_score(self, candidate: AlternativeOption, preferences: ReschedulingPreferences) -> float:
        score = 100.0

        if preferences.preferred_times and not preferences.is_preferred_time(candidate.start_time):
            score -= 10
        if preferences.preferred_rbts and candidate.rbt_id not in preferences.preferred_rbts:
            score -= 15

        notice_hours = (candidate.start_time - self.clock.now()).total_seconds() / 3600
        if notice_hours < SHORT_NOTICE_HOURS:
            score -= 20
        elif notice_hours > LONG_LEAD_HOURS:
            score -= 5

        return max(0.0, min(100.0, score))

    @staticmethod
    def recommendation_reason(continuity: float, impact: float, feasibility: float, retains_provider: bool) -> str:
        reasons = []
        if retains_provider:
            reasons.append("maintains same provider")
        if continuity > 80:
            reasons.append("excellent continuity match")
        elif continuity > 60:
            reasons.append("good continuity match")
        if impact > 80:
            reasons.append("minimal schedule disruption")
        if feasibility > 80:
            reasons.append("highly feasible")
        return ", ".join(reasons) if reasons else "available option"

    @staticmethod
    def required_notifications(original: Session, candidate: AlternativeOption) -> List[str]:
        notifications = ["Client/Guardian", "Assigned Provider"]
        if candidate.rbt_id != original.rbt_id:
            notifications += ["Original Provider", "New Provider"]
        if abs((candidate.start_time - original.start_time).total_seconds()) > 24 * 3600:
            notifications.append("Scheduling Coordinator")
        return notifications


def _compare_options(a: ReschedulingOption, b: ReschedulingOption) -> int:
    if abs(a.optimization_score - b.optimization_score) < SCORE_TIE_THRESHOLD:
        if a.start_time != b.start_time:
            return -1 if a.start_time < b.start_time else 1
        return 0
    return -1 if a.optimization_score > b.optimization_score else 1


def rank_options(
    options: List[ReschedulingOption],
    prioritize_continuity: bool = False,
    limit: Optional[int] = None
) -> List[ReschedulingOption]:
    """
    Order options best-first and assign 1-based ranks.

    Near-equal scores prefer the earlier start. With continuity prioritized,
    options that keep the original provider are moved ahead of the rest
    without disturbing order within each group.
    """
    # A total pre-order makes the threshold comparator reproducible
    ordered = sorted(options, key=lambda o: (-o.optimization_score, o.start_time, o.rbt_id))
    ordered = sorted(ordered, key=cmp_to_key(_compare_options))

    if prioritize_continuity:
        ordered = [o for o in ordered if o.retains_provider] + [o for o in ordered if not o.retains_provider]

    if limit is not None:
        ordered = ordered[:limit]

    return [option.model_copy(update={"rank": i + 1}) for i, option in enumerate(ordered)]


def build_metrics(
    original: Session,
    returned: List[ReschedulingOption],
    candidates_evaluated: int,
    slots_checked: int,
    processing_time_ms: float,
    partial: bool = False
) -> OptimizationMetrics:
    """Aggregate view of one optimization call. All rates are fractions."""
    if returned:
        kept = sum(1 for o in returned if o.retains_provider)
        preservation = kept / len(returned)
        avg_hours = sum(
            abs((o.start_time - original.start_time).total_seconds()) / 3600 for o in returned
        ) / len(returned)
        avg_days = sum(
            abs((o.start_time.date() - original.start_time.date()).days) for o in returned
        ) / len(returned)
    else:
        preservation = avg_hours = avg_days = 0.0

    return OptimizationMetrics(
        total_options_evaluated=candidates_evaluated,
        slots_checked=slots_checked,
        continuity_preservation_rate=preservation,
        average_time_deviation=avg_hours,
        average_date_deviation=avg_days,
        conflict_resolution_rate=candidates_evaluated / slots_checked if slots_checked else 0.0,
        processing_time_ms=processing_time_ms,
        partial=partial,
    )
