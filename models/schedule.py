"""
Schedule output models for the Continuity Scheduler.

This module defines what the engine hands back to callers:
scores, candidate options, impact reports and operation results.
Options exist only for the duration of a single optimization call.
"""

from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field, ConfigDict
from datetime import date, datetime

from .session import Session
from .events import ScheduleEvent


class ScoreComponents(BaseModel):
    """Breakdown of a continuity score, for explanations."""
    history: float = 0.0
    recent_activity: float = 0.0
    recency: float = 0.0
    consistency: float = 0.0


class ContinuityScore(BaseModel):
    """
    Relationship strength between a provider and a client (0-100).
    Derived from completed-session history, never stored.
    """
    rbt_id: str
    client_id: str
    score: float = Field(ge=0, le=100)
    total_sessions: int = Field(default=0, ge=0)
    recent_sessions: int = Field(default=0, ge=0, description="Completed sessions in the last 30 days")
    last_session_date: Optional[datetime] = None
    components: ScoreComponents = Field(default_factory=ScoreComponents)


class Availability(str, Enum):
    """How close a candidate sits to the requested date."""
    PREFERRED = "preferred"  # same day
    AVAILABLE = "available"  # within 3 days
    POSSIBLE = "possible"


class AlternativeOption(BaseModel):
    """A conflict-free (provider, start time) pairing found during search."""
    rbt_id: str
    start_time: datetime
    end_time: datetime
    continuity_score: float = 0.0
    availability: Availability


class ReschedulingOption(BaseModel):
    """A scored and ranked rescheduling candidate."""
    rank: int = 0
    rbt_id: str
    rbt_name: str
    start_time: datetime
    end_time: datetime
    optimization_score: float
    continuity_score: float
    impact_score: float
    feasibility_score: float
    retains_provider: bool
    reason_for_recommendation: str
    required_notifications: List[str] = Field(default_factory=list)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "rank": 1,
            "rbt_id": "rbt_01",
            "rbt_name": "Sarah Jones",
            "start_time": "2025-01-16T09:00:00",
            "end_time": "2025-01-16T12:00:00",
            "optimization_score": 84.2,
            "continuity_score": 71.0,
            "impact_score": 97.0,
            "feasibility_score": 80.0,
            "retains_provider": True,
            "reason_for_recommendation": "maintains same provider, good continuity match, minimal schedule disruption",
            "required_notifications": ["Client/Guardian", "Assigned Provider"]
        }
    })


class ConflictType(str, Enum):
    RBT_UNAVAILABLE = "rbt_unavailable"
    CLIENT_UNAVAILABLE = "client_unavailable"
    RBT_DOUBLE_BOOKED = "rbt_double_booked"
    CLIENT_DOUBLE_BOOKED = "client_double_booked"
    BUSINESS_HOURS_VIOLATION = "business_hours_violation"
    NO_ACTIVE_TEAM = "no_active_team"


class SchedulingConflict(BaseModel):
    """Caller-facing description of a violated scheduling rule."""
    type: ConflictType
    description: str
    conflicting_session_id: Optional[str] = None
    suggested_resolution: Optional[str] = None


class ProviderAlternative(BaseModel):
    rbt_id: str
    continuity_score: float
    reason: str


class ProviderSelection(BaseModel):
    """Outcome of continuity-based provider selection."""
    selected_rbt_id: str
    continuity_score: float
    selection_reason: str
    alternatives: List[ProviderAlternative] = Field(default_factory=list)


class OptimizationMetrics(BaseModel):
    """
    Aggregate view of one optimization call. Rates are fractions in [0, 1].
    """
    total_options_evaluated: int = 0
    slots_checked: int = 0
    continuity_preservation_rate: float = 0.0
    average_time_deviation: float = Field(default=0.0, description="Hours from the original start")
    average_date_deviation: float = Field(default=0.0, description="Days from the original date")
    conflict_resolution_rate: float = 0.0
    processing_time_ms: float = 0.0
    partial: bool = Field(default=False, description="True if a deadline cut the search short")


class ReschedulingImpact(BaseModel):
    """Estimated operational and continuity cost of a schedule change."""
    affected_sessions: List[Session] = Field(default_factory=list)
    cascading_changes: int = 0
    notification_count: int = 0
    continuity_disruption: float = Field(default=0.0, ge=0, le=100)
    operational_complexity: float = Field(default=0.0, ge=0, le=100)


class ScheduleSessionResult(BaseModel):
    success: bool
    message: str
    session: Optional[Session] = None
    rbt_selection: Optional[ProviderSelection] = None
    conflicts: List[SchedulingConflict] = Field(default_factory=list)
    alternatives: List[AlternativeOption] = Field(default_factory=list)
    violations: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class ReschedulingResult(BaseModel):
    success: bool
    message: str
    original_session: Optional[Session] = None
    recommended_options: List[ReschedulingOption] = Field(default_factory=list)
    optimization_metrics: OptimizationMetrics = Field(default_factory=OptimizationMetrics)
    violations: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class RescheduleExecutionResult(BaseModel):
    success: bool
    message: str
    original_session: Optional[Session] = None
    new_session: Optional[Session] = None
    conflicts: List[SchedulingConflict] = Field(default_factory=list)
    impact: Optional[ReschedulingImpact] = None
    events: List[ScheduleEvent] = Field(default_factory=list)
    violations: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class CancellationResult(BaseModel):
    success: bool
    message: str
    session: Optional[Session] = None
    event: Optional[ScheduleEvent] = None
    violations: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class ReassignmentStatus(str, Enum):
    SUCCESSFUL = "successful"
    FAILED = "failed"


class ReassignmentOutcome(BaseModel):
    original_session: Session
    status: ReassignmentStatus
    new_rbt_id: Optional[str] = None
    new_session: Optional[Session] = None
    continuity_score: Optional[float] = None
    reason: str = ""


class UnavailabilityResult(BaseModel):
    success: bool
    message: str
    affected_sessions: List[Session] = Field(default_factory=list)
    reassignments: List[ReassignmentOutcome] = Field(default_factory=list)
    event: Optional[ScheduleEvent] = None
    error: Optional[str] = None


class PairingHistory(BaseModel):
    """Completed-session history for one provider/client pairing."""
    rbt_id: str
    client_id: str
    session_count: int = 0
    first_session_date: Optional[datetime] = None
    last_session_date: Optional[datetime] = None
    recent_session_count: int = 0
    weekly_frequency: float = 0.0
    continuity_streak: int = Field(default=0, description="Consecutive weeks with a session, counted back from the latest")


class ContinuityTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class ContinuityMetrics(BaseModel):
    client_id: str
    total_sessions: int = 0
    unique_rbts: int = 0
    dominant_rbt_id: Optional[str] = None
    dominant_rbt_share: float = Field(default=0.0, description="Fraction of sessions with the most frequent provider")
    average_continuity_score: float = 0.0
    trend: ContinuityTrend = ContinuityTrend.STABLE
    first_session_day: Optional[date] = None
