"""
Data models package for the Continuity Scheduler.

This package exports the core pillars of the data architecture:
1. Demand (Session, SessionStatus)
2. Supply (Provider, Team)
3. Requests (ReschedulingPreferences, ReschedulingConstraints, ScheduleSessionRequest)
4. Output (ContinuityScore, ReschedulingOption, ReschedulingImpact, results)
5. Audit (ScheduleEvent, AuditTrail)
"""

from .session import (
    Session,
    SessionStatus,
    SESSION_DURATION,
    TERMINAL_STATUSES
)

from .resource import (
    Provider,
    Team
)

from .requests import (
    TimeWindow,
    ReschedulingPreferences,
    ReschedulingConstraints,
    ScheduleSessionRequest
)

from .schedule import (
    ScoreComponents,
    ContinuityScore,
    Availability,
    AlternativeOption,
    ReschedulingOption,
    ConflictType,
    SchedulingConflict,
    ProviderAlternative,
    ProviderSelection,
    OptimizationMetrics,
    ReschedulingImpact,
    ScheduleSessionResult,
    ReschedulingResult,
    RescheduleExecutionResult,
    CancellationResult,
    ReassignmentStatus,
    ReassignmentOutcome,
    UnavailabilityResult,
    PairingHistory,
    ContinuityTrend,
    ContinuityMetrics
)

from .events import (
    ScheduleEventType,
    AuditEntityType,
    NewScheduleEvent,
    ScheduleEvent,
    ScheduleEventQuery,
    ScheduleEventSummary,
    AuditTrail,
    MAX_REASON_LENGTH
)

__all__ = [
    # --- Demand Models ---
    "Session",
    "SessionStatus",
    "SESSION_DURATION",
    "TERMINAL_STATUSES",

    # --- Supply Models ---
    "Provider",
    "Team",

    # --- Request Models ---
    "TimeWindow",
    "ReschedulingPreferences",
    "ReschedulingConstraints",
    "ScheduleSessionRequest",

    # --- Output Models ---
    "ScoreComponents",
    "ContinuityScore",
    "Availability",
    "AlternativeOption",
    "ReschedulingOption",
    "ConflictType",
    "SchedulingConflict",
    "ProviderAlternative",
    "ProviderSelection",
    "OptimizationMetrics",
    "ReschedulingImpact",
    "ScheduleSessionResult",
    "ReschedulingResult",
    "RescheduleExecutionResult",
    "CancellationResult",
    "ReassignmentStatus",
    "ReassignmentOutcome",
    "UnavailabilityResult",
    "PairingHistory",
    "ContinuityTrend",
    "ContinuityMetrics",

    # --- Audit Models ---
    "ScheduleEventType",
    "AuditEntityType",
    "NewScheduleEvent",
    "ScheduleEvent",
    "ScheduleEventQuery",
    "ScheduleEventSummary",
    "AuditTrail",
    "MAX_REASON_LENGTH",
]
