"""
Hard Constraint Validation Logic.

This module answers the binary question: "Can a session happen at Time Y?"
It enforces the clinic's operating rules (business days and hours, the
fixed 3-hour duration) and per-provider daily limits.
"""

from datetime import date as date_type, datetime, timedelta
from typing import List, Optional, Iterable
from dataclasses import dataclass

from models import (
    Session,
    SessionStatus,
    SESSION_DURATION,
    ReschedulingConstraints,
    SchedulingConflict,
    ConflictType,
)
from .config import SchedulingConfig
from .clock import Clock

_DEFAULT_CONFIG = SchedulingConfig()
SESSION_HOURS = int(SESSION_DURATION.total_seconds() // 3600)


def is_business_day(day: date_type, config: Optional[SchedulingConfig] = None) -> bool:
    """Monday-Friday unless the config says otherwise."""
    config = config or _DEFAULT_CONFIG
    return day.weekday() in config.business_hours.valid_days


def is_within_business_hours(start: datetime, end: datetime, config: Optional[SchedulingConfig] = None) -> bool:
    """Both endpoints on the same calendar day and inside the daily window."""
    config = config or _DEFAULT_CONFIG
    hours = config.business_hours
    if start >= end or start.date() != end.date():
        return False
    return start.time() >= hours.start_time and end.time() <= hours.end_time


def has_legal_duration(start: datetime, end: datetime) -> bool:
    return end - start == SESSION_DURATION


@dataclass
class ConstraintViolation:
    """Detailed reason for rejection."""
    constraint_type: ConflictType
    reason: str
    suggested_resolution: Optional[str] = None
    conflicting_session_id: Optional[str] = None

    def to_conflict(self) -> SchedulingConflict:
        return SchedulingConflict(
            type=self.constraint_type,
            description=self.reason,
            conflicting_session_id=self.conflicting_session_id,
            suggested_resolution=self.suggested_resolution,
        )


class ConstraintChecker:
    """
    Validates hard constraints for session scheduling.
    """

    def __init__(self, config: Optional[SchedulingConfig] = None, clock: Optional[Clock] = None):
        self.config = config or SchedulingConfig()
        self.clock = clock or Clock()

    def is_valid_slot(self, start: datetime, end: datetime) -> bool:
        """Fast path used while pruning candidate slots."""
        return not self.check_time_constraints(start, end)

    def check_time_constraints(self, start: datetime, end: datetime) -> List[ConstraintViolation]:
        """
        Master time validation. Returns an empty list if the slot is legal.
        """
        violations = []
        hours = self.config.business_hours

        # 1. Daily window
        if not is_within_business_hours(start, end, self.config):
            violations.append(ConstraintViolation(
                ConflictType.BUSINESS_HOURS_VIOLATION,
                f"Session must be within business hours ({hours.start_time:%H:%M} - {hours.end_time:%H:%M})",
                f"Schedule session between {hours.start_time:%H:%M} and {hours.end_time:%H:%M}",
            ))

        # 2. Fixed duration
        if not has_legal_duration(start, end):
            violations.append(ConstraintViolation(
                ConflictType.BUSINESS_HOURS_VIOLATION,
                f"Session duration must be exactly {SESSION_HOURS} hours",
                f"Adjust session to be {SESSION_HOURS} hours long",
            ))

        # 3. Business day
        if not is_business_day(start.date(), self.config):
            violations.append(ConstraintViolation(
                ConflictType.BUSINESS_HOURS_VIOLATION,
                "Sessions can only be scheduled on business days",
                "Schedule session on a weekday",
            ))

        # 4. Not in the past
        if start < self.clock.now():
            violations.append(ConstraintViolation(
                ConflictType.BUSINESS_HOURS_VIOLATION,
                "Session cannot be scheduled in the past",
                "Select a future date and time",
            ))

        return violations

    def check_daily_limits(
        self,
        rbt_id: str,
        start: datetime,
        sessions: Iterable[Session],
        exclude_session_id: Optional[str] = None
    ) -> List[ConstraintViolation]:
        """
        Enforces the per-provider daily session cap and the minimum break
        between consecutive sessions on the same day.
        """
        violations = []
        end = start + SESSION_DURATION

        daily = [
            s for s in sessions
            if s.rbt_id == rbt_id
            and s.is_active
            and s.start_time.date() == start.date()
            and s.id != exclude_session_id
        ]

        if len(daily) >= self.config.max_sessions_per_day:
            violations.append(ConstraintViolation(
                ConflictType.RBT_UNAVAILABLE,
                f"RBT has reached maximum sessions per day ({self.config.max_sessions_per_day})",
                "Select a different RBT or schedule on a different day",
            ))

        min_break = timedelta(minutes=self.config.min_break_minutes)
        for existing in daily:
            # Negative on both sides means overlap, which is a zero gap
            gap = max(existing.start_time - end, start - existing.end_time, timedelta(0))
            if gap < min_break:
                violations.append(ConstraintViolation(
                    ConflictType.RBT_UNAVAILABLE,
                    f"Insufficient break time between sessions (minimum {self.config.min_break_minutes} minutes required)",
                    "Allow more time between sessions",
                    conflicting_session_id=existing.id,
                ))

        return violations

    def check_reschedule_eligibility(
        self,
        session: Session,
        constraints: Optional[ReschedulingConstraints] = None
    ) -> List[str]:
        """
        Can this session be moved at all? Returns human-readable violations.
        """
        violations = []

        if session.status in (SessionStatus.COMPLETED, SessionStatus.NO_SHOW, SessionStatus.CANCELLED):
            violations.append(f"Cannot reschedule a {session.status.value} session")

        if constraints and constraints.min_notice_hours is not None:
            hours_until = (session.start_time - self.clock.now()).total_seconds() / 3600
            if hours_until < constraints.min_notice_hours:
                violations.append(
                    f"Insufficient notice: {hours_until:.1f} hours, minimum {constraints.min_notice_hours:g} required"
                )

        return violations
