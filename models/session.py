"""
Session data models for the Continuity Scheduler.

A Session is one 3-hour occurrence between a client and a provider (RBT).
Sessions are never deleted; their status captures the terminal state.
"""

from enum import Enum
from typing import Optional, Dict, Set
from datetime import datetime, timedelta
from pydantic import BaseModel, Field, ConfigDict, model_validator

SESSION_DURATION = timedelta(hours=3)


class SessionStatus(str, Enum):
    """Lifecycle state of a session."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


TERMINAL_STATUSES: Set[SessionStatus] = {
    SessionStatus.COMPLETED,
    SessionStatus.CANCELLED,
    SessionStatus.NO_SHOW,
}

# Status moves forward only. Terminal states have no exits.
ALLOWED_TRANSITIONS: Dict[SessionStatus, Set[SessionStatus]] = {
    SessionStatus.SCHEDULED: {
        SessionStatus.CONFIRMED,
        SessionStatus.COMPLETED,
        SessionStatus.CANCELLED,
        SessionStatus.NO_SHOW,
    },
    SessionStatus.CONFIRMED: {
        SessionStatus.COMPLETED,
        SessionStatus.CANCELLED,
        SessionStatus.NO_SHOW,
    },
    SessionStatus.COMPLETED: set(),
    SessionStatus.CANCELLED: set(),
    SessionStatus.NO_SHOW: set(),
}


class Session(BaseModel):
    """
    A scheduled occurrence between one client and one provider.
    """

    # --- Core Identity ---
    id: str = Field(min_length=1, description="Unique identifier")
    client_id: str = Field(min_length=1, description="Client receiving the session")
    rbt_id: str = Field(min_length=1, description="Provider delivering the session")

    # --- Timing ---
    start_time: datetime = Field(description="Session start")
    end_time: datetime = Field(description="Session end (always start + 3h)")

    status: SessionStatus = Field(default=SessionStatus.SCHEDULED)
    location: str = Field(default="", description="Where the session takes place")

    # --- Notes ---
    notes: Optional[str] = Field(default=None)
    cancellation_reason: Optional[str] = Field(default=None)
    completion_notes: Optional[str] = Field(default=None)

    # Set on the replacement occurrence created by a reschedule
    rescheduled_from_id: Optional[str] = Field(
        default=None,
        description="ID of the closed session this one replaced"
    )

    # --- Audit Fields ---
    created_by: str = Field(default="system")
    updated_by: Optional[str] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)

    @model_validator(mode='after')
    def validate_fixed_duration(self):
        """A session always lasts exactly the fixed session duration."""
        if self.end_time - self.start_time != SESSION_DURATION:
            raise ValueError("Session end_time must be exactly 3 hours after start_time")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def blocks_time(self) -> bool:
        """Anything not cancelled still occupies the provider and client."""
        return self.status != SessionStatus.CANCELLED

    @property
    def is_active(self) -> bool:
        """Active for date-range queries: neither cancelled nor no-show."""
        return self.status not in (SessionStatus.CANCELLED, SessionStatus.NO_SHOW)

    def can_transition_to(self, new_status: SessionStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS[self.status]

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap against [start, end)."""
        return self.start_time < end and self.end_time > start

    def snapshot(self) -> dict:
        """JSON-compatible view used for audit old/new values."""
        return self.model_dump(mode='json', include={
            "id", "client_id", "rbt_id", "start_time", "end_time", "status", "location"
        })

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "sess_0001",
            "client_id": "client_01",
            "rbt_id": "rbt_01",
            "start_time": "2025-01-15T09:00:00",
            "end_time": "2025-01-15T12:00:00",
            "status": "scheduled",
            "location": "Home",
            "created_by": "coordinator_01"
        }
    })
