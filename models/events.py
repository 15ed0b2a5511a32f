"""
Audit event models for the Continuity Scheduler.

ScheduleEvent is the system's ground truth for what happened and why.
Events are frozen on creation and are never updated or deleted.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, model_validator

MAX_REASON_LENGTH = 500


class ScheduleEventType(str, Enum):
    """Every schedule-affecting decision the audit log records."""
    SESSION_CREATED = "session_created"
    SESSION_CANCELLED = "session_cancelled"
    SESSION_RESCHEDULED = "session_rescheduled"
    RBT_UNAVAILABLE = "rbt_unavailable"
    TEAM_CREATED = "team_created"
    TEAM_UPDATED = "team_updated"
    TEAM_ENDED = "team_ended"
    RBT_ADDED = "rbt_added"
    RBT_REMOVED = "rbt_removed"
    PRIMARY_CHANGED = "primary_changed"


class AuditEntityType(str, Enum):
    """Entities an audit trail can be assembled for."""
    SESSION = "session"
    RBT = "rbt"
    CLIENT = "client"
    TEAM = "team"  # Teams are tracked through their client_id


class NewScheduleEvent(BaseModel):
    """
    Request to append one event to the audit log.
    The audit log assigns the id and creation timestamp.
    """
    event_type: ScheduleEventType
    session_id: Optional[str] = Field(default=None, min_length=1)
    rbt_id: Optional[str] = Field(default=None, min_length=1)
    client_id: Optional[str] = Field(default=None, min_length=1)

    old_values: Optional[Dict[str, Any]] = Field(default=None, description="Snapshot before the change")
    new_values: Optional[Dict[str, Any]] = Field(default=None, description="Snapshot after the change")
    reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    created_by: str = Field(min_length=1, description="Actor responsible for the change")

    @model_validator(mode='after')
    def validate_entity_reference(self):
        if not (self.session_id or self.rbt_id or self.client_id):
            raise ValueError("At least one entity ID (session_id, rbt_id, or client_id) must be provided")
        return self


class ScheduleEvent(NewScheduleEvent):
    """
    Immutable, persisted audit record.
    """
    id: str = Field(min_length=1)
    created_at: datetime

    model_config = ConfigDict(frozen=True, json_schema_extra={
        "example": {
            "id": "evt_0001",
            "event_type": "session_rescheduled",
            "session_id": "sess_0001",
            "rbt_id": "rbt_01",
            "client_id": "client_01",
            "old_values": {"start_time": "2025-01-15T09:00:00"},
            "new_values": {"start_time": "2025-01-16T09:00:00"},
            "reason": "Client illness",
            "created_by": "coordinator_01",
            "created_at": "2025-01-14T16:30:00"
        }
    })


class ScheduleEventQuery(BaseModel):
    """Filter for audit log queries. Unset fields do not filter."""
    event_type: Optional[ScheduleEventType] = None
    session_id: Optional[str] = None
    rbt_id: Optional[str] = None
    client_id: Optional[str] = None
    created_by: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self

    def matches(self, event: ScheduleEvent) -> bool:
        if self.event_type and event.event_type != self.event_type:
            return False
        if self.session_id and event.session_id != self.session_id:
            return False
        if self.rbt_id and event.rbt_id != self.rbt_id:
            return False
        if self.client_id and event.client_id != self.client_id:
            return False
        if self.created_by and event.created_by != self.created_by:
            return False
        if self.start_date and event.created_at < self.start_date:
            return False
        if self.end_date and event.created_at > self.end_date:
            return False
        return True


class ScheduleEventSummary(BaseModel):
    event_id: str
    event_type: ScheduleEventType
    timestamp: datetime
    description: str
    session_id: Optional[str] = None
    rbt_id: Optional[str] = None
    client_id: Optional[str] = None
    reason: Optional[str] = None
    created_by: str


class AuditTrail(BaseModel):
    """Chronological sequence of events for one entity."""
    entity_type: AuditEntityType
    entity_id: str
    events: List[ScheduleEventSummary] = Field(default_factory=list)
    total_events: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
