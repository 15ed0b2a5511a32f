"""
Caller-facing request models for the Continuity Scheduler.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from datetime import datetime, time


class TimeWindow(BaseModel):
    """A preferred time-of-day window (e.g. 09:00 to 12:00)."""
    start_time: time
    end_time: time

    @model_validator(mode='after')
    def validate_times(self):
        if self.start_time >= self.end_time:
            raise ValueError("End time must be strictly after start time")
        return self

    @property
    def label(self) -> str:
        return self.start_time.strftime("%H:%M")


class ReschedulingPreferences(BaseModel):
    """Soft preferences that shape the candidate search and feasibility score."""
    preferred_times: List[TimeWindow] = Field(default_factory=list)
    preferred_rbts: List[str] = Field(default_factory=list)
    max_days_from_original: int = Field(default=14, ge=0, le=90)
    allow_different_rbt: bool = Field(
        default=False,
        description="If False, only the session's current provider is searched"
    )
    prioritize_continuity: bool = Field(default=False)

    def is_preferred_time(self, moment: datetime) -> bool:
        return moment.strftime("%H:%M") in {w.label for w in self.preferred_times}


class ReschedulingConstraints(BaseModel):
    """Hard limits on what a reschedule may change."""
    must_maintain_rbt: bool = False
    must_maintain_date: bool = False
    must_maintain_time: bool = False
    min_notice_hours: Optional[float] = Field(default=None, ge=0)


class ScheduleSessionRequest(BaseModel):
    """
    Request to book a new session. The provider is chosen automatically
    from the client's team when rbt_id is omitted.
    """
    client_id: str = Field(min_length=1)
    preferred_start_time: datetime
    location: str = Field(default="")
    created_by: str = Field(min_length=1)
    rbt_id: Optional[str] = Field(default=None, min_length=1)
    allow_alternatives: bool = Field(default=True)
    max_alternatives: int = Field(default=10, ge=0, le=50)

    @field_validator('client_id', 'created_by')
    @classmethod
    def strip_ids(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Identifier cannot be blank")
        return v

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "client_id": "client_01",
            "preferred_start_time": "2025-01-15T09:00:00",
            "location": "Home",
            "created_by": "coordinator_01",
            "allow_alternatives": True
        }
    })
