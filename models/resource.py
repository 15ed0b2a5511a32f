"""
Provider and Team data models for the Continuity Scheduler.

This module defines the 'Supply' side of the scheduler:
1. Providers (RBTs who deliver sessions)
2. Teams (the standing roster of providers eligible for a client)
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from datetime import date, datetime


class Provider(BaseModel):
    """
    A credentialed care provider (RBT) assignable to sessions.
    """
    id: str = Field(min_length=1, description="Unique identifier")
    first_name: str = Field(min_length=1)
    last_name: str = Field(default="")
    is_active: bool = Field(default=True, description="Inactive providers are never offered")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "rbt_01",
            "first_name": "Sarah",
            "last_name": "Jones",
            "is_active": True
        }
    })


class Team(BaseModel):
    """
    Providers eligible to serve one client, with exactly one primary.
    """
    id: str = Field(min_length=1, description="Unique identifier")
    client_id: str = Field(min_length=1)
    rbt_ids: List[str] = Field(default_factory=list, description="Eligible provider IDs")
    primary_rbt_id: str = Field(min_length=1, description="Designated primary provider")

    effective_date: date = Field(description="First day the roster applies")
    end_date: Optional[date] = Field(default=None, description="Set when the team is ended")
    is_active: bool = Field(default=True)

    created_by: str = Field(default="system")
    updated_by: Optional[str] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)

    @field_validator('rbt_ids')
    @classmethod
    def deduplicate_members(cls, v):
        """Keep first-seen order, drop repeats."""
        return list(dict.fromkeys(v))

    @model_validator(mode='after')
    def validate_roster(self):
        """An active team needs members and a primary drawn from them."""
        if self.is_active:
            if not self.rbt_ids:
                raise ValueError("An active team requires at least one provider")
            if self.primary_rbt_id not in self.rbt_ids:
                raise ValueError("primary_rbt_id must be a member of rbt_ids")
        if self.end_date and self.end_date < self.effective_date:
            raise ValueError("Team end_date cannot be before effective_date")
        return self

    def snapshot(self) -> dict:
        return self.model_dump(mode='json', include={
            "id", "client_id", "rbt_ids", "primary_rbt_id", "effective_date", "end_date", "is_active"
        })

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "team_01",
            "client_id": "client_01",
            "rbt_ids": ["rbt_01", "rbt_02", "rbt_03"],
            "primary_rbt_id": "rbt_01",
            "effective_date": "2025-01-01",
            "is_active": True
        }
    })
