"""
Scheduler configuration.

Defaults reflect the clinic's operating rules: weekday sessions between
09:00 and 19:00. Session length is fixed by models.SESSION_DURATION, not
configured here. A handful of values can be overridden through SCHEDULER_*
environment variables via load_config().
"""

import os
import logging
from datetime import time
from typing import List, Optional, Mapping
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


class BusinessHours(BaseModel):
    start_time: time = Field(default=time(9, 0))
    end_time: time = Field(default=time(19, 0))
    valid_days: List[int] = Field(
        default_factory=lambda: [0, 1, 2, 3, 4],
        description="Weekday indices (0=Monday) on which sessions may run"
    )

    @field_validator('valid_days')
    @classmethod
    def validate_days(cls, v):
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("valid_days must be between 0 (Mon) and 6 (Sun)")
        return sorted(set(v))

    @model_validator(mode='after')
    def validate_window(self):
        if self.start_time >= self.end_time:
            raise ValueError("Business hours end must be after start")
        return self


class ScoreWeights(BaseModel):
    """Weights for the optimization score. Must sum to 1."""
    continuity: float = Field(ge=0, le=1)
    impact: float = Field(ge=0, le=1)
    feasibility: float = Field(ge=0, le=1)

    @model_validator(mode='after')
    def validate_sum(self):
        if abs(self.continuity + self.impact + self.feasibility - 1.0) > 1e-6:
            raise ValueError("Score weights must sum to 1.0")
        return self


class SchedulingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    business_hours: BusinessHours = Field(default_factory=BusinessHours)

    # --- Daily Limits ---
    max_sessions_per_day: int = Field(default=3, ge=1)
    min_break_minutes: int = Field(default=30, ge=0)

    # --- Search Space ---
    max_days_from_original: int = Field(default=14, ge=0, le=90)
    slot_start_hours: List[int] = Field(default_factory=lambda: list(range(9, 17)))
    max_workers: int = Field(default=8, ge=1)

    # --- Output Limits ---
    max_recommended_options: int = Field(default=5, ge=1)
    max_alternatives: int = Field(default=10, ge=0)
    alternative_search_days: int = Field(default=7, ge=0)

    recent_window_days: int = Field(default=30, ge=1)

    default_weights: ScoreWeights = Field(
        default_factory=lambda: ScoreWeights(continuity=0.4, impact=0.4, feasibility=0.2)
    )
    continuity_weights: ScoreWeights = Field(
        default_factory=lambda: ScoreWeights(continuity=0.6, impact=0.3, feasibility=0.1)
    )


def _parse_time(raw: str) -> time:
    hours, _, minutes = raw.partition(":")
    return time(int(hours), int(minutes or 0))


def load_config(environ: Optional[Mapping[str, str]] = None) -> SchedulingConfig:
    """
    Build a SchedulingConfig, applying SCHEDULER_* overrides from the environment.
    Invalid overrides raise a ValueError (or pydantic ValidationError).
    """
    env = os.environ if environ is None else environ
    config = SchedulingConfig()

    hours_update = {}
    if env.get("SCHEDULER_BUSINESS_START"):
        hours_update["start_time"] = _parse_time(env["SCHEDULER_BUSINESS_START"])
    if env.get("SCHEDULER_BUSINESS_END"):
        hours_update["end_time"] = _parse_time(env["SCHEDULER_BUSINESS_END"])

    overrides = {}
    if hours_update:
        merged = config.business_hours.model_dump()
        merged.update(hours_update)
        overrides["business_hours"] = BusinessHours(**merged)
    if env.get("SCHEDULER_MAX_WORKERS"):
        overrides["max_workers"] = int(env["SCHEDULER_MAX_WORKERS"])
    if env.get("SCHEDULER_MAX_DAYS_FROM_ORIGINAL"):
        overrides["max_days_from_original"] = int(env["SCHEDULER_MAX_DAYS_FROM_ORIGINAL"])
    if env.get("SCHEDULER_MAX_OPTIONS"):
        overrides["max_recommended_options"] = int(env["SCHEDULER_MAX_OPTIONS"])

    if overrides:
        logger.info(f"Applying config overrides: {sorted(overrides)}")
        config = SchedulingConfig(**{**config.model_dump(), **overrides})

    return config
