import pytest
from datetime import time
from pydantic import ValidationError

from scheduler.config import SchedulingConfig, BusinessHours, ScoreWeights, load_config


class TestSchedulingConfig:

    def test_defaults(self):
        config = SchedulingConfig()
        assert config.business_hours.start_time == time(9)
        assert config.business_hours.end_time == time(19)
        assert config.business_hours.valid_days == [0, 1, 2, 3, 4]
        assert config.slot_start_hours == list(range(9, 17))
        assert config.max_recommended_options == 5

    def test_session_length_is_not_configurable(self):
        with pytest.raises(ValidationError):
            SchedulingConfig(session_duration_hours=2)

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValidationError):
            ScoreWeights(continuity=0.5, impact=0.5, feasibility=0.5)

    def test_business_hours_must_be_ordered(self):
        with pytest.raises(ValidationError):
            BusinessHours(start_time=time(19), end_time=time(9))

    def test_valid_days_are_normalized(self):
        assert BusinessHours(valid_days=[4, 0, 4]).valid_days == [0, 4]
        with pytest.raises(ValidationError):
            BusinessHours(valid_days=[7])


class TestLoadConfig:

    def test_empty_environment_gives_defaults(self):
        assert load_config({}) == SchedulingConfig()

    def test_overrides(self):
        config = load_config({
            "SCHEDULER_BUSINESS_START": "08:30",
            "SCHEDULER_BUSINESS_END": "18",
            "SCHEDULER_MAX_WORKERS": "2",
            "SCHEDULER_MAX_DAYS_FROM_ORIGINAL": "7",
            "SCHEDULER_MAX_OPTIONS": "3",
        })
        assert config.business_hours.start_time == time(8, 30)
        assert config.business_hours.end_time == time(18)
        assert config.max_workers == 2
        assert config.max_days_from_original == 7
        assert config.max_recommended_options == 3

    def test_invalid_override_raises(self):
        with pytest.raises(ValueError):
            load_config({"SCHEDULER_MAX_WORKERS": "0"})
        with pytest.raises(ValueError):
            load_config({"SCHEDULER_BUSINESS_START": "20:00"})
