"""Shared fixtures: a populated in-memory store and a fixed clock."""

from datetime import datetime

import pytest

from lift_load.core.engine.config_loader import ProgressionConfig
from lift_load.core.models import ExerciseDefinition
from lift_load.io.repository import InMemoryTrainingStore

# Wednesday; the current training week starts on Monday 2024-06-10
NOW = datetime(2024, 6, 12, 10, 0)
USER = "user-1"


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def config() -> ProgressionConfig:
    return ProgressionConfig()


@pytest.fixture
def store() -> InMemoryTrainingStore:
    s = InMemoryTrainingStore()
    s.add_user(USER)
    s.add_exercise(ExerciseDefinition("bench", "Bench Press", "compound"))
    s.add_exercise(ExerciseDefinition("curl", "Biceps Curl", "isolation"))
    s.add_exercise(ExerciseDefinition("pull_up", "Pull-up", "bodyweight"))
    s.add_exercise(ExerciseDefinition("squat", "Back Squat", "compound", target_reps=5))
    return s
