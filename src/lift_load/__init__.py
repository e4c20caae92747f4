"""
lift-load: adaptive training-load engine.

Turns workout history into next-session weight suggestions, deload
recommendations and periodized mesocycle plans.  Storage belongs to the
embedding application, which passes a TrainingRepository to every
component.
"""

from .core.combiner import LoadAdjustmentCombiner
from .core.deload import DeloadDetector
from .core.engine.config_loader import (
    ClassificationRule,
    ProgressionConfig,
    load_progression_config,
)
from .core.errors import ConflictError, InvalidInputError, LiftLoadError, NotFoundError
from .core.periodization import PeriodizationPlanner
from .core.progression import ProgressionEngine
from .io.repository import InMemoryTrainingStore, TrainingRepository

__all__ = [
    "ClassificationRule",
    "ConflictError",
    "DeloadDetector",
    "InMemoryTrainingStore",
    "InvalidInputError",
    "LiftLoadError",
    "LoadAdjustmentCombiner",
    "NotFoundError",
    "PeriodizationPlanner",
    "ProgressionConfig",
    "ProgressionEngine",
    "TrainingRepository",
    "load_progression_config",
]
