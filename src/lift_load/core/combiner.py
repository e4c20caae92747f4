"""
Combine periodization and deload adjustments into one advisory multiplier.

The multiplier is shown next to a progression suggestion; it is never
applied to the suggested weight, so callers decide how to present it.
"""

from datetime import datetime
from typing import Callable

from loguru import logger

from .deload import DeloadDetector
from .engine.config_loader import ProgressionConfig
from .models import AdvisedSuggestion, EffectiveMultiplier
from .periodization import PeriodizationPlanner
from .progression import ProgressionEngine
from ..io.repository import TrainingRepository


class LoadAdjustmentCombiner:
    """
    weight = periodization intensity × deload weight
    volume = periodization volume × deload volume

    A missing source contributes 1.0.
    """

    def __init__(
        self,
        progression: ProgressionEngine,
        deload: DeloadDetector,
        periodization: PeriodizationPlanner,
    ):
        self.progression = progression
        self.deload = deload
        self.periodization = periodization

    @classmethod
    def from_repository(
        cls,
        repository: TrainingRepository,
        config: ProgressionConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "LoadAdjustmentCombiner":
        """Wire all three components to one repository and clock."""
        return cls(
            ProgressionEngine(repository, config),
            DeloadDetector(repository, clock),
            PeriodizationPlanner(repository, clock),
        )

    def effective_multiplier(self, user_id: str) -> EffectiveMultiplier:
        """
        Raises:
            NotFoundError: Unknown user
        """
        week = self.periodization.current_parameters(user_id)
        adjustment = self.deload.current_adjustment(user_id)

        weight = 1.0
        volume = 1.0
        if week is not None:
            weight *= week.intensity_multiplier
            volume *= week.volume_multiplier
        if adjustment is not None:
            weight *= adjustment.weight_multiplier
            volume *= adjustment.volume_multiplier

        logger.debug(f"Effective multiplier for user_id={user_id}: weight={weight} volume={volume}")
        return EffectiveMultiplier(
            weight=weight,
            volume=volume,
            periodization=week,
            deload=adjustment,
        )

    def advise(
        self,
        user_id: str,
        exercise_id: str,
        target_reps: int | None = None,
    ) -> AdvisedSuggestion:
        """The raw suggestion and today's multiplier, side by side."""
        return AdvisedSuggestion(
            suggestion=self.progression.suggest(user_id, exercise_id, target_reps),
            multiplier=self.effective_multiplier(user_id),
        )
