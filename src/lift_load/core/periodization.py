"""
Mesocycle planning and lifecycle.

Week generation is pure and deterministic: the same duration, type and
goal always produce the same weeks.  The planner persists mesocycles
through the repository and walks them through

    PLANNED → ACTIVE → COMPLETED
    PLANNED / ACTIVE → CANCELLED

with at most one ACTIVE mesocycle per user.
"""

import math
from dataclasses import replace
from datetime import date, datetime
from typing import Callable

from loguru import logger

from .config import (
    BLOCK_ACCUMULATION_SHARE,
    BLOCK_INTENSIFICATION_SHARE,
    MAX_MESOCYCLE_WEEKS,
    MIN_MESOCYCLE_WEEKS,
    MULTIPLIER_MAX,
    MULTIPLIER_MIN,
    RECOVERY_WEEK_MIN_DURATION,
    TAPER_GOALS,
    TAPER_MULTIPLIERS,
    UNDULATING_PATTERN,
    goal_linear_profile,
)
from .errors import ConflictError, InvalidInputError, NotFoundError
from .models import (
    MESOCYCLE_GOALS,
    MESOCYCLE_STATUSES,
    PERIODIZATION_TYPES,
    WEEK_TYPES,
    Mesocycle,
    MesocycleGoal,
    MesocycleStatus,
    MesocycleWeek,
    PeriodizationType,
    WeekParameters,
    WeekType,
)
from ..io.repository import TrainingRepository

RECOVERY_RIR = 4


def clamp_multiplier(value: float) -> float:
    """Clamp into [MULTIPLIER_MIN, MULTIPLIER_MAX], rounded to 3 decimals."""
    return round(min(MULTIPLIER_MAX, max(MULTIPLIER_MIN, value)), 3)


def has_recovery_week(duration_weeks: int) -> bool:
    return duration_weeks >= RECOVERY_WEEK_MIN_DURATION


def _week(
    number: int, week_type: str, volume: float, intensity: float, rir: int | None
) -> MesocycleWeek:
    return MesocycleWeek(
        week_number=number,
        week_type=week_type,  # type: ignore[arg-type]
        volume_multiplier=clamp_multiplier(volume),
        intensity_multiplier=clamp_multiplier(intensity),
        rir_target=rir,
    )


# =============================================================================
# WEEK GENERATORS
# =============================================================================


def generate_linear_weeks(working_weeks: int, goal: str) -> list[MesocycleWeek]:
    """
    Linear progression: intensity climbs, volume falls, both in equal steps.

    Args:
        working_weeks: Weeks before any recovery week
        goal: Selects the start/peak endpoints

    Returns:
        Weeks 1..working_weeks
    """
    int_start, int_peak, vol_start, vol_end = goal_linear_profile(goal)
    weeks = []
    for i in range(working_weeks):
        progress = i / (working_weeks - 1) if working_weeks > 1 else 0.0
        weeks.append(
            _week(
                i + 1,
                "ACCUMULATION" if progress < 0.5 else "INTENSIFICATION",
                vol_start + (vol_end - vol_start) * progress,
                int_start + (int_peak - int_start) * progress,
                3 - round(2 * progress),
            )
        )
    return weeks


def generate_undulating_weeks(working_weeks: int) -> list[MesocycleWeek]:
    """Cycle through UNDULATING_PATTERN week by week."""
    weeks = []
    for i in range(working_weeks):
        week_type, volume, intensity, rir = UNDULATING_PATTERN[i % len(UNDULATING_PATTERN)]
        weeks.append(_week(i + 1, week_type, volume, intensity, rir))
    return weeks


def block_phase_lengths(working_weeks: int) -> tuple[int, int, int]:
    """
    Split working weeks into (accumulation, intensification, peak).

    Accumulation and intensification take ~40% and ~30% (rounded up); the
    peak gets the rest and borrows a week when the split leaves it empty.
    """
    accumulation = math.ceil(round(working_weeks * BLOCK_ACCUMULATION_SHARE, 6))
    intensification = math.ceil(round(working_weeks * BLOCK_INTENSIFICATION_SHARE, 6))
    peak = working_weeks - accumulation - intensification
    if peak < 1:
        if accumulation > 1:
            accumulation -= 1
            peak += 1
        elif intensification > 1:
            intensification -= 1
            peak += 1
    return accumulation, intensification, max(peak, 0)


def generate_block_weeks(working_weeks: int) -> list[MesocycleWeek]:
    """
    Block periodization: accumulation, then intensification, then peak.

    Multipliers step at each phase boundary and drift within a phase.
    """
    accumulation, intensification, peak = block_phase_lengths(working_weeks)
    weeks = []
    number = 1
    for i in range(accumulation):
        weeks.append(_week(number, "ACCUMULATION", 1.1 - 0.02 * i, 0.95 + 0.02 * i, 3))
        number += 1
    for i in range(intensification):
        weeks.append(_week(number, "INTENSIFICATION", 0.85 - 0.05 * i, 1.05 + 0.03 * i, 2))
        number += 1
    for _ in range(peak):
        weeks.append(_week(number, "PEAK", 0.6, 1.1, 1))
        number += 1
    return weeks


def recovery_week(number: int, goal: str, first: MesocycleWeek) -> MesocycleWeek:
    """
    Final recovery week: TAPER for strength-type goals, DELOAD otherwise.

    Multipliers never exceed week 1's.
    """
    volume, intensity = TAPER_MULTIPLIERS
    return _week(
        number,
        "TAPER" if goal in TAPER_GOALS else "DELOAD",
        min(volume, first.volume_multiplier),
        min(intensity, first.intensity_multiplier),
        RECOVERY_RIR,
    )


def generate_weeks(
    duration_weeks: int,
    periodization_type: str,
    goal: str,
) -> list[MesocycleWeek]:
    """
    Build every week of a mesocycle.

    Raises:
        InvalidInputError: Duration outside 2..16, unknown type or goal
    """
    if not MIN_MESOCYCLE_WEEKS <= duration_weeks <= MAX_MESOCYCLE_WEEKS:
        raise InvalidInputError(
            f"duration_weeks must be within {MIN_MESOCYCLE_WEEKS}..{MAX_MESOCYCLE_WEEKS}",
            {"duration_weeks": duration_weeks},
        )
    if periodization_type not in PERIODIZATION_TYPES:
        raise InvalidInputError(
            f"Unknown periodization type: {periodization_type}",
            {"valid": list(PERIODIZATION_TYPES)},
        )
    if goal not in MESOCYCLE_GOALS:
        raise InvalidInputError(f"Unknown goal: {goal}", {"valid": list(MESOCYCLE_GOALS)})

    recovery = has_recovery_week(duration_weeks)
    working = duration_weeks - 1 if recovery else duration_weeks

    if periodization_type == "LINEAR":
        weeks = generate_linear_weeks(working, goal)
    elif periodization_type == "UNDULATING":
        weeks = generate_undulating_weeks(working)
    else:
        weeks = generate_block_weeks(working)

    if recovery:
        weeks.append(recovery_week(duration_weeks, goal, weeks[0]))
    return weeks


# =============================================================================
# PLANNER
# =============================================================================


class PeriodizationPlanner:
    """
    Creates mesocycles and moves them through their lifecycle.

    Every state change of a user's mesocycles runs inside
    ``repository.transaction(user_id)``.
    """

    def __init__(
        self,
        repository: TrainingRepository,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repository = repository
        self.clock = clock or datetime.now

    def _require_user(self, user_id: str) -> None:
        if not self.repository.user_exists(user_id):
            raise NotFoundError("User", user_id)

    def get(self, mesocycle_id: str) -> Mesocycle:
        """
        Raises:
            NotFoundError: Unknown mesocycle
        """
        mesocycle = self.repository.get_mesocycle(mesocycle_id)
        if mesocycle is None:
            raise NotFoundError("Mesocycle", mesocycle_id)
        return mesocycle

    # ------------------------------------------------------------------
    # Creation and queries
    # ------------------------------------------------------------------

    def create_mesocycle(
        self,
        user_id: str,
        duration_weeks: int,
        periodization_type: PeriodizationType,
        goal: MesocycleGoal,
        name: str | None = None,
        start_date: date | None = None,
        notes: str | None = None,
    ) -> Mesocycle:
        """
        Create a PLANNED mesocycle with all of its weeks generated.

        Args:
            user_id: Owner
            duration_weeks: 2..16
            periodization_type: LINEAR, UNDULATING or BLOCK
            goal: Training goal; shapes the linear profile and the recovery week
            name: Display name; generated when omitted
            start_date: Planned start, informational until start()
            notes: Free text

        Raises:
            NotFoundError: Unknown user
            InvalidInputError: Invalid duration, type or goal
        """
        weeks = generate_weeks(duration_weeks, periodization_type, goal)
        self._require_user(user_id)

        mesocycle = Mesocycle(
            user_id=user_id,
            duration_weeks=duration_weeks,
            periodization_type=periodization_type,
            goal=goal,
            weeks=weeks,
            name=name or f"{goal.title()} {periodization_type.lower()} block",
            start_date=start_date,
            notes=notes,
            created_at=self.clock(),
        )
        with self.repository.transaction(user_id):
            self.repository.persist(mesocycle)

        logger.info(
            f"Created {periodization_type} mesocycle {mesocycle.id} for user_id={user_id} "
            f"({duration_weeks} weeks, goal={goal})"
        )
        return mesocycle

    def list_mesocycles(
        self, user_id: str, status: MesocycleStatus | None = None
    ) -> list[Mesocycle]:
        """The user's mesocycles, newest first, optionally filtered by status."""
        self._require_user(user_id)
        if status is not None and status not in MESOCYCLE_STATUSES:
            raise InvalidInputError(f"Unknown status: {status}")
        mesocycles = [
            m
            for m in self.repository.list_mesocycles(user_id)
            if status is None or m.status == status
        ]
        return sorted(mesocycles, key=lambda m: m.created_at, reverse=True)

    def active_mesocycle(self, user_id: str) -> Mesocycle | None:
        self._require_user(user_id)
        for mesocycle in self.repository.list_mesocycles(user_id):
            if mesocycle.status == "ACTIVE":
                return mesocycle
        return None

    def current_parameters(self, user_id: str) -> WeekParameters | None:
        """
        Multipliers of the active mesocycle's current week.

        Returns:
            WeekParameters, or None when the user has no active mesocycle

        Raises:
            NotFoundError: Unknown user
        """
        mesocycle = self.active_mesocycle(user_id)
        if mesocycle is None or mesocycle.current is None:
            return None
        week = mesocycle.current
        return WeekParameters(
            week_number=week.week_number,
            week_type=week.week_type,
            volume_multiplier=week.volume_multiplier,
            intensity_multiplier=week.intensity_multiplier,
            rir_target=week.rir_target,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, mesocycle_id: str, start_date: date | None = None) -> Mesocycle:
        """
        Activate a planned mesocycle at week 1.

        Raises:
            NotFoundError: Unknown mesocycle
            ConflictError: Not PLANNED, or the user already has an ACTIVE one
        """
        user_id = self.get(mesocycle_id).user_id
        with self.repository.transaction(user_id):
            mesocycle = self.get(mesocycle_id)
            if mesocycle.status != "PLANNED":
                raise ConflictError(
                    f"Only a PLANNED mesocycle can be started (status {mesocycle.status})",
                    {"mesocycle_id": mesocycle_id, "status": mesocycle.status},
                )
            for other in self.repository.list_mesocycles(user_id):
                if other.id != mesocycle_id and other.status == "ACTIVE":
                    raise ConflictError(
                        "User already has an active mesocycle",
                        {"active_mesocycle_id": other.id},
                    )
            mesocycle.status = "ACTIVE"
            mesocycle.start_date = start_date or self.clock().date()
            mesocycle.current_week = 1
            self.repository.persist(mesocycle)

        logger.info(
            f"Started mesocycle {mesocycle_id} for user_id={user_id} "
            f"on {mesocycle.start_date.isoformat()}"
        )
        return mesocycle

    def advance(self, mesocycle_id: str) -> MesocycleWeek:
        """
        Complete the current week and move to the next one.

        Returns:
            The new current week

        Raises:
            NotFoundError: Unknown mesocycle
            ConflictError: Not ACTIVE, or already on the final week
        """
        user_id = self.get(mesocycle_id).user_id
        with self.repository.transaction(user_id):
            mesocycle = self.get(mesocycle_id)
            if mesocycle.status != "ACTIVE":
                raise ConflictError(
                    f"Only an ACTIVE mesocycle can advance (status {mesocycle.status})",
                    {"mesocycle_id": mesocycle_id, "status": mesocycle.status},
                )
            if mesocycle.is_final_week:
                raise ConflictError(
                    "Already on the final week; complete the mesocycle instead",
                    {"mesocycle_id": mesocycle_id, "current_week": mesocycle.current_week},
                )
            self._finish_current_week(mesocycle)
            mesocycle.current_week += 1
            self.repository.persist(mesocycle)
            week = mesocycle.week(mesocycle.current_week)

        logger.info(
            f"Advanced mesocycle {mesocycle_id} to week {week.week_number} ({week.week_type})"
        )
        return week

    def complete(self, mesocycle_id: str) -> Mesocycle:
        """
        Raises:
            ConflictError: Not ACTIVE or not on the final week
        """
        user_id = self.get(mesocycle_id).user_id
        with self.repository.transaction(user_id):
            mesocycle = self.get(mesocycle_id)
            if mesocycle.status != "ACTIVE" or not mesocycle.is_final_week:
                raise ConflictError(
                    "Only an ACTIVE mesocycle on its final week can be completed",
                    {
                        "mesocycle_id": mesocycle_id,
                        "status": mesocycle.status,
                        "current_week": mesocycle.current_week,
                    },
                )
            self._finish_current_week(mesocycle)
            mesocycle.status = "COMPLETED"
            self.repository.persist(mesocycle)

        logger.info(f"Completed mesocycle {mesocycle_id} for user_id={user_id}")
        return mesocycle

    def cancel(self, mesocycle_id: str) -> Mesocycle:
        user_id = self.get(mesocycle_id).user_id
        with self.repository.transaction(user_id):
            mesocycle = self.get(mesocycle_id)
            if mesocycle.status not in ("PLANNED", "ACTIVE"):
                raise ConflictError(
                    f"Cannot cancel a {mesocycle.status} mesocycle",
                    {"mesocycle_id": mesocycle_id, "status": mesocycle.status},
                )
            mesocycle.status = "CANCELLED"
            self.repository.persist(mesocycle)

        logger.info(f"Cancelled mesocycle {mesocycle_id} for user_id={user_id}")
        return mesocycle

    def update_week(
        self,
        mesocycle_id: str,
        week_number: int,
        week_type: WeekType | None = None,
        volume_multiplier: float | None = None,
        intensity_multiplier: float | None = None,
        rir_target: int | None = None,
        notes: str | None = None,
    ) -> MesocycleWeek:
        """
        Edit one planned week.  Arguments left as None keep their value.

        Raises:
            NotFoundError: Unknown mesocycle
            InvalidInputError: Bad week number, type or multiplier
            ConflictError: Mesocycle is COMPLETED or CANCELLED
        """
        for label, value in (
            ("volume_multiplier", volume_multiplier),
            ("intensity_multiplier", intensity_multiplier),
        ):
            if value is not None and not MULTIPLIER_MIN <= value <= MULTIPLIER_MAX:
                raise InvalidInputError(
                    f"{label} must be within [{MULTIPLIER_MIN}, {MULTIPLIER_MAX}]",
                    {label: value},
                )
        if week_type is not None and week_type not in WEEK_TYPES:
            raise InvalidInputError(f"Unknown week type: {week_type}")
        if rir_target is not None and rir_target < 0:
            raise InvalidInputError("rir_target must be non-negative")

        user_id = self.get(mesocycle_id).user_id
        with self.repository.transaction(user_id):
            mesocycle = self.get(mesocycle_id)
            if mesocycle.status in ("COMPLETED", "CANCELLED"):
                raise ConflictError(
                    f"Cannot edit a {mesocycle.status} mesocycle",
                    {"mesocycle_id": mesocycle_id, "status": mesocycle.status},
                )
            week = mesocycle.week(week_number)
            changes = {
                "week_type": week_type,
                "volume_multiplier": volume_multiplier,
                "intensity_multiplier": intensity_multiplier,
                "rir_target": rir_target,
                "notes": notes,
            }
            updated = replace(week, **{k: v for k, v in changes.items() if v is not None})
            mesocycle.weeks[week_number - 1] = updated
            self.repository.persist(mesocycle)

        logger.debug(f"Updated week {week_number} of mesocycle {mesocycle_id}")
        return updated

    def delete(self, mesocycle_id: str) -> None:
        user_id = self.get(mesocycle_id).user_id
        with self.repository.transaction(user_id):
            self.repository.delete_mesocycle(mesocycle_id)
        logger.info(f"Deleted mesocycle {mesocycle_id} for user_id={user_id}")

    def _finish_current_week(self, mesocycle: Mesocycle) -> None:
        week = mesocycle.week(mesocycle.current_week)
        week.is_completed = True
        week.completed_at = self.clock()
