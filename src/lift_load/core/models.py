"""
Data models for lift-load.

Dataclasses for the workout history the engine reads (sessions, exercise
logs, sets), the entities it owns (deload weeks, mesocycles) and the
results it returns.  Weights are stored in a canonical unit (kg); all
datetimes are naive and interpreted in the caller's local time.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Literal, get_args

from .errors import InvalidInputError

SetType = Literal["WARMUP", "WORKING", "DROP", "FAILURE"]
DeloadType = Literal["VOLUME_REDUCTION", "INTENSITY_REDUCTION", "ACTIVE_RECOVERY"]
PeriodizationType = Literal["LINEAR", "UNDULATING", "BLOCK"]
MesocycleGoal = Literal["STRENGTH", "HYPERTROPHY", "POWER", "PEAKING", "GENERAL_FITNESS"]
MesocycleStatus = Literal["PLANNED", "ACTIVE", "COMPLETED", "CANCELLED"]
WeekType = Literal["ACCUMULATION", "INTENSIFICATION", "PEAK", "DELOAD", "TAPER", "TRANSITION"]
RationaleCode = Literal["INCREASE", "MAINTAIN", "DECREASE", "INSUFFICIENT_DATA"]

SET_TYPES: tuple[str, ...] = get_args(SetType)
DELOAD_TYPES: tuple[str, ...] = get_args(DeloadType)
PERIODIZATION_TYPES: tuple[str, ...] = get_args(PeriodizationType)
MESOCYCLE_GOALS: tuple[str, ...] = get_args(MesocycleGoal)
MESOCYCLE_STATUSES: tuple[str, ...] = get_args(MesocycleStatus)
WEEK_TYPES: tuple[str, ...] = get_args(WeekType)

RECOVERY_WEEK_TYPES: frozenset[str] = frozenset({"DELOAD", "TAPER"})


def _new_id() -> str:
    return uuid.uuid4().hex


# =============================================================================
# WORKOUT HISTORY (read-only input)
# =============================================================================


@dataclass(frozen=True)
class SetRecord:
    """
    A single logged set.

    Immutable once logged; removed only when its parent log is deleted.
    """

    weight: float
    reps: int
    completed_at: datetime
    set_number: int
    set_type: SetType = "WORKING"
    rpe: float | None = None

    def __post_init__(self) -> None:
        """Validate set data."""
        if self.weight < 0:
            raise InvalidInputError("weight must be non-negative", {"weight": self.weight})
        if self.reps < 0:
            raise InvalidInputError("reps must be non-negative", {"reps": self.reps})
        if self.set_number < 1:
            raise InvalidInputError("set_number is 1-based", {"set_number": self.set_number})
        if self.set_type not in SET_TYPES:
            raise InvalidInputError(f"Invalid set_type: {self.set_type}")
        if self.rpe is not None and not 1.0 <= self.rpe <= 10.0:
            raise InvalidInputError("rpe must be within [1, 10]", {"rpe": self.rpe})

    @property
    def is_working(self) -> bool:
        return self.set_type == "WORKING"


@dataclass
class ExerciseLog:
    """
    One exercise performed within one session.

    ``is_personal_record`` is computed by the surrounding application and
    only carried through here.
    """

    exercise_id: str
    sets: list[SetRecord] = field(default_factory=list)
    id: str = field(default_factory=_new_id)
    is_personal_record: bool = False

    def __post_init__(self) -> None:
        """Set numbers must run 1..n without gaps."""
        for expected, s in enumerate(self.sets, 1):
            if s.set_number != expected:
                raise InvalidInputError(
                    f"Set numbers must be 1..{len(self.sets)} in order; "
                    f"found {s.set_number} at position {expected}",
                    {"exercise_log_id": self.id},
                )

    @property
    def working_sets(self) -> list[SetRecord]:
        """Working sets in set-number order."""
        return [s for s in self.sets if s.is_working]


@dataclass
class WorkoutSession:
    """
    A bounded training session owned by one user.

    ``completed_at`` is None while the session is open.  Only completed
    sessions feed the engine's computations.
    """

    user_id: str
    started_at: datetime
    completed_at: datetime | None = None
    exercise_logs: list[ExerciseLog] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        """Validate session data."""
        if self.completed_at is not None and self.completed_at < self.started_at:
            raise InvalidInputError(
                "completed_at must not precede started_at", {"session_id": self.id}
            )

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def log_for(self, exercise_id: str) -> ExerciseLog | None:
        """Return the log for the given exercise, or None if it wasn't performed."""
        for log in self.exercise_logs:
            if log.exercise_id == exercise_id:
                return log
        return None

    @property
    def all_sets(self) -> list[SetRecord]:
        return [s for log in self.exercise_logs for s in log.sets]


@dataclass(frozen=True)
class ExerciseDefinition:
    """
    Exercise metadata needed by the progression engine.

    ``classification`` (e.g. "compound", "isolation") selects the progression
    rule: increment, rep target, back-off and required sessions.
    ``target_reps`` overrides that rule's rep target for this exercise.
    """

    exercise_id: str
    name: str
    classification: str = "compound"
    target_reps: int | None = None

    def __post_init__(self) -> None:
        if self.target_reps is not None and self.target_reps <= 0:
            raise InvalidInputError("target_reps must be positive")


# =============================================================================
# ENGINE-OWNED ENTITIES
# =============================================================================


@dataclass
class DeloadWeek:
    """
    A scheduled 7-day recovery interval.

    The interval is half-open: [start_date, end_date).
    """

    user_id: str
    start_date: date
    end_date: date
    deload_type: DeloadType
    reason: str | None = None
    completed: bool = False
    skipped: bool = False
    notes: str | None = None
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        """Validate deload data."""
        if self.deload_type not in DELOAD_TYPES:
            raise InvalidInputError(f"Invalid deload_type: {self.deload_type}")
        if self.end_date <= self.start_date:
            raise InvalidInputError("end_date must be after start_date")

    def overlaps(self, start: date, end: date) -> bool:
        """True if [start, end) intersects this week's [start_date, end_date)."""
        return self.start_date < end and start < self.end_date

    def covers(self, day: date) -> bool:
        return self.start_date <= day < self.end_date

    @property
    def is_pending(self) -> bool:
        """Neither completed nor skipped."""
        return not (self.completed or self.skipped)


@dataclass
class MesocycleWeek:
    """
    One planned week of a mesocycle.

    Multipliers scale the caller's baseline volume (sets) and intensity
    (load).  Created in bulk with the mesocycle; never reordered.
    """

    week_number: int
    week_type: WeekType
    volume_multiplier: float
    intensity_multiplier: float
    rir_target: int | None = None
    notes: str | None = None
    is_completed: bool = False
    completed_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate week data."""
        if self.week_number < 1:
            raise InvalidInputError("week_number is 1-based")
        if self.week_type not in WEEK_TYPES:
            raise InvalidInputError(f"Invalid week_type: {self.week_type}")
        if self.volume_multiplier <= 0 or self.intensity_multiplier <= 0:
            raise InvalidInputError("multipliers must be positive")

    @property
    def is_recovery(self) -> bool:
        """True for deload/taper weeks."""
        return self.week_type in RECOVERY_WEEK_TYPES


@dataclass
class Mesocycle:
    """
    A planned training block.

    ``current_week`` is 0 until the mesocycle is started, then points at
    the 1-based week in progress.
    """

    user_id: str
    duration_weeks: int
    periodization_type: PeriodizationType
    goal: MesocycleGoal
    weeks: list[MesocycleWeek] = field(default_factory=list)
    name: str = ""
    status: MesocycleStatus = "PLANNED"
    start_date: date | None = None
    current_week: int = 0
    notes: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        """Validate mesocycle data."""
        if self.periodization_type not in PERIODIZATION_TYPES:
            raise InvalidInputError(f"Invalid periodization_type: {self.periodization_type}")
        if self.goal not in MESOCYCLE_GOALS:
            raise InvalidInputError(f"Invalid goal: {self.goal}")
        if self.status not in MESOCYCLE_STATUSES:
            raise InvalidInputError(f"Invalid status: {self.status}")
        if self.weeks and len(self.weeks) != self.duration_weeks:
            raise InvalidInputError(
                f"Expected {self.duration_weeks} weeks, got {len(self.weeks)}"
            )

    def week(self, week_number: int) -> MesocycleWeek:
        """Return the week with the given 1-based number."""
        if not 1 <= week_number <= len(self.weeks):
            raise InvalidInputError(
                f"week_number must be within 1..{len(self.weeks)}",
                {"week_number": week_number},
            )
        return self.weeks[week_number - 1]

    @property
    def current(self) -> MesocycleWeek | None:
        """The week in progress, or None if not started."""
        if self.current_week < 1:
            return None
        return self.week(self.current_week)

    @property
    def is_final_week(self) -> bool:
        return self.current_week == self.duration_weeks

    @property
    def end_date(self) -> date | None:
        """Last day of the plan, once a start date is known."""
        if self.start_date is None:
            return None
        return self.start_date + timedelta(days=self.duration_weeks * 7 - 1)


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class Suggestion:
    """Next-session weight/rep target for one exercise."""

    exercise_id: str
    suggested_weight: float
    suggested_reps: int
    rationale: RationaleCode
    previous_weight: float
    reasoning: str
    confidence: float
    sessions_at_current_weight: int
    would_be_pr: bool = False


@dataclass(frozen=True)
class InsufficientData:
    """
    Not enough history to suggest anything.

    A normal outcome, returned instead of a guessed number.
    """

    exercise_id: str
    sessions_found: int = 0
    reasoning: str = ""

    @property
    def rationale(self) -> RationaleCode:
        return "INSUFFICIENT_DATA"


@dataclass(frozen=True)
class PlateauReport:
    """Progress state of one exercise over its recent sessions."""

    is_plateaued: bool
    sessions_without_progress: int
    last_progress_at: datetime | None
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeloadMetrics:
    """Inputs for the deload signals, all computed over the lookback window."""

    consecutive_weeks: int = 0
    days_since_last_deload: int | None = None
    rpe_trend: float = 0.0
    declining_sessions: int = 0
    plateaued_exercises: int = 0
    recent_session_count: int = 0


@dataclass(frozen=True)
class DeloadRecommendation:
    """
    Outcome of a deload evaluation.

    ``signal_points`` maps each signal name to the points it contributed.
    """

    needed: bool
    confidence: int
    deload_type: DeloadType
    suggested_start: date
    reason: str
    metrics: DeloadMetrics
    signal_points: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class LoadAdjustment:
    """Weight and volume multipliers of an active deload week."""

    weight_multiplier: float
    volume_multiplier: float


@dataclass(frozen=True)
class WeekParameters:
    """Multipliers of the active mesocycle's current week."""

    week_number: int
    week_type: WeekType
    volume_multiplier: float
    intensity_multiplier: float
    rir_target: int | None = None


@dataclass(frozen=True)
class EffectiveMultiplier:
    """
    Combined advisory multiplier.

    ``periodization`` and ``deload`` record the sources that contributed;
    either may be None.
    """

    weight: float = 1.0
    volume: float = 1.0
    periodization: WeekParameters | None = None
    deload: LoadAdjustment | None = None


@dataclass(frozen=True)
class AdvisedSuggestion:
    """A raw progression suggestion paired with the multiplier to present alongside it."""

    suggestion: Suggestion | InsufficientData
    multiplier: EffectiveMultiplier
