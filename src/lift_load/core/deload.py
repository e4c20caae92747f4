"""
Deload necessity detection, scheduling and adjustments.

evaluate() scores five independent fatigue/plateau signals over the last
8 weeks.  Each signal is a pure function of DeloadMetrics returning
points; the points are summed into a 0-100 confidence and a deload is
recommended at 50 or above.

Signals (max points):
1. Consecutive trained weeks          30
2. Time since last completed deload   25
3. RPE trend                          20
4. Declining-performance sessions     15
5. Plateaued exercises                10
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable

from loguru import logger

from .config import (
    ACTIVE_RECOVERY_SESSION_COUNT,
    CONSECUTIVE_WEEKS_HIGH,
    CONSECUTIVE_WEEKS_HIGH_POINTS,
    CONSECUTIVE_WEEKS_LOW,
    CONSECUTIVE_WEEKS_LOW_POINTS,
    DAYS_SINCE_DELOAD_HIGH,
    DAYS_SINCE_DELOAD_HIGH_POINTS,
    DAYS_SINCE_DELOAD_LOW,
    DAYS_SINCE_DELOAD_LOW_POINTS,
    DECLINING_SESSIONS_HIGH,
    DECLINING_SESSIONS_HIGH_POINTS,
    DECLINING_SESSIONS_LOW,
    DECLINING_SESSIONS_LOW_POINTS,
    DELOAD_ADJUSTMENTS,
    DELOAD_CONFIDENCE_THRESHOLD,
    DELOAD_LENGTH_DAYS,
    DELOAD_LOOKBACK_DAYS,
    GENERIC_DELOAD_REASON,
    MAX_CONFIDENCE,
    NEVER_DELOADED_POINTS,
    PLATEAU_EXERCISES_HIGH,
    PLATEAU_EXERCISES_HIGH_POINTS,
    PLATEAU_EXERCISES_LOW,
    PLATEAU_EXERCISES_LOW_POINTS,
    PLATEAU_WINDOW_DAYS,
    RECENT_WINDOW_DAYS,
    RPE_TREND_HIGH,
    RPE_TREND_HIGH_POINTS,
    RPE_TREND_LOW,
    RPE_TREND_LOW_POINTS,
)
from .errors import ConflictError, InvalidInputError, NotFoundError
from .metrics import (
    consecutive_training_weeks,
    count_declining_sessions,
    count_plateaued_exercises,
    next_monday,
    rpe_trend,
)
from .models import (
    DELOAD_TYPES,
    DeloadMetrics,
    DeloadRecommendation,
    DeloadType,
    DeloadWeek,
    LoadAdjustment,
)
from ..io.repository import TrainingRepository


# =============================================================================
# SIGNALS
# =============================================================================


@dataclass(frozen=True)
class DeloadSignal:
    """
    One scoring rule.

    ``points`` and ``reason`` are pure functions of the metrics; ``reason``
    is only consulted when the signal scored.
    """

    name: str
    max_points: int
    points: Callable[[DeloadMetrics], int]
    reason: Callable[[DeloadMetrics], str]


def consecutive_weeks_points(m: DeloadMetrics) -> int:
    if m.consecutive_weeks >= CONSECUTIVE_WEEKS_HIGH:
        return CONSECUTIVE_WEEKS_HIGH_POINTS
    if m.consecutive_weeks >= CONSECUTIVE_WEEKS_LOW:
        return CONSECUTIVE_WEEKS_LOW_POINTS
    return 0


def _consecutive_weeks_reason(m: DeloadMetrics) -> str:
    if m.consecutive_weeks >= CONSECUTIVE_WEEKS_HIGH:
        return f"You've trained consistently for {m.consecutive_weeks} weeks"
    return f"{m.consecutive_weeks} consecutive weeks of training"


def time_since_deload_points(m: DeloadMetrics) -> int:
    """
    Points for time since the last completed deload.

    With no deload on record, long streaks stand in for the missing value.
    """
    if m.days_since_last_deload is None:
        return NEVER_DELOADED_POINTS if m.consecutive_weeks >= CONSECUTIVE_WEEKS_LOW else 0
    if m.days_since_last_deload > DAYS_SINCE_DELOAD_HIGH:
        return DAYS_SINCE_DELOAD_HIGH_POINTS
    if m.days_since_last_deload > DAYS_SINCE_DELOAD_LOW:
        return DAYS_SINCE_DELOAD_LOW_POINTS
    return 0


def _time_since_deload_reason(m: DeloadMetrics) -> str:
    if m.days_since_last_deload is None:
        return "You haven't taken a deload yet"
    weeks = m.days_since_last_deload // 7
    if m.days_since_last_deload > DAYS_SINCE_DELOAD_HIGH:
        return f"It's been {weeks} weeks since your last deload"
    return f"{weeks} weeks since last deload"


def rpe_trend_points(m: DeloadMetrics) -> int:
    if m.rpe_trend > RPE_TREND_HIGH:
        return RPE_TREND_HIGH_POINTS
    if m.rpe_trend > RPE_TREND_LOW:
        return RPE_TREND_LOW_POINTS
    return 0


def _rpe_trend_reason(m: DeloadMetrics) -> str:
    if m.rpe_trend > RPE_TREND_HIGH:
        return "Your perceived effort has been increasing"
    return "Slight increase in workout difficulty"


def declining_sessions_points(m: DeloadMetrics) -> int:
    if m.declining_sessions >= DECLINING_SESSIONS_HIGH:
        return DECLINING_SESSIONS_HIGH_POINTS
    if m.declining_sessions >= DECLINING_SESSIONS_LOW:
        return DECLINING_SESSIONS_LOW_POINTS
    return 0


def _declining_sessions_reason(m: DeloadMetrics) -> str:
    if m.declining_sessions >= DECLINING_SESSIONS_HIGH:
        return "Performance has declined in recent sessions"
    return f"Total reps dropped in {m.declining_sessions} recent sessions"


def plateaued_exercises_points(m: DeloadMetrics) -> int:
    if m.plateaued_exercises >= PLATEAU_EXERCISES_HIGH:
        return PLATEAU_EXERCISES_HIGH_POINTS
    if m.plateaued_exercises >= PLATEAU_EXERCISES_LOW:
        return PLATEAU_EXERCISES_LOW_POINTS
    return 0


def _plateaued_exercises_reason(m: DeloadMetrics) -> str:
    noun = "exercise" if m.plateaued_exercises == 1 else "exercises"
    return f"Progress has stalled on {m.plateaued_exercises} {noun}"


DEFAULT_SIGNALS: tuple[DeloadSignal, ...] = (
    DeloadSignal(
        "consecutive_weeks",
        CONSECUTIVE_WEEKS_HIGH_POINTS,
        consecutive_weeks_points,
        _consecutive_weeks_reason,
    ),
    DeloadSignal(
        "time_since_deload",
        DAYS_SINCE_DELOAD_HIGH_POINTS,
        time_since_deload_points,
        _time_since_deload_reason,
    ),
    DeloadSignal("rpe_trend", RPE_TREND_HIGH_POINTS, rpe_trend_points, _rpe_trend_reason),
    DeloadSignal(
        "declining_sessions",
        DECLINING_SESSIONS_HIGH_POINTS,
        declining_sessions_points,
        _declining_sessions_reason,
    ),
    DeloadSignal(
        "plateaued_exercises",
        PLATEAU_EXERCISES_HIGH_POINTS,
        plateaued_exercises_points,
        _plateaued_exercises_reason,
    ),
)


def score_signals(
    metrics: DeloadMetrics,
    signals: tuple[DeloadSignal, ...] = DEFAULT_SIGNALS,
) -> tuple[int, dict[str, int], list[str]]:
    """
    Run every signal over the metrics.

    Returns:
        (confidence capped at 100, points per signal name, reasons of scoring signals)
    """
    points: dict[str, int] = {}
    reasons: list[str] = []
    for signal in signals:
        p = signal.points(metrics)
        points[signal.name] = p
        if p > 0:
            reasons.append(signal.reason(metrics))
    return min(MAX_CONFIDENCE, sum(points.values())), points, reasons


def select_deload_type(metrics: DeloadMetrics) -> DeloadType:
    """Rising effort or falling performance lowers intensity first."""
    if metrics.rpe_trend > RPE_TREND_HIGH or metrics.declining_sessions >= DECLINING_SESSIONS_HIGH:
        return "INTENSITY_REDUCTION"
    if metrics.recent_session_count > ACTIVE_RECOVERY_SESSION_COUNT:
        return "ACTIVE_RECOVERY"
    return "VOLUME_REDUCTION"


def build_reason(reasons: list[str]) -> str:
    if not reasons:
        return GENERIC_DELOAD_REASON
    return ". ".join(reasons) + "."


def adjustment_for(deload_type: str) -> LoadAdjustment:
    """Weight/volume multipliers for a deload type."""
    weight, volume = DELOAD_ADJUSTMENTS[deload_type]
    return LoadAdjustment(weight_multiplier=weight, volume_multiplier=volume)


# =============================================================================
# DETECTOR
# =============================================================================


class DeloadDetector:
    """
    Recommends, schedules and tracks deload weeks for a user.

    ``clock`` returns the current time; inject a fixed clock in tests.
    """

    def __init__(
        self,
        repository: TrainingRepository,
        clock: Callable[[], datetime] | None = None,
        signals: tuple[DeloadSignal, ...] = DEFAULT_SIGNALS,
    ):
        self.repository = repository
        self.clock = clock or datetime.now
        self.signals = signals

    def _require_user(self, user_id: str) -> None:
        if not self.repository.user_exists(user_id):
            raise NotFoundError("User", user_id)

    def _require_deload(self, deload_id: str) -> DeloadWeek:
        deload = self.repository.get_deload(deload_id)
        if deload is None:
            raise NotFoundError("DeloadWeek", deload_id)
        return deload

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def calculate_metrics(self, user_id: str) -> DeloadMetrics:
        """
        Gather the signal inputs for a user.

        Raises:
            NotFoundError: Unknown user
        """
        self._require_user(user_id)
        now = self.clock()
        since = now - timedelta(days=DELOAD_LOOKBACK_DAYS)

        sessions = [
            s for s in self.repository.fetch_sessions(user_id, since=since) if s.is_completed
        ]

        plateau_cutoff = now - timedelta(days=PLATEAU_WINDOW_DAYS)
        recent_cutoff = now - timedelta(days=RECENT_WINDOW_DAYS)

        completed_deloads = [d for d in self.repository.list_deloads(user_id) if d.completed]
        days_since: int | None = None
        if completed_deloads:
            last_end = max(d.end_date for d in completed_deloads)
            days_since = (now.date() - last_end).days

        return DeloadMetrics(
            consecutive_weeks=consecutive_training_weeks(
                (s.started_at for s in sessions), now.date()
            ),
            days_since_last_deload=days_since,
            rpe_trend=rpe_trend(st for s in sessions for st in s.all_sets),
            declining_sessions=count_declining_sessions(sessions),
            plateaued_exercises=count_plateaued_exercises(
                [s for s in sessions if s.started_at >= plateau_cutoff]
            ),
            recent_session_count=sum(1 for s in sessions if s.started_at >= recent_cutoff),
        )

    def evaluate(self, user_id: str) -> DeloadRecommendation:
        """
        Decide whether the user needs a deload and which kind.

        Returns:
            DeloadRecommendation; ``needed`` is True at confidence >= 50

        Raises:
            NotFoundError: Unknown user
        """
        metrics = self.calculate_metrics(user_id)
        confidence, points, reasons = score_signals(metrics, self.signals)

        recommendation = DeloadRecommendation(
            needed=confidence >= DELOAD_CONFIDENCE_THRESHOLD,
            confidence=confidence,
            deload_type=select_deload_type(metrics),
            suggested_start=next_monday(self.clock()),
            reason=build_reason(reasons),
            metrics=metrics,
            signal_points=points,
        )
        logger.debug(
            f"Deload evaluation for user_id={user_id}: confidence={confidence} "
            f"needed={recommendation.needed} type={recommendation.deload_type}"
        )
        return recommendation

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(
        self,
        user_id: str,
        start_date: date,
        deload_type: DeloadType,
        reason: str | None = None,
    ) -> DeloadWeek:
        """
        Schedule a 7-day deload starting on ``start_date``.

        The overlap check and the insert happen in one repository
        transaction, so concurrent calls for the same user cannot both win.

        Raises:
            NotFoundError: Unknown user
            InvalidInputError: Unknown deload type
            ConflictError: Another deload of the user overlaps [start, start + 7 days)
        """
        if deload_type not in DELOAD_TYPES:
            raise InvalidInputError(
                f"Unknown deload type: {deload_type}", {"valid": list(DELOAD_TYPES)}
            )
        if isinstance(start_date, datetime):
            start_date = start_date.date()
        self._require_user(user_id)

        end_date = start_date + timedelta(days=DELOAD_LENGTH_DAYS)

        with self.repository.transaction(user_id):
            for existing in self.repository.list_deloads(user_id):
                if existing.overlaps(start_date, end_date):
                    raise ConflictError(
                        "A deload is already scheduled for this period",
                        {
                            "deload_id": existing.id,
                            "start_date": existing.start_date.isoformat(),
                            "end_date": existing.end_date.isoformat(),
                        },
                    )
            deload = DeloadWeek(
                user_id=user_id,
                start_date=start_date,
                end_date=end_date,
                deload_type=deload_type,
                reason=reason,
            )
            self.repository.persist(deload)

        logger.info(
            f"Scheduled {deload_type} deload {deload.id} for user_id={user_id} "
            f"{start_date.isoformat()}..{end_date.isoformat()}"
        )
        return deload

    def list_scheduled(self, user_id: str) -> list[DeloadWeek]:
        """All deloads of the user, latest start first."""
        self._require_user(user_id)
        return sorted(
            self.repository.list_deloads(user_id), key=lambda d: d.start_date, reverse=True
        )

    def current_deload(self, user_id: str) -> DeloadWeek | None:
        """The pending deload covering today, if any."""
        self._require_user(user_id)
        today = self.clock().date()
        for deload in self.repository.list_deloads(user_id):
            if deload.is_pending and deload.covers(today):
                return deload
        return None

    def current_adjustment(self, user_id: str) -> LoadAdjustment | None:
        """
        Multipliers to apply today, or None outside a deload week.

        Raises:
            NotFoundError: Unknown user
        """
        deload = self.current_deload(user_id)
        if deload is None:
            return None
        return adjustment_for(deload.deload_type)

    def complete(self, deload_id: str, notes: str | None = None) -> DeloadWeek:
        """Mark a deload as done; it then resets the time-since-deload signal."""
        user_id = self._require_deload(deload_id).user_id
        with self.repository.transaction(user_id):
            deload = self._require_deload(deload_id)
            if deload.skipped:
                raise ConflictError("A skipped deload cannot be completed", {"deload_id": deload_id})
            deload.completed = True
            if notes is not None:
                deload.notes = notes
            self.repository.persist(deload)
        logger.info(f"Completed deload {deload_id} for user_id={user_id}")
        return deload

    def skip(self, deload_id: str) -> DeloadWeek:
        user_id = self._require_deload(deload_id).user_id
        with self.repository.transaction(user_id):
            deload = self._require_deload(deload_id)
            if deload.completed:
                raise ConflictError("A completed deload cannot be skipped", {"deload_id": deload_id})
            deload.skipped = True
            self.repository.persist(deload)
        logger.info(f"Skipped deload {deload_id} for user_id={user_id}")
        return deload

    def delete(self, deload_id: str) -> None:
        deload = self._require_deload(deload_id)
        with self.repository.transaction(deload.user_id):
            self.repository.delete_deload(deload_id)
        logger.info(f"Deleted deload {deload_id} for user_id={deload.user_id}")
