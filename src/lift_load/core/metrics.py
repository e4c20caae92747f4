"""
Pure metric computation functions.

Everything here works on already-fetched history; none of it touches the
repository, so each function can be tested in isolation.
"""

import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

from .config import (
    DECLINE_RATIO,
    DECLINE_SESSION_WINDOW,
    MAX_WEEK_SCAN,
    MIN_RATED_SETS_FOR_TREND,
    PLATEAU_SESSIONS,
)
from .models import SetRecord, WorkoutSession


def session_total_reps(session: WorkoutSession) -> int:
    """
    Total reps performed across every set of a session.

    Args:
        session: Workout session

    Returns:
        Sum of reps over all exercise logs
    """
    return sum(s.reps for s in session.all_sets)


def top_weight(sets: Sequence[SetRecord]) -> float:
    """Heaviest weight among the given sets, or 0.0 if there are none."""
    return max((s.weight for s in sets), default=0.0)


def average_reps(sets: Sequence[SetRecord]) -> float:
    if not sets:
        return 0.0
    return sum(s.reps for s in sets) / len(sets)


def hit_target(working_sets: Sequence[SetRecord], target_reps: int) -> bool:
    """
    True if every working set reached the rep target.

    An empty set list never hits target.
    """
    if not working_sets:
        return False
    return all(s.reps >= target_reps for s in working_sets)


def missed_by_large_margin(
    working_sets: Sequence[SetRecord],
    target_reps: int,
    miss_fraction: float,
) -> bool:
    """
    True if any working set fell at least ``miss_fraction`` below target.

    With target 10 and fraction 0.2, a set of 8 reps or fewer is a large miss.
    """
    floor = target_reps * (1.0 - miss_fraction)
    return any(s.reps <= floor for s in working_sets)


def weights_equal(a: float, b: float, tolerance: float) -> bool:
    return abs(a - b) <= tolerance


def exceeds(a: float, b: float, tolerance: float) -> bool:
    """a > b by more than the tolerance."""
    return a - b > tolerance


def round_down_to_step(weight: float, step: float) -> float:
    """
    Round a weight down to the nearest multiple of ``step``.

    A small epsilon keeps 97.49999999 (from unit conversion) at 97.5.
    """
    if step <= 0:
        return weight
    return math.floor(weight / step + 1e-9) * step


def estimate_1rm(weight: float, reps: int) -> float:
    """
    Estimate a one-rep max with the Epley formula.

    1RM = weight × (1 + reps / 30), rounded to one decimal.

    Args:
        weight: Weight lifted
        reps: Reps completed

    Returns:
        Estimated 1RM (weight itself for a single, 0 for no reps)
    """
    if reps <= 0:
        return 0.0
    if reps == 1:
        return weight
    return round(weight * (1 + reps / 30), 1)


# =============================================================================
# DELOAD METRICS
# =============================================================================


def rpe_trend(sets: Iterable[SetRecord]) -> float:
    """
    Effort trend across rated sets.

    Sets are ordered by completion time; the trend is the mean RPE of the
    last third minus the mean RPE of the first third (third = n // 3).
    Fewer than MIN_RATED_SETS_FOR_TREND rated sets gives 0.

    Args:
        sets: Any sets; unrated ones are ignored

    Returns:
        RPE delta (positive = effort increasing)
    """
    rated = sorted((s for s in sets if s.rpe is not None), key=lambda s: s.completed_at)
    if len(rated) < MIN_RATED_SETS_FOR_TREND:
        return 0.0

    third = len(rated) // 3
    first = rated[:third]
    last = rated[-third:]

    avg_first = sum(s.rpe for s in first) / len(first)  # type: ignore[misc]
    avg_last = sum(s.rpe for s in last) / len(last)  # type: ignore[misc]
    return avg_last - avg_first


def week_start(day: date) -> date:
    """Monday of the calendar week containing ``day``."""
    return day - timedelta(days=day.weekday())


def next_monday(now: datetime | date) -> date:
    """
    The next Monday strictly after ``now``.

    On a Monday this is 7 days ahead, never today.
    """
    day = now.date() if isinstance(now, datetime) else now
    days_ahead = (7 - day.weekday()) % 7 or 7
    return day + timedelta(days=days_ahead)


def consecutive_training_weeks(
    session_starts: Iterable[datetime],
    today: date,
    max_weeks: int = MAX_WEEK_SCAN,
) -> int:
    """
    Count calendar weeks with at least one session, going backwards.

    Starts at the week containing ``today`` and stops at the first week
    without a session.

    Args:
        session_starts: Start times of completed sessions
        today: Reference day
        max_weeks: Scan limit

    Returns:
        Number of consecutive trained weeks
    """
    trained_weeks = {week_start(ts.date()) for ts in session_starts}
    if not trained_weeks:
        return 0

    current = week_start(today)
    count = 0
    for offset in range(max_weeks):
        if current - timedelta(weeks=offset) not in trained_weeks:
            break
        count += 1
    return count


def count_declining_sessions(
    sessions: Sequence[WorkoutSession],
    window: int = DECLINE_SESSION_WINDOW,
    ratio: float = DECLINE_RATIO,
) -> int:
    """
    Count sessions whose total reps fell below ``ratio`` of the previous session.

    Only the last ``window`` sessions are compared, in chronological order.
    Fewer than two sessions means nothing to compare.

    Args:
        sessions: Completed sessions, any order
        window: How many of the most recent sessions to inspect
        ratio: Decline threshold relative to the predecessor

    Returns:
        Number of declining sessions
    """
    recent = sorted(sessions, key=lambda s: s.started_at)[-window:]
    if len(recent) < 2:
        return 0

    totals = [session_total_reps(s) for s in recent]
    return sum(
        1 for previous, current in zip(totals, totals[1:]) if current < previous * ratio
    )


def sessions_since_progress(top_weights: Sequence[float], tolerance: float = 1e-6) -> int:
    """
    Sessions since the running best was last exceeded.

    The session that set the current best counts as the first one, so
    three sessions at the same weight give 3.

    Args:
        top_weights: Per-session top working weight, chronological

    Returns:
        Length of the trailing run without a new best
    """
    best: float | None = None
    run = 0
    for weight in top_weights:
        if best is None or exceeds(weight, best, tolerance):
            best = weight
            run = 1
        else:
            run += 1
    return run


def count_plateaued_exercises(
    sessions: Sequence[WorkoutSession],
    min_sessions: int = PLATEAU_SESSIONS,
    tolerance: float = 1e-6,
) -> int:
    """
    Count exercises whose top working weight has stalled.

    Args:
        sessions: Completed sessions inside the plateau window, any order
        min_sessions: Sessions without a new best that make a plateau

    Returns:
        Number of plateaued exercises
    """
    by_exercise: dict[str, list[float]] = defaultdict(list)
    for session in sorted(sessions, key=lambda s: s.started_at):
        for log in session.exercise_logs:
            working = log.working_sets
            if working:
                by_exercise[log.exercise_id].append(top_weight(working))

    return sum(
        1
        for weights in by_exercise.values()
        if sessions_since_progress(weights, tolerance) >= min_sessions
    )
