"""
Unit tests for the pure metric helpers used by progression and deload
detection.  Values are hand-computed in the comments.
"""

from datetime import date, datetime, timedelta

import pytest

from lift_load.core.metrics import (
    consecutive_training_weeks,
    count_declining_sessions,
    count_plateaued_exercises,
    hit_target,
    missed_by_large_margin,
    next_monday,
    round_down_to_step,
    rpe_trend,
    sessions_since_progress,
    week_start,
)
from lift_load.core.models import ExerciseLog, SetRecord, WorkoutSession

T0 = datetime(2024, 6, 1, 9, 0)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _set(reps: int, weight: float = 100.0, rpe: float | None = None, minute: int = 0, n: int = 1) -> SetRecord:
    return SetRecord(
        weight=weight,
        reps=reps,
        completed_at=T0 + timedelta(minutes=minute),
        set_number=n,
        rpe=rpe,
    )


def _rated(rpes: list[float]) -> list[SetRecord]:
    return [_set(8, rpe=r, minute=i) for i, r in enumerate(rpes)]


def _session(day: int, reps_list: list[int], weight: float = 100.0, exercise_id: str = "bench") -> WorkoutSession:
    started = T0 + timedelta(days=day)
    sets = [
        SetRecord(weight=weight, reps=r, completed_at=started, set_number=i + 1)
        for i, r in enumerate(reps_list)
    ]
    return WorkoutSession(
        user_id="u",
        started_at=started,
        completed_at=started + timedelta(hours=1),
        exercise_logs=[ExerciseLog(exercise_id=exercise_id, sets=sets)],
    )


# ===========================================================================
# Set-level checks
# ===========================================================================

class TestSetChecks:

    def test_hit_target_requires_every_set(self):
        assert hit_target([_set(8), _set(9)], 8) is True
        assert hit_target([_set(8), _set(7)], 8) is False

    def test_hit_target_empty(self):
        assert hit_target([], 8) is False

    def test_large_miss_boundary(self):
        # target 10, fraction 0.2 → 8 reps or fewer
        assert missed_by_large_margin([_set(8)], 10, 0.2) is True
        assert missed_by_large_margin([_set(9)], 10, 0.2) is False

    @pytest.mark.parametrize(
        "weight,step,expected",
        [(90.0, 0.5, 90.0), (47.25, 0.5, 47.0), (101.9, 2.5, 100.0), (97.49999999999, 0.5, 97.5)],
    )
    def test_round_down_to_step(self, weight, step, expected):
        assert round_down_to_step(weight, step) == pytest.approx(expected)


# ===========================================================================
# RPE trend
# ===========================================================================

class TestRpeTrend:

    def test_identical_values_give_zero(self):
        assert rpe_trend(_rated([8.0] * 6)) == 0.0

    def test_fewer_than_five_rated_sets(self):
        assert rpe_trend(_rated([6.0, 7.0, 8.0, 9.0])) == 0.0

    def test_rising_effort(self):
        # third = 2; first [6, 6] → 6, last [8, 8] → 8
        assert rpe_trend(_rated([6, 6, 7, 7, 8, 8])) == pytest.approx(2.0)

    def test_unrated_sets_ignored(self):
        sets = _rated([7, 7, 7, 7, 7]) + [_set(8, minute=30)]
        assert rpe_trend(sets) == 0.0

    def test_ordered_by_completion_time(self):
        # Given newest first; sorting restores 6 → 8
        sets = list(reversed(_rated([6, 6, 7, 7, 8, 8])))
        assert rpe_trend(sets) == pytest.approx(2.0)


# ===========================================================================
# Weeks
# ===========================================================================

class TestWeeks:

    def test_week_start_is_monday(self):
        assert week_start(date(2024, 6, 12)) == date(2024, 6, 10)
        assert week_start(date(2024, 6, 10)) == date(2024, 6, 10)
        assert week_start(date(2024, 6, 16)) == date(2024, 6, 10)

    def test_next_monday_from_midweek(self):
        assert next_monday(datetime(2024, 6, 12, 10)) == date(2024, 6, 17)

    def test_next_monday_on_monday_is_a_week_ahead(self):
        assert next_monday(date(2024, 6, 10)) == date(2024, 6, 17)

    def test_consecutive_weeks(self):
        today = date(2024, 6, 12)
        starts = [datetime(2024, 6, 10), datetime(2024, 6, 4), datetime(2024, 5, 29)]
        assert consecutive_training_weeks(starts, today) == 3

    def test_gap_stops_the_streak(self):
        today = date(2024, 6, 12)
        starts = [datetime(2024, 6, 11), datetime(2024, 5, 28), datetime(2024, 5, 21)]
        assert consecutive_training_weeks(starts, today) == 1

    def test_untrained_current_week(self):
        today = date(2024, 6, 12)
        assert consecutive_training_weeks([datetime(2024, 6, 5)], today) == 0

    def test_scan_limit(self):
        today = date(2024, 6, 12)
        starts = [datetime(2024, 6, 10) - timedelta(weeks=w) for w in range(20)]
        assert consecutive_training_weeks(starts, today, max_weeks=12) == 12


# ===========================================================================
# Declining sessions and plateaus
# ===========================================================================

class TestDecliningSessions:

    def test_fewer_than_two_sessions(self):
        assert count_declining_sessions([]) == 0
        assert count_declining_sessions([_session(0, [8, 8])]) == 0

    def test_counts_drops_below_ninety_percent(self):
        # totals 30 → 26 (<27, drop) → 26 → 24 (≥23.4, no) → 20 (<21.6, drop)
        totals = [[10, 10, 10], [9, 9, 8], [9, 9, 8], [8, 8, 8], [7, 7, 6]]
        sessions = [_session(i, reps) for i, reps in enumerate(totals)]
        assert count_declining_sessions(sessions) == 2

    def test_improving_sessions(self):
        sessions = [_session(i, [8 + i, 8 + i]) for i in range(4)]
        assert count_declining_sessions(sessions) == 0

    def test_only_last_six_compared(self):
        # Drop between sessions 0 and 1 falls outside the window
        totals = [[20], [10]] + [[10]] * 6
        sessions = [_session(i, reps) for i, reps in enumerate(totals)]
        assert count_declining_sessions(sessions) == 0


class TestPlateaus:

    def test_sessions_since_progress(self):
        assert sessions_since_progress([100, 100, 100]) == 3
        assert sessions_since_progress([100, 102.5, 102.5]) == 2
        assert sessions_since_progress([100, 105, 102.5]) == 2
        assert sessions_since_progress([]) == 0

    def test_count_plateaued_exercises(self):
        sessions = [
            _session(0, [5], weight=100.0),
            _session(2, [5], weight=100.0),
            _session(4, [5], weight=100.0),
            _session(1, [8], weight=20.0, exercise_id="curl"),
            _session(3, [8], weight=22.5, exercise_id="curl"),
            _session(5, [8], weight=25.0, exercise_id="curl"),
        ]
        assert count_plateaued_exercises(sessions) == 1
