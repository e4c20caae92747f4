"""
Tests for deload detection, scheduling and adjustments.

The fixed clock is Wednesday 2024-06-12 10:00; the current training week
starts Monday 2024-06-10 and the next Monday is 2024-06-17.
"""

import threading
from datetime import date, datetime, timedelta

import pytest
from loguru import logger

from conftest import NOW, USER
from lift_load.core.config import GENERIC_DELOAD_REASON
from lift_load.core.deload import (
    DEFAULT_SIGNALS,
    DeloadDetector,
    adjustment_for,
    score_signals,
    select_deload_type,
)
from lift_load.core.errors import ConflictError, InvalidInputError, NotFoundError
from lift_load.core.models import (
    DeloadMetrics,
    ExerciseLog,
    LoadAdjustment,
    SetRecord,
    WorkoutSession,
)

THIS_MONDAY = date(2024, 6, 10)


# ===========================================================================
# Helpers
# ===========================================================================

def _session(
    started: datetime,
    weight: float = 100.0,
    reps_list: tuple[int, ...] = (8, 8, 8),
    rpe: float | None = None,
    exercise_id: str = "bench",
) -> WorkoutSession:
    sets = [
        SetRecord(
            weight=weight,
            reps=r,
            completed_at=started + timedelta(minutes=5 * i),
            set_number=i + 1,
            rpe=rpe,
        )
        for i, r in enumerate(reps_list)
    ]
    return WorkoutSession(
        user_id=USER,
        started_at=started,
        completed_at=started + timedelta(hours=1),
        exercise_logs=[ExerciseLog(exercise_id=exercise_id, sets=sets)],
    )


def _weekly_sessions(store, weeks: int) -> None:
    """One Monday session per week for the last ``weeks`` weeks, weight rising."""
    for w in range(weeks):
        monday = datetime.combine(THIS_MONDAY - timedelta(weeks=w), datetime.min.time())
        store.append_session(_session(monday.replace(hour=9), weight=100.0 - 2.5 * w))


@pytest.fixture
def detector(store, clock) -> DeloadDetector:
    return DeloadDetector(store, clock)


# ===========================================================================
# Signals
# ===========================================================================

class TestSignals:

    def test_no_signals_no_points(self):
        confidence, points, reasons = score_signals(DeloadMetrics())
        assert confidence == 0
        assert set(points) == {s.name for s in DEFAULT_SIGNALS}
        assert reasons == []

    def test_all_signals_maxed(self):
        metrics = DeloadMetrics(
            consecutive_weeks=8,
            days_since_last_deload=70,
            rpe_trend=1.0,
            declining_sessions=4,
            plateaued_exercises=3,
        )
        confidence, points, reasons = score_signals(metrics)
        assert confidence == 100
        assert points == {
            "consecutive_weeks": 30,
            "time_since_deload": 25,
            "rpe_trend": 20,
            "declining_sessions": 15,
            "plateaued_exercises": 10,
        }
        assert len(reasons) == 5

    @pytest.mark.parametrize(
        "metrics,name,expected",
        [
            (DeloadMetrics(consecutive_weeks=3), "consecutive_weeks", 0),
            (DeloadMetrics(consecutive_weeks=4), "consecutive_weeks", 20),
            (DeloadMetrics(consecutive_weeks=6), "consecutive_weeks", 30),
            (DeloadMetrics(days_since_last_deload=35), "time_since_deload", 0),
            (DeloadMetrics(days_since_last_deload=36), "time_since_deload", 15),
            (DeloadMetrics(days_since_last_deload=57), "time_since_deload", 25),
            (DeloadMetrics(consecutive_weeks=3), "time_since_deload", 0),
            (DeloadMetrics(consecutive_weeks=4), "time_since_deload", 20),
            (DeloadMetrics(rpe_trend=0.25), "rpe_trend", 0),
            (DeloadMetrics(rpe_trend=0.3), "rpe_trend", 10),
            (DeloadMetrics(rpe_trend=0.6), "rpe_trend", 20),
            (DeloadMetrics(declining_sessions=1), "declining_sessions", 0),
            (DeloadMetrics(declining_sessions=2), "declining_sessions", 10),
            (DeloadMetrics(declining_sessions=3), "declining_sessions", 15),
            (DeloadMetrics(plateaued_exercises=1), "plateaued_exercises", 5),
            (DeloadMetrics(plateaued_exercises=2), "plateaued_exercises", 5),
            (DeloadMetrics(plateaued_exercises=3), "plateaued_exercises", 10),
        ],
    )
    def test_tiers(self, metrics, name, expected):
        _, points, _ = score_signals(metrics)
        assert points[name] == expected

    def test_every_scoring_signal_gives_a_reason(self):
        metrics = DeloadMetrics(declining_sessions=2, plateaued_exercises=1)
        _, _, reasons = score_signals(metrics)
        assert len(reasons) == 2

    @pytest.mark.parametrize(
        "field,values",
        [
            ("consecutive_weeks", range(0, 13)),
            ("days_since_last_deload", range(0, 100, 7)),
            ("rpe_trend", [x / 10 for x in range(-10, 20)]),
            ("declining_sessions", range(0, 6)),
            ("plateaued_exercises", range(0, 6)),
        ],
    )
    def test_confidence_monotonic_in_each_signal(self, field, values):
        base = {"days_since_last_deload": 40, "consecutive_weeks": 2}
        scores = [score_signals(DeloadMetrics(**{**base, field: v}))[0] for v in values]
        assert scores == sorted(scores)


class TestDeloadType:

    def test_rising_effort_reduces_intensity(self):
        assert select_deload_type(DeloadMetrics(rpe_trend=0.6)) == "INTENSITY_REDUCTION"

    def test_declining_performance_reduces_intensity(self):
        assert select_deload_type(DeloadMetrics(declining_sessions=3)) == "INTENSITY_REDUCTION"

    def test_frequent_training_is_active_recovery(self):
        assert select_deload_type(DeloadMetrics(recent_session_count=6)) == "ACTIVE_RECOVERY"

    def test_default_is_volume_reduction(self):
        assert select_deload_type(DeloadMetrics(recent_session_count=5)) == "VOLUME_REDUCTION"

    @pytest.mark.parametrize(
        "deload_type,weight,volume",
        [
            ("VOLUME_REDUCTION", 1.0, 0.5),
            ("INTENSITY_REDUCTION", 0.8, 1.0),
            ("ACTIVE_RECOVERY", 0.6, 0.5),
        ],
    )
    def test_adjustments(self, deload_type, weight, volume):
        assert adjustment_for(deload_type) == LoadAdjustment(weight, volume)


# ===========================================================================
# Evaluation against history
# ===========================================================================

class TestEvaluate:

    def test_no_history(self, detector):
        rec = detector.evaluate(USER)
        assert rec.needed is False
        assert rec.confidence == 0
        assert rec.reason == GENERIC_DELOAD_REASON
        assert rec.suggested_start == date(2024, 6, 17)

    def test_confidence_of_exactly_fifty_is_needed(self, detector, store):
        # 6 trained weeks → 30; never deloaded with >= 4 weeks → 20
        _weekly_sessions(store, 6)
        rec = detector.evaluate(USER)
        assert rec.confidence == 50
        assert rec.needed is True
        assert rec.deload_type == "VOLUME_REDUCTION"
        assert rec.metrics.consecutive_weeks == 6
        assert rec.metrics.days_since_last_deload is None
        assert rec.reason.endswith(".")

    def test_short_streak_not_needed(self, detector, store):
        _weekly_sessions(store, 3)
        rec = detector.evaluate(USER)
        assert rec.needed is False
        assert rec.confidence == 0

    def test_recent_completed_deload_resets_time_signal(self, detector, store):
        _weekly_sessions(store, 6)
        deload = detector.schedule(USER, date(2024, 5, 1), "VOLUME_REDUCTION")
        detector.complete(deload.id)
        metrics = detector.calculate_metrics(USER)
        # 2024-06-12 - 2024-05-08 = 35 days
        assert metrics.days_since_last_deload == 35
        rec = detector.evaluate(USER)
        assert rec.signal_points["time_since_deload"] == 0
        assert rec.needed is False

    def test_rising_rpe_detected(self, detector, store):
        for i, rpe in enumerate([6.0, 6.0, 7.0, 8.0, 9.0, 9.0]):
            store.append_session(
                _session(NOW - timedelta(days=12 - 2 * i), weight=100.0 + 2.5 * i, reps_list=(8,), rpe=rpe)
            )
        metrics = detector.calculate_metrics(USER)
        assert metrics.rpe_trend == pytest.approx(3.0)
        assert detector.evaluate(USER).deload_type == "INTENSITY_REDUCTION"

    def test_sessions_outside_lookback_ignored(self, detector, store):
        store.append_session(_session(NOW - timedelta(days=60)))
        assert detector.calculate_metrics(USER).recent_session_count == 0
        assert detector.calculate_metrics(USER).consecutive_weeks == 0

    def test_unknown_user(self, detector):
        with pytest.raises(NotFoundError):
            detector.evaluate("nobody")


# ===========================================================================
# Scheduling
# ===========================================================================

class TestSchedule:

    def test_schedule_seven_days(self, detector):
        deload = detector.schedule(USER, date(2024, 6, 17), "VOLUME_REDUCTION", reason="tired")
        assert deload.end_date == date(2024, 6, 24)
        assert deload.reason == "tired"
        assert deload.is_pending

    def test_datetime_start_is_truncated(self, detector):
        deload = detector.schedule(USER, datetime(2024, 6, 17, 8, 30), "VOLUME_REDUCTION")
        assert deload.start_date == date(2024, 6, 17)

    def test_overlap_conflicts(self, detector):
        detector.schedule(USER, date(2024, 6, 17), "VOLUME_REDUCTION")
        with pytest.raises(ConflictError) as exc:
            detector.schedule(USER, date(2024, 6, 23), "ACTIVE_RECOVERY")
        assert exc.value.code == "CONFLICT"

    def test_adjacent_windows_allowed(self, detector):
        detector.schedule(USER, date(2024, 6, 17), "VOLUME_REDUCTION")
        detector.schedule(USER, date(2024, 6, 24), "VOLUME_REDUCTION")
        detector.schedule(USER, date(2024, 6, 10), "VOLUME_REDUCTION")
        assert len(detector.list_scheduled(USER)) == 3

    def test_other_users_do_not_conflict(self, detector, store):
        store.add_user("user-2")
        detector.schedule(USER, date(2024, 6, 17), "VOLUME_REDUCTION")
        detector.schedule("user-2", date(2024, 6, 17), "VOLUME_REDUCTION")

    def test_invalid_type(self, detector):
        with pytest.raises(InvalidInputError):
            detector.schedule(USER, date(2024, 6, 17), "FULL_REST")

    def test_unknown_user(self, detector):
        with pytest.raises(NotFoundError):
            detector.schedule("nobody", date(2024, 6, 17), "VOLUME_REDUCTION")

    def test_concurrent_schedule_single_winner(self, detector):
        barrier = threading.Barrier(8)
        results: list[str] = []
        lock = threading.Lock()

        def attempt():
            barrier.wait()
            try:
                detector.schedule(USER, date(2024, 6, 17), "VOLUME_REDUCTION")
                outcome = "ok"
            except ConflictError:
                outcome = "conflict"
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("conflict") == 7
        assert len(detector.list_scheduled(USER)) == 1

    def test_list_scheduled_latest_first(self, detector):
        detector.schedule(USER, date(2024, 5, 1), "VOLUME_REDUCTION")
        detector.schedule(USER, date(2024, 7, 1), "VOLUME_REDUCTION")
        starts = [d.start_date for d in detector.list_scheduled(USER)]
        assert starts == [date(2024, 7, 1), date(2024, 5, 1)]

    def test_schedule_is_logged(self, detector):
        messages: list[str] = []
        handler_id = logger.add(messages.append, format="{message}", level="INFO")
        try:
            deload = detector.schedule(USER, date(2024, 6, 17), "VOLUME_REDUCTION")
        finally:
            logger.remove(handler_id)
        assert any(deload.id in m for m in messages)


# ===========================================================================
# Active adjustment and lifecycle
# ===========================================================================

class TestCurrentAdjustment:

    def test_none_without_deload(self, detector):
        assert detector.current_adjustment(USER) is None

    def test_active_deload(self, detector):
        detector.schedule(USER, THIS_MONDAY, "VOLUME_REDUCTION")
        assert detector.current_adjustment(USER) == LoadAdjustment(1.0, 0.5)

    def test_future_deload_not_active(self, detector):
        detector.schedule(USER, date(2024, 6, 13), "VOLUME_REDUCTION")
        assert detector.current_adjustment(USER) is None

    def test_end_date_is_exclusive(self, detector):
        detector.schedule(USER, date(2024, 6, 5), "INTENSITY_REDUCTION")
        assert detector.current_adjustment(USER) is None

    def test_completed_deload_not_active(self, detector):
        deload = detector.schedule(USER, THIS_MONDAY, "VOLUME_REDUCTION")
        detector.complete(deload.id, notes="felt good")
        assert detector.current_adjustment(USER) is None
        assert detector.list_scheduled(USER)[0].notes == "felt good"

    def test_skipped_deload_not_active(self, detector):
        deload = detector.schedule(USER, THIS_MONDAY, "VOLUME_REDUCTION")
        detector.skip(deload.id)
        assert detector.current_adjustment(USER) is None
        assert detector.current_deload(USER) is None


class TestLifecycle:

    def test_skipped_cannot_complete(self, detector):
        deload = detector.schedule(USER, THIS_MONDAY, "VOLUME_REDUCTION")
        detector.skip(deload.id)
        with pytest.raises(ConflictError):
            detector.complete(deload.id)

    def test_completed_cannot_skip(self, detector):
        deload = detector.schedule(USER, THIS_MONDAY, "VOLUME_REDUCTION")
        detector.complete(deload.id)
        with pytest.raises(ConflictError):
            detector.skip(deload.id)

    def test_skipped_deload_still_blocks_its_window(self, detector):
        deload = detector.schedule(USER, THIS_MONDAY, "VOLUME_REDUCTION")
        detector.skip(deload.id)
        with pytest.raises(ConflictError):
            detector.schedule(USER, THIS_MONDAY, "ACTIVE_RECOVERY")

    def test_delete_frees_the_window(self, detector):
        deload = detector.schedule(USER, THIS_MONDAY, "VOLUME_REDUCTION")
        detector.delete(deload.id)
        assert detector.list_scheduled(USER) == []
        detector.schedule(USER, THIS_MONDAY, "ACTIVE_RECOVERY")

    def test_unknown_deload(self, detector):
        with pytest.raises(NotFoundError):
            detector.complete("missing")
        with pytest.raises(NotFoundError):
            detector.delete("missing")
