"""
Double-progression weight suggestions.

Reps climb to a target at a fixed weight; once the target is hit at that
weight for the number of consecutive sessions the exercise classification
requires, the weight goes up by the classification's step and reps reset
to the target.  Large misses hold or lower the weight.

Example (compound lift, target 8, increment 2.5):
    3x6 @ 100 → 3x7 @ 100 → 3x8 @ 100 → 3x8 @ 100 → next: 3x8 @ 102.5
"""

from dataclasses import dataclass, replace

from loguru import logger

from .config import PLATEAU_REPORT_MIN_SESSIONS, PLATEAU_REPORT_SESSIONS, PLATEAU_SUGGESTIONS
from .engine.config_loader import ProgressionConfig, load_progression_config
from .errors import InvalidInputError, NotFoundError
from .metrics import (
    average_reps,
    estimate_1rm,
    exceeds,
    hit_target,
    missed_by_large_margin,
    round_down_to_step,
    top_weight,
    weights_equal,
)
from .models import (
    ExerciseDefinition,
    InsufficientData,
    PlateauReport,
    SetRecord,
    Suggestion,
    WorkoutSession,
)
from ..io.repository import TrainingRepository


@dataclass(frozen=True)
class _SessionSummary:
    """Working-set view of one exercise within one completed session."""

    session: WorkoutSession
    working_sets: tuple[SetRecord, ...]

    @property
    def weight(self) -> float:
        return top_weight(self.working_sets)

    @property
    def avg_reps(self) -> float:
        return average_reps(self.working_sets)


class ProgressionEngine:
    """
    Computes next-session suggestions from a user's exercise history.

    The engine is read-only: suggest() never writes to the repository, so
    identical history always yields an identical suggestion.
    """

    def __init__(
        self,
        repository: TrainingRepository,
        config: ProgressionConfig | None = None,
    ):
        self.repository = repository
        self.config = config if config is not None else load_progression_config()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def suggest(
        self,
        user_id: str,
        exercise_id: str,
        target_reps: int | None = None,
    ) -> Suggestion | InsufficientData:
        """
        Suggest the weight and rep target for the next session of an exercise.

        Args:
            user_id: Acting user
            exercise_id: Exercise to suggest for
            target_reps: Rep target; defaults to the exercise's, then the config's

        Returns:
            Suggestion, or InsufficientData when no completed session has
            working sets for the exercise

        Raises:
            NotFoundError: Unknown user or exercise
            InvalidInputError: Non-positive target_reps
        """
        exercise = self._require(user_id, exercise_id)
        target = self._resolve_target(exercise, target_reps)

        history = self._recent_history(user_id, exercise_id, self.config.history_sessions)
        if not history:
            logger.debug(f"No working-set history for user_id={user_id} exercise={exercise_id}")
            return InsufficientData(
                exercise_id=exercise_id,
                sessions_found=0,
                reasoning=(
                    "No completed sessions with working sets for this exercise yet. "
                    f"Start with a weight you can lift for {target} reps with good form."
                ),
            )

        suggestion = self._calculate(exercise, history, target)

        best = self._best_working_weight(user_id, exercise_id)
        would_be_pr = best is None or exceeds(
            suggestion.suggested_weight, best, self.config.weight_tolerance
        )
        if would_be_pr != suggestion.would_be_pr:
            suggestion = replace(suggestion, would_be_pr=would_be_pr)

        logger.debug(
            f"Suggestion for user_id={user_id} exercise={exercise_id}: "
            f"{suggestion.rationale} {suggestion.suggested_weight} x {suggestion.suggested_reps}"
        )
        return suggestion

    def suggest_many(
        self,
        user_id: str,
        exercise_ids: list[str],
        target_reps: int | None = None,
    ) -> dict[str, Suggestion | InsufficientData]:
        """Suggestions for several exercises, e.g. to pre-fill a workout template."""
        return {ex_id: self.suggest(user_id, ex_id, target_reps) for ex_id in exercise_ids}

    def detect_plateau(self, user_id: str, exercise_id: str) -> PlateauReport:
        """
        Check whether an exercise has stopped progressing.

        Progress means a heavier top set, or more average reps at the same
        weight, compared with the previous session.  Three or more recent
        sessions without progress is a plateau.

        Raises:
            NotFoundError: Unknown user or exercise
        """
        self._require(user_id, exercise_id)
        history = self._recent_history(user_id, exercise_id, PLATEAU_REPORT_SESSIONS)

        if len(history) < PLATEAU_REPORT_MIN_SESSIONS:
            return PlateauReport(
                is_plateaued=False,
                sessions_without_progress=0,
                last_progress_at=None,
            )

        tol = self.config.weight_tolerance
        last_progress_idx = -1
        for i in range(1, len(history)):
            current, previous = history[i - 1], history[i]
            if exceeds(current.weight, previous.weight, tol) or (
                weights_equal(current.weight, previous.weight, tol)
                and current.avg_reps > previous.avg_reps
            ):
                last_progress_idx = i - 1
                break

        without_progress = len(history) if last_progress_idx == -1 else last_progress_idx
        is_plateaued = without_progress >= PLATEAU_REPORT_MIN_SESSIONS

        return PlateauReport(
            is_plateaued=is_plateaued,
            sessions_without_progress=without_progress,
            last_progress_at=(
                history[last_progress_idx].session.started_at if last_progress_idx >= 0 else None
            ),
            suggestions=PLATEAU_SUGGESTIONS if is_plateaued else (),
        )

    @staticmethod
    def estimate_1rm(weight: float, reps: int) -> float:
        """Epley one-rep-max estimate; see metrics.estimate_1rm."""
        return estimate_1rm(weight, reps)

    def estimated_1rm(self, user_id: str, exercise_id: str) -> float | None:
        """Best Epley estimate over every completed working set, or None without history."""
        self._require(user_id, exercise_id)
        sets = self._all_working_sets(user_id, exercise_id)
        if not sets:
            return None
        return max(estimate_1rm(s.weight, s.reps) for s in sets)

    def personal_record(self, user_id: str, exercise_id: str) -> float | None:
        """Heaviest completed working set, or None without history."""
        self._require(user_id, exercise_id)
        return self._best_working_weight(user_id, exercise_id)

    # ------------------------------------------------------------------
    # History access
    # ------------------------------------------------------------------

    def _require(self, user_id: str, exercise_id: str) -> ExerciseDefinition:
        if not self.repository.user_exists(user_id):
            raise NotFoundError("User", user_id)
        exercise = self.repository.get_exercise(exercise_id)
        if exercise is None:
            raise NotFoundError("Exercise", exercise_id)
        return exercise

    def _resolve_target(self, exercise: ExerciseDefinition, target_reps: int | None) -> int:
        if target_reps is None:
            rule = self.config.rule_for(exercise.classification)
            return exercise.target_reps or rule.target_reps
        if target_reps <= 0:
            raise InvalidInputError("target_reps must be positive", {"target_reps": target_reps})
        return target_reps

    def _recent_history(
        self, user_id: str, exercise_id: str, limit: int
    ) -> list[_SessionSummary]:
        """Newest-first summaries of completed sessions with working sets for the exercise."""
        summaries: list[_SessionSummary] = []
        for session in self.repository.fetch_sessions(user_id, exercise_id=exercise_id):
            if not session.is_completed:
                continue
            log = session.log_for(exercise_id)
            if log is None or not log.working_sets:
                continue
            summaries.append(_SessionSummary(session, tuple(log.working_sets)))
            if len(summaries) >= limit:
                break
        return summaries

    def _all_working_sets(self, user_id: str, exercise_id: str) -> list[SetRecord]:
        sets: list[SetRecord] = []
        for session in self.repository.fetch_sessions(user_id, exercise_id=exercise_id):
            if not session.is_completed:
                continue
            log = session.log_for(exercise_id)
            if log is not None:
                sets.extend(log.working_sets)
        return sets

    def _best_working_weight(self, user_id: str, exercise_id: str) -> float | None:
        sets = self._all_working_sets(user_id, exercise_id)
        return top_weight(sets) if sets else None

    # ------------------------------------------------------------------
    # Decision logic
    # ------------------------------------------------------------------

    def _calculate(
        self,
        exercise: ExerciseDefinition,
        history: list[_SessionSummary],
        target: int,
    ) -> Suggestion:
        cfg = self.config
        rule = cfg.rule_for(exercise.classification)
        tol = cfg.weight_tolerance
        latest = history[0]
        current_weight = latest.weight

        at_current = [h for h in history if weights_equal(h.weight, current_weight, tol)]
        sessions_at_current = len(at_current)

        def build(rationale, weight, reps, reasoning, confidence):
            return Suggestion(
                exercise_id=exercise.exercise_id,
                suggested_weight=weight,
                suggested_reps=reps,
                rationale=rationale,
                previous_weight=current_weight,
                reasoning=reasoning,
                confidence=confidence,
                sessions_at_current_weight=sessions_at_current,
            )

        # 1. Enough sessions in a row at target, all at the current weight: add weight
        streak = 0
        for h in history:
            if not weights_equal(h.weight, current_weight, tol):
                break
            if not hit_target(h.working_sets, target):
                break
            streak += 1

        if streak >= rule.sessions_required:
            increment = rule.increment
            in_a_row = (
                "in your last session"
                if streak == 1
                else f"for {streak} sessions in a row at {current_weight:g}"
            )
            if increment > 0:
                return build(
                    "INCREASE",
                    current_weight + increment,
                    target,
                    f"You hit {target} reps on every working set {in_a_row}. "
                    f"Add {increment:g} to the bar.",
                    0.9,
                )
            # No load step for this classification: progress through reps
            return build(
                "INCREASE",
                current_weight,
                target + 1,
                f"You hit {target} reps {in_a_row}. Aim for {target + 1} reps.",
                0.85,
            )

        # 2. Large miss last time: hold, or back off after repeated misses
        if missed_by_large_margin(latest.working_sets, target, cfg.large_miss_fraction):
            misses = 0
            for h in history:
                if not weights_equal(h.weight, current_weight, tol):
                    break
                if not missed_by_large_margin(h.working_sets, target, cfg.large_miss_fraction):
                    break
                misses += 1

            if misses >= cfg.decrease_after_misses and rule.decrease_fraction > 0:
                lowered = round_down_to_step(
                    current_weight * (1 - rule.decrease_fraction), cfg.rounding_step
                )
                return build(
                    "DECREASE",
                    lowered,
                    target,
                    f"You've fallen well short of {target} reps for {misses} sessions. "
                    f"Drop to {lowered:g} and rebuild.",
                    0.85,
                )

            return build(
                "MAINTAIN",
                current_weight,
                target,
                f"Focus on hitting {target} reps before increasing. "
                f"You averaged {latest.avg_reps:.1f} reps last session.",
                0.8,
            )

        # 3. Partial success: repeat
        if hit_target(latest.working_sets, target):
            remaining = rule.sessions_required - streak
            more = "One more session" if remaining == 1 else f"{remaining} more sessions"
            reasoning = f"Great work hitting {target} reps! {more} like that before we increase."
            confidence = 0.85
        else:
            reasoning = f"Keep pushing to hit {target} reps on all sets. You're close!"
            confidence = 0.8
        return build("MAINTAIN", current_weight, target, reasoning, confidence)
