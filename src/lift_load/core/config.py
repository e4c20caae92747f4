"""
Configuration constants for the training-load engine.

The deload scoring table is fixed so recommendations stay comparable
across users; the progression policy (per-classification rules, thresholds) is
configurable through engine.yaml instead (see engine/config_loader.py).
"""

from typing import Final

# =============================================================================
# DELOAD DETECTION WINDOWS
# =============================================================================

DELOAD_LOOKBACK_DAYS: Final[int] = 56  # 8 weeks of history feed every signal
PLATEAU_WINDOW_DAYS: Final[int] = 21  # Per-exercise plateau scan
RECENT_WINDOW_DAYS: Final[int] = 7  # "Sessions this week" for type selection
MAX_WEEK_SCAN: Final[int] = 12  # Upper bound for the consecutive-weeks scan

# =============================================================================
# DELOAD SIGNALS: thresholds and points
# =============================================================================

# Consecutive trained weeks (max 30)
CONSECUTIVE_WEEKS_HIGH: Final[int] = 6
CONSECUTIVE_WEEKS_HIGH_POINTS: Final[int] = 30
CONSECUTIVE_WEEKS_LOW: Final[int] = 4
CONSECUTIVE_WEEKS_LOW_POINTS: Final[int] = 20

# Days since last completed deload (max 25)
DAYS_SINCE_DELOAD_HIGH: Final[int] = 56
DAYS_SINCE_DELOAD_HIGH_POINTS: Final[int] = 25
DAYS_SINCE_DELOAD_LOW: Final[int] = 35
DAYS_SINCE_DELOAD_LOW_POINTS: Final[int] = 15
NEVER_DELOADED_POINTS: Final[int] = 20  # Only when consecutive weeks >= CONSECUTIVE_WEEKS_LOW

# RPE trend (max 20)
MIN_RATED_SETS_FOR_TREND: Final[int] = 5
RPE_TREND_HIGH: Final[float] = 0.5
RPE_TREND_HIGH_POINTS: Final[int] = 20
RPE_TREND_LOW: Final[float] = 0.25
RPE_TREND_LOW_POINTS: Final[int] = 10

# Declining-performance sessions (max 15)
DECLINE_SESSION_WINDOW: Final[int] = 6  # Last N completed sessions compared pairwise
DECLINE_RATIO: Final[float] = 0.90  # Below 90% of the predecessor's total reps
DECLINING_SESSIONS_HIGH: Final[int] = 3
DECLINING_SESSIONS_HIGH_POINTS: Final[int] = 15
DECLINING_SESSIONS_LOW: Final[int] = 2
DECLINING_SESSIONS_LOW_POINTS: Final[int] = 10

# Plateaued exercises (max 10)
PLATEAU_SESSIONS: Final[int] = 3  # Sessions without exceeding the running best
PLATEAU_EXERCISES_HIGH: Final[int] = 3
PLATEAU_EXERCISES_HIGH_POINTS: Final[int] = 10
PLATEAU_EXERCISES_LOW: Final[int] = 1
PLATEAU_EXERCISES_LOW_POINTS: Final[int] = 5

DELOAD_CONFIDENCE_THRESHOLD: Final[int] = 50  # Inclusive
MAX_CONFIDENCE: Final[int] = 100

# =============================================================================
# DELOAD TYPE SELECTION AND ADJUSTMENTS
# =============================================================================

ACTIVE_RECOVERY_SESSION_COUNT: Final[int] = 5  # More than this in 7 days
DELOAD_LENGTH_DAYS: Final[int] = 7

# deload_type -> (weight_multiplier, volume_multiplier)
DELOAD_ADJUSTMENTS: Final[dict[str, tuple[float, float]]] = {
    "VOLUME_REDUCTION": (1.0, 0.5),  # Same weight, half the sets
    "INTENSITY_REDUCTION": (0.8, 1.0),  # 80% weight, same sets
    "ACTIVE_RECOVERY": (0.6, 0.5),  # Light work
}

GENERIC_DELOAD_REASON: Final[str] = "Periodic deload recommended for optimal recovery."

# =============================================================================
# PLATEAU REPORT (per exercise, progression engine)
# =============================================================================

PLATEAU_REPORT_SESSIONS: Final[int] = 10
PLATEAU_REPORT_MIN_SESSIONS: Final[int] = 3

PLATEAU_SUGGESTIONS: Final[tuple[str, ...]] = (
    "Consider a 10% deload for 1 week",
    "Try a different rep range (e.g., 5x5 instead of 3x8)",
    "Check your recovery: sleep, nutrition, stress",
    "Try a variation of this exercise",
)

# =============================================================================
# MESOCYCLE PLANNING
# =============================================================================

MIN_MESOCYCLE_WEEKS: Final[int] = 2
MAX_MESOCYCLE_WEEKS: Final[int] = 16
RECOVERY_WEEK_MIN_DURATION: Final[int] = 4  # Final week is deload/taper from here on

MULTIPLIER_MIN: Final[float] = 0.4
MULTIPLIER_MAX: Final[float] = 1.3

# Final-week recovery multipliers: (volume, intensity)
TAPER_MULTIPLIERS: Final[tuple[float, float]] = (0.5, 0.8)

# Goals that end a block with a taper rather than a plain deload
TAPER_GOALS: Final[frozenset[str]] = frozenset({"STRENGTH", "POWER", "PEAKING"})


def goal_linear_profile(goal: str) -> tuple[float, float, float, float]:
    """
    Linear periodization endpoints for a goal.

    Returns:
        (intensity_start, intensity_peak, volume_start, volume_end)
    """
    if goal in ("STRENGTH", "POWER", "PEAKING"):
        return (0.90, 1.15, 1.10, 0.75)
    if goal == "HYPERTROPHY":
        return (0.90, 1.05, 1.15, 0.90)
    return (0.90, 1.10, 1.10, 0.85)


# Undulating cycle: (week_type, volume, intensity, rir_target)
UNDULATING_PATTERN: Final[tuple[tuple[str, float, float, int], ...]] = (
    ("ACCUMULATION", 1.10, 0.90, 3),  # High volume, lower intensity
    ("INTENSIFICATION", 0.90, 1.05, 2),  # Lower volume, higher intensity
    ("ACCUMULATION", 1.00, 1.00, 2),  # Moderate both
)

# Block phase shares of the working weeks
BLOCK_ACCUMULATION_SHARE: Final[float] = 0.4
BLOCK_INTENSIFICATION_SHARE: Final[float] = 0.3
