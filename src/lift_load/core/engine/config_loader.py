"""
YAML → typed config loader.

Loads the progression policy from engine.yaml (bundled with the package)
and optionally merges a user override, then builds a ProgressionConfig.

Usage:
    from lift_load.core.engine.config_loader import load_progression_config
    cfg = load_progression_config()
    cfg.rule_for("isolation").target_reps   # 12

Override file lookup: $LIFT_LOAD_CONFIG, else ~/.lift-load/engine.yaml.
A bundled file that cannot be parsed is a packaging bug and raises; an
override that cannot be parsed, or that yields an invalid policy, is
logged and ignored.
"""

from __future__ import annotations

import importlib.resources
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from ..errors import InvalidInputError

CONFIG_ENV_VAR = "LIFT_LOAD_CONFIG"

# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _parse_yaml(text: str) -> dict[str, Any]:
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (non-destructive to base)."""
    result = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(result.get(k), dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


# ---------------------------------------------------------------------------
# Typed config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClassificationRule:
    """
    Progression rule for one exercise classification.

    Defaults are those of a compound barbell lift.
    """

    increment: float = 2.5
    target_reps: int = 8
    decrease_fraction: float = 0.10
    sessions_required: int = 2

    def __post_init__(self) -> None:
        """Validate rule values."""
        if self.increment < 0:
            raise InvalidInputError("increment must be non-negative")
        if self.target_reps <= 0:
            raise InvalidInputError("target_reps must be positive")
        if not 0.0 <= self.decrease_fraction < 1.0:
            raise InvalidInputError("decrease_fraction must be within [0, 1)")
        if self.sessions_required < 1:
            raise InvalidInputError("sessions_required must be at least 1")

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ClassificationRule:
        if not isinstance(d, dict):
            raise InvalidInputError(f"classification rule must be a mapping, got {d!r}")
        kwargs: dict[str, Any] = {}
        try:
            if "increment" in d:
                kwargs["increment"] = float(d["increment"])
            if "decrease_fraction" in d:
                kwargs["decrease_fraction"] = float(d["decrease_fraction"])
            if "target_reps" in d:
                kwargs["target_reps"] = int(d["target_reps"])
            if "sessions_required" in d:
                kwargs["sessions_required"] = int(d["sessions_required"])
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Invalid classification rule: {e}") from e
        return cls(**kwargs)


def _default_classifications() -> dict[str, ClassificationRule]:
    return {
        "compound": ClassificationRule(2.5, 8, 0.10, 2),
        "isolation": ClassificationRule(1.0, 12, 0.15, 2),
        "machine": ClassificationRule(2.5, 12, 0.10, 2),
        "bodyweight": ClassificationRule(0.0, 15, 0.0, 1),
    }


@dataclass(frozen=True)
class ProgressionConfig:
    """
    Double-progression policy.

    ``classifications`` maps an exercise classification to its rule.
    Construct directly to inject an alternate plate/rounding policy.
    """

    classifications: dict[str, ClassificationRule] = field(
        default_factory=_default_classifications
    )
    default_classification: str = "compound"
    history_sessions: int = 3
    large_miss_fraction: float = 0.20
    decrease_after_misses: int = 2
    rounding_step: float = 0.5
    weight_tolerance: float = 1e-6

    def __post_init__(self) -> None:
        """Validate policy values."""
        if self.history_sessions < 2:
            raise InvalidInputError("history_sessions must be at least 2")
        if not 0.0 < self.large_miss_fraction < 1.0:
            raise InvalidInputError("large_miss_fraction must be within (0, 1)")
        if self.decrease_after_misses < 1:
            raise InvalidInputError("decrease_after_misses must be at least 1")
        if self.decrease_after_misses > self.history_sessions:
            raise InvalidInputError(
                "decrease_after_misses cannot exceed history_sessions",
                {
                    "decrease_after_misses": self.decrease_after_misses,
                    "history_sessions": self.history_sessions,
                },
            )
        if self.rounding_step <= 0:
            raise InvalidInputError("rounding_step must be positive")
        if self.weight_tolerance < 0:
            raise InvalidInputError("weight_tolerance must be non-negative")
        for classification, rule in self.classifications.items():
            if rule.sessions_required > self.history_sessions:
                raise InvalidInputError(
                    f"sessions_required for {classification!r} cannot exceed history_sessions"
                )
        if self.default_classification not in self.classifications:
            raise InvalidInputError(
                f"default_classification {self.default_classification!r} "
                "has no rule configured"
            )

    def rule_for(self, classification: str | None) -> ClassificationRule:
        """Rule for a classification; unknown ones use the default classification."""
        if classification in self.classifications:
            return self.classifications[classification]
        return self.classifications[self.default_classification]

    def increment_for(self, classification: str | None) -> float:
        return self.rule_for(classification).increment

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ProgressionConfig:
        """
        Build from the ``progression`` section of engine.yaml; absent keys keep defaults.

        Raises:
            InvalidInputError: Non-mapping sections or values of the wrong type
        """
        if not isinstance(d, dict):
            raise InvalidInputError(f"progression config must be a mapping, got {d!r}")
        kwargs: dict[str, Any] = {}
        if "classifications" in d:
            table = d["classifications"]
            if not isinstance(table, dict):
                raise InvalidInputError("classifications must be a mapping")
            kwargs["classifications"] = {
                str(k): ClassificationRule.from_dict(v) for k, v in table.items()
            }
        try:
            for key in ("history_sessions", "decrease_after_misses"):
                if key in d:
                    kwargs[key] = int(d[key])
            for key in ("large_miss_fraction", "rounding_step", "weight_tolerance"):
                if key in d:
                    kwargs[key] = float(d[key])
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Invalid progression config: {e}") from e
        if "default_classification" in d:
            kwargs["default_classification"] = str(d["default_classification"])
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_bundled_config() -> dict[str, Any]:
    """Return the parsed engine.yaml shipped with the package."""
    ref = importlib.resources.files("lift_load").joinpath("engine.yaml")
    return _parse_yaml(ref.read_text(encoding="utf-8"))


def get_user_yaml_path() -> Path | None:
    """Return the override file path if one exists, else None."""
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        p = Path(explicit).expanduser()
        return p if p.exists() else None
    home = Path(os.environ.get("HOME", "~")).expanduser()
    p = home / ".lift-load" / "engine.yaml"
    return p if p.exists() else None


def load_user_config(path: Path) -> dict[str, Any]:
    """Parse an override file; a malformed file is ignored with a warning."""
    try:
        return _parse_yaml(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable config override {path}: {e}")
        return {}


def load_engine_config() -> dict[str, Any]:
    """
    Load and merge engine configuration from YAML sources.

    Load order (later overrides earlier):
    1. Bundled src/lift_load/engine.yaml
    2. User override ($LIFT_LOAD_CONFIG or ~/.lift-load/engine.yaml)

    Returns:
        Merged dict of config sections
    """
    config = load_bundled_config()

    user = get_user_yaml_path()
    if user is not None:
        user_cfg = load_user_config(user)
        if user_cfg:
            logger.debug(f"Merging config override from {user}")
            config = _deep_merge(config, user_cfg)

    return config


def load_progression_config() -> ProgressionConfig:
    """
    Build the ProgressionConfig from the merged YAML sources.

    An override that produces an invalid policy is ignored with a warning
    and the bundled policy is used instead.
    """
    bundled = load_bundled_config().get("progression", {})
    merged = load_engine_config().get("progression", {})
    try:
        return ProgressionConfig.from_dict(merged)
    except InvalidInputError as e:
        if merged == bundled:
            raise
        logger.warning(f"Ignoring invalid progression override: {e}")
        return ProgressionConfig.from_dict(bundled)
