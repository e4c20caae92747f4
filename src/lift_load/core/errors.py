"""
Error taxonomy for the training-load engine.

Every expected failure is one of the classes below so the caller can map
them (e.g. to HTTP 404/409/400) without inspecting messages.  "Not enough
history" is not an error at all: the progression engine returns an
InsufficientData result instead.

Anything else (a repository that cannot be reached, a programming error)
propagates unchanged.
"""

from typing import Any


class LiftLoadError(Exception):
    """
    Base class for expected, recoverable engine errors.

    Attributes:
        code: Machine-readable error code (e.g. "NOT_FOUND")
        details: Extra context for the caller (ids, offending values)
    """

    code: str = "LIFT_LOAD_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(LiftLoadError):
    """A referenced user, exercise, deload or mesocycle does not exist."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} not found: {identifier}",
            {"resource": resource, "id": identifier},
        )
        self.resource = resource
        self.identifier = identifier


class ConflictError(LiftLoadError):
    """
    The request collides with existing state.

    Raised for overlapping deload weeks, a second active mesocycle, and
    state-machine transitions that are not allowed from the current status.
    """

    code = "CONFLICT"


class InvalidInputError(LiftLoadError, ValueError):
    """Out-of-range or unknown input values (durations, types, weights, reps)."""

    code = "INVALID_INPUT"
