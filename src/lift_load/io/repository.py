"""
Repository contract and in-memory implementation.

The engine never owns storage.  It talks to a TrainingRepository, which
the embedding application backs with its own database.  InMemoryTrainingStore
is the reference implementation used by tests and by callers that keep
history in memory.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import ContextManager, Iterator, Protocol, Union, runtime_checkable

from loguru import logger

from ..core.errors import InvalidInputError, NotFoundError
from ..core.models import DeloadWeek, ExerciseDefinition, Mesocycle, WorkoutSession

Entity = Union[WorkoutSession, DeloadWeek, Mesocycle]


@runtime_checkable
class TrainingRepository(Protocol):
    """
    What the engine needs from storage.

    ``transaction(user_id)`` must make everything inside it atomic with
    respect to other transactions for the same user (serializable
    isolation or an equivalent lock).  Reads outside a transaction may run
    concurrently.
    """

    def user_exists(self, user_id: str) -> bool: ...

    def get_exercise(self, exercise_id: str) -> ExerciseDefinition | None: ...

    def fetch_sessions(
        self,
        user_id: str,
        exercise_id: str | None = None,
        since: datetime | None = None,
    ) -> list[WorkoutSession]:
        """Sessions of the user, newest first, optionally containing an exercise / started at or after ``since``."""
        ...

    def persist(self, entity: Entity) -> Entity: ...

    def list_deloads(self, user_id: str) -> list[DeloadWeek]: ...

    def get_deload(self, deload_id: str) -> DeloadWeek | None: ...

    def delete_deload(self, deload_id: str) -> None: ...

    def list_mesocycles(self, user_id: str) -> list[Mesocycle]: ...

    def get_mesocycle(self, mesocycle_id: str) -> Mesocycle | None: ...

    def delete_mesocycle(self, mesocycle_id: str) -> None: ...

    def transaction(self, user_id: str) -> ContextManager[None]: ...


class InMemoryTrainingStore:
    """
    Thread-safe in-memory TrainingRepository.

    Sessions are kept per user in chronological order.  Each user has a
    re-entrant lock; ``transaction(user_id)`` holds it so a check followed
    by a write cannot interleave with another transaction for that user.
    The dicts shared by all users are only touched under ``_registry_lock``;
    list reads return snapshots.
    """

    def __init__(self) -> None:
        self._users: set[str] = set()
        self._exercises: dict[str, ExerciseDefinition] = {}
        self._sessions: dict[str, list[WorkoutSession]] = {}
        self._deloads: dict[str, DeloadWeek] = {}
        self._mesocycles: dict[str, Mesocycle] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Identity and exercise catalogue
    # ------------------------------------------------------------------

    def add_user(self, user_id: str) -> None:
        if not user_id:
            raise InvalidInputError("user_id must be a non-empty string")
        with self._registry_lock:
            self._users.add(user_id)
            self._sessions.setdefault(user_id, [])

    def user_exists(self, user_id: str) -> bool:
        with self._registry_lock:
            return user_id in self._users

    def add_exercise(self, exercise: ExerciseDefinition) -> None:
        with self._registry_lock:
            self._exercises[exercise.exercise_id] = exercise

    def get_exercise(self, exercise_id: str) -> ExerciseDefinition | None:
        with self._registry_lock:
            return self._exercises.get(exercise_id)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def append_session(self, session: WorkoutSession) -> None:
        """
        Add a session, keeping the user's history in chronological order.

        A session with an existing id replaces the stored one.

        Raises:
            NotFoundError: If the session's user is unknown
        """
        if not self.user_exists(session.user_id):
            raise NotFoundError("User", session.user_id)

        with self.transaction(session.user_id), self._registry_lock:
            sessions = [s for s in self._sessions[session.user_id] if s.id != session.id]

            insert_idx = len(sessions)
            for i, existing in enumerate(sessions):
                if session.started_at < existing.started_at:
                    insert_idx = i
                    break
            sessions.insert(insert_idx, session)
            self._sessions[session.user_id] = sessions

    def fetch_sessions(
        self,
        user_id: str,
        exercise_id: str | None = None,
        since: datetime | None = None,
    ) -> list[WorkoutSession]:
        """
        Get a user's sessions, newest first.

        Args:
            user_id: Owner of the sessions
            exercise_id: Only sessions that include this exercise
            since: Only sessions started at or after this time

        Returns:
            Matching sessions ordered by start time, descending
        """
        with self._registry_lock:
            result = list(self._sessions.get(user_id, []))
        if exercise_id is not None:
            result = [s for s in result if s.log_for(exercise_id) is not None]
        if since is not None:
            result = [s for s in result if s.started_at >= since]
        result.reverse()
        return result

    def delete_session(self, session_id: str) -> None:
        """Delete a session (and with it its logs and sets)."""
        with self._registry_lock:
            owner = next(
                (
                    user_id
                    for user_id, sessions in self._sessions.items()
                    if any(s.id == session_id for s in sessions)
                ),
                None,
            )
        if owner is None:
            raise NotFoundError("WorkoutSession", session_id)

        with self.transaction(owner), self._registry_lock:
            self._sessions[owner] = [s for s in self._sessions[owner] if s.id != session_id]

    # ------------------------------------------------------------------
    # Engine-owned entities
    # ------------------------------------------------------------------

    def persist(self, entity: Entity) -> Entity:
        """
        Insert or replace a session, deload week or mesocycle.

        Raises:
            TypeError: For any other kind of object
        """
        if isinstance(entity, WorkoutSession):
            self.append_session(entity)
        elif isinstance(entity, DeloadWeek):
            with self._registry_lock:
                self._deloads[entity.id] = entity
        elif isinstance(entity, Mesocycle):
            with self._registry_lock:
                self._mesocycles[entity.id] = entity
        else:
            raise TypeError(f"Cannot persist {type(entity).__name__}")
        logger.debug(f"Persisted {type(entity).__name__} {entity.id}")
        return entity

    def list_deloads(self, user_id: str) -> list[DeloadWeek]:
        with self._registry_lock:
            deloads = list(self._deloads.values())
        return [d for d in deloads if d.user_id == user_id]

    def get_deload(self, deload_id: str) -> DeloadWeek | None:
        with self._registry_lock:
            return self._deloads.get(deload_id)

    def delete_deload(self, deload_id: str) -> None:
        with self._registry_lock:
            removed = self._deloads.pop(deload_id, None)
        if removed is None:
            raise NotFoundError("DeloadWeek", deload_id)

    def list_mesocycles(self, user_id: str) -> list[Mesocycle]:
        with self._registry_lock:
            mesocycles = list(self._mesocycles.values())
        return [m for m in mesocycles if m.user_id == user_id]

    def get_mesocycle(self, mesocycle_id: str) -> Mesocycle | None:
        with self._registry_lock:
            return self._mesocycles.get(mesocycle_id)

    def delete_mesocycle(self, mesocycle_id: str) -> None:
        with self._registry_lock:
            removed = self._mesocycles.pop(mesocycle_id, None)
        if removed is None:
            raise NotFoundError("Mesocycle", mesocycle_id)

    # ------------------------------------------------------------------
    # Concurrency
    # ------------------------------------------------------------------

    def _lock_for(self, user_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    @contextmanager
    def transaction(self, user_id: str) -> Iterator[None]:
        """Serialize check-then-write sequences for one user."""
        with self._lock_for(user_id):
            yield

    def clear(self) -> None:
        """Drop all stored data (users and exercises included)."""
        with self._registry_lock:
            self._users.clear()
            self._exercises.clear()
            self._sessions.clear()
            self._deloads.clear()
            self._mesocycles.clear()
