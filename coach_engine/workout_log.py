"""
Logging side of a generated plan: sets performed, the finished session, and the
fatigue event a completed session contributes.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional

from coach_engine.constants import GYM_SESSION_FATIGUE_RANK
from coach_engine.errors import ConfigurationError
from coach_engine.models import (
    Equipment,
    Exercise,
    ExerciseHistory,
    FatigueEvent,
    FatigueLevel,
    FatigueSourceKind,
    ensure_utc,
)
from coach_engine.progression import estimated_one_rep_max

DEFAULT_SESSION_NAME = "Gym Workout"


@dataclass
class ExerciseSet:
    exercise_id: uuid.UUID
    weight: float
    reps: int
    order_index: int = 0
    is_warmup: bool = False
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reps_in_reserve: Optional[int] = None
    rpe: Optional[float] = None
    tempo: Optional[str] = None  # eccentric-pause-concentric-pause, e.g. "3-1-1-0"
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        if self.weight < 0 or self.reps < 0:
            raise ConfigurationError("Weight and reps must not be negative.")
        if self.rpe is not None and not 1 <= self.rpe <= 10:
            raise ConfigurationError(f"RPE must be between 1 and 10, got {self.rpe}.")
        self.completed_at = ensure_utc(self.completed_at)

    @property
    def volume(self) -> float:
        return self.weight * self.reps

    @property
    def estimated_one_rep_max(self) -> float:
        return estimated_one_rep_max(self.weight, self.reps)

    def to_dict(self) -> Dict:
        return {
            'id': str(self.id),
            'exercise_id': str(self.exercise_id),
            'weight': self.weight,
            'reps': self.reps,
            'order_index': self.order_index,
            'is_warmup': self.is_warmup,
            'completed_at': self.completed_at.isoformat(),
            'reps_in_reserve': self.reps_in_reserve,
            'rpe': self.rpe,
            'tempo': self.tempo,
            'volume': self.volume,
            'estimated_1rm': self.estimated_one_rep_max,
        }


@dataclass
class WorkoutSession:
    name: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    available_equipment: frozenset = frozenset(Equipment)
    target_duration_minutes: Optional[int] = None
    notes: Optional[str] = None
    sets: List[ExerciseSet] = field(default_factory=list)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def is_finished(self) -> bool:
        return self.completed_at is not None

    @property
    def duration_seconds(self) -> Optional[int]:
        if self.completed_at is None:
            return None
        return int((self.completed_at - ensure_utc(self.started_at)).total_seconds())

    def log_set(self, exercise_id: uuid.UUID, weight: float, reps: int, **kwargs) -> ExerciseSet:
        if self.is_finished:
            raise ConfigurationError("Cannot log sets on a finished session.")
        logged = ExerciseSet(exercise_id=exercise_id, weight=weight, reps=reps,
                             order_index=len(self.sets), **kwargs)
        self.sets.append(logged)
        return logged

    @property
    def total_volume(self) -> float:
        return sum(s.volume for s in self.sets)

    def best_set_per_exercise(self) -> Dict[uuid.UUID, ExerciseSet]:
        """Highest-volume set for each exercise; the first one wins a tie."""
        best: Dict[uuid.UUID, ExerciseSet] = {}
        for s in self.sets:
            current = best.get(s.exercise_id)
            if current is None or s.volume > current.volume:
                best[s.exercise_id] = s
        return best

    def finish(self, exercises_by_id: Mapping[uuid.UUID, Exercise],
               now: Optional[datetime] = None) -> Optional[FatigueEvent]:
        """
        Marks the session complete and returns the fatigue event it produces
        (None if no known exercise was logged).
        """
        if self.is_finished:
            raise ConfigurationError("Session is already finished.")
        self.completed_at = ensure_utc(now or datetime.now(timezone.utc))
        return completion_fatigue_event(self, exercises_by_id, self.completed_at)

    def summary(self) -> Dict:
        duration = self.duration_seconds
        return {
            'id': str(self.id),
            'name': self.name or DEFAULT_SESSION_NAME,
            'started_at': ensure_utc(self.started_at).isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'duration_minutes': duration // 60 if duration is not None else None,
            'total_volume': self.total_volume,
            'set_count': len(self.sets),
            'best_sets': {str(k): v.to_dict() for k, v in self.best_set_per_exercise().items()},
        }


def completion_fatigue_event(
    session: WorkoutSession,
    exercises_by_id: Mapping[uuid.UUID, Exercise],
    at: datetime,
) -> Optional[FatigueEvent]:
    """Every primary muscle trained in the session is tagged at MEDIUM."""
    level = FatigueLevel.from_rank(GYM_SESSION_FATIGUE_RANK)
    levels = {}
    for s in session.sets:
        exercise = exercises_by_id.get(s.exercise_id)
        if exercise is not None:
            levels[exercise.primary_muscle] = level
    if not levels:
        return None
    return FatigueEvent(
        timestamp=at,
        source_kind=FatigueSourceKind.GYM,
        source_name=session.name or DEFAULT_SESSION_NAME,
        muscle_levels=levels,
    )


def latest_history(sets: Iterable[ExerciseSet], exercise_id: uuid.UUID) -> Optional[ExerciseHistory]:
    """Most recent working (non warm-up) set of an exercise as history."""
    working = [s for s in sets if s.exercise_id == exercise_id and not s.is_warmup]
    if not working:
        return None
    last = max(working, key=lambda s: (s.completed_at, s.order_index))
    return ExerciseHistory(
        exercise_id=exercise_id,
        last_weight=last.weight,
        last_reps=last.reps,
        session_date=last.completed_at,
    )
