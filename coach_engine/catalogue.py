"""Exercise catalogue access: equipment eligibility and the repository protocol."""

from __future__ import annotations

import uuid
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from coach_engine.models import Equipment, Exercise, ExerciseHistory


def is_equipment_eligible(exercise: Exercise, available_equipment: Iterable[Equipment]) -> bool:
    # Bodyweight never needs to be listed as available.
    usable = set(available_equipment) | {Equipment.BODYWEIGHT}
    return exercise.required_equipment <= usable


def filter_by_equipment(exercises: Iterable[Exercise], available_equipment: Iterable[Equipment]) -> List[Exercise]:
    """Exercises whose required equipment is all available, in catalogue order."""
    usable = frozenset(available_equipment)
    return [ex for ex in exercises if is_equipment_eligible(ex, usable)]


class ExerciseRepository(Protocol):
    """What the workout engine needs from a catalogue store."""

    def fetch_exercises(self, available_equipment: frozenset) -> List[Exercise]:
        ...

    def fetch_history(self, exercise_id: uuid.UUID) -> Optional[ExerciseHistory]:
        ...


class InMemoryExerciseRepository:
    """Catalogue and history held in memory; order of ``exercises`` is the catalogue order."""

    def __init__(self, exercises: Sequence[Exercise],
                 history: Optional[Mapping[uuid.UUID, Iterable[ExerciseHistory]]] = None):
        self._exercises = list(exercises)
        self._history: Dict[uuid.UUID, List[ExerciseHistory]] = {
            exercise_id: list(entries) for exercise_id, entries in (history or {}).items()
        }

    @property
    def exercises(self) -> List[Exercise]:
        return list(self._exercises)

    def get(self, exercise_id: uuid.UUID) -> Optional[Exercise]:
        return next((ex for ex in self._exercises if ex.id == exercise_id), None)

    def fetch_exercises(self, available_equipment: frozenset) -> List[Exercise]:
        return filter_by_equipment(self._exercises, available_equipment)

    def fetch_history(self, exercise_id: uuid.UUID) -> Optional[ExerciseHistory]:
        entries = self._history.get(exercise_id)
        if not entries:
            return None
        return max(entries, key=lambda h: h.session_date)
