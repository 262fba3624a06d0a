"""Progressive-overload policies and the per-exercise progression target."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from coach_engine.constants import DEFAULT_WEIGHT_INCREMENT_KG, WEIGHT_INCREMENTS_KG
from coach_engine.models import ExerciseHistory, OverloadStrategy, ProgressionTarget, WorkoutGoal


class ProgressionPolicy(ABC):
    """Turns the last performance of an exercise into the next target."""

    @abstractmethod
    def suggested_weight(self, last_weight: float, last_reps: int, goal: WorkoutGoal) -> float:
        ...

    @abstractmethod
    def suggested_reps(self, last_reps: int, goal: WorkoutGoal) -> int:
        ...

    @abstractmethod
    def strategy(self, last_weight: float, last_reps: int, goal: WorkoutGoal) -> OverloadStrategy:
        ...


class DoubleProgressionPolicy(ProgressionPolicy):
    """
    Classic double progression.

    Reps climb one at a time inside the goal's rep range. Once the top of the
    range is reached, weight goes up by the goal's increment and reps drop back
    to the bottom. Below the range the weight is held.
    """

    def increment_for(self, goal: WorkoutGoal) -> float:
        return WEIGHT_INCREMENTS_KG.get(goal.value, DEFAULT_WEIGHT_INCREMENT_KG)

    def strategy(self, last_weight: float, last_reps: int, goal: WorkoutGoal) -> OverloadStrategy:
        reps = goal.rep_range
        if last_reps >= reps.upper:
            return OverloadStrategy.ADD_WEIGHT
        if last_reps < reps.lower:
            return OverloadStrategy.MAINTAIN
        return OverloadStrategy.ADD_REP

    def suggested_weight(self, last_weight: float, last_reps: int, goal: WorkoutGoal) -> float:
        if last_reps >= goal.rep_range.upper:
            return last_weight + self.increment_for(goal)
        return last_weight

    def suggested_reps(self, last_reps: int, goal: WorkoutGoal) -> int:
        reps = goal.rep_range
        if last_reps >= reps.upper:
            return reps.lower
        # Below the range the weight holds but the rep target still moves up by one.
        return min(last_reps + 1, reps.upper)


def build_progression_target(
    history: Optional[ExerciseHistory],
    goal: WorkoutGoal,
    policy: ProgressionPolicy,
) -> ProgressionTarget:
    if history is None:
        return ProgressionTarget(
            last_weight=0.0,
            last_reps=0,
            suggested_weight=0.0,
            suggested_reps=goal.rep_range.lower,
            strategy=OverloadStrategy.FIRST_TIME,
        )
    return ProgressionTarget(
        last_weight=history.last_weight,
        last_reps=history.last_reps,
        suggested_weight=policy.suggested_weight(history.last_weight, history.last_reps, goal),
        suggested_reps=policy.suggested_reps(history.last_reps, goal),
        strategy=policy.strategy(history.last_weight, history.last_reps, goal),
    )


def estimated_one_rep_max(weight: float, reps: int) -> float:
    """
    Epley estimate of the one-rep max.

    Returns the weight itself for single reps and 0.0 when no reps were done.
    """
    if reps < 1:
        return 0.0
    if reps == 1:
        return weight
    return round(weight * (1 + reps / 30.0), 2)
