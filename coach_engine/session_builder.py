"""
Workout generation: turns a time budget, a goal, the available equipment and
the current fatigue state into an ordered list of workout slots.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from coach_engine.catalogue import ExerciseRepository, filter_by_equipment
from coach_engine.constants import (
    MAX_EXERCISE_SLOTS,
    MIN_EXERCISE_SLOTS,
    MINUTES_PER_EXERCISE,
    WARMUP_MINUTES,
)
from coach_engine.errors import CatalogueUnavailableError, CoachEngineError, ConfigurationError
from coach_engine.fatigue import FatigueProfile
from coach_engine.models import (
    Equipment,
    Exercise,
    ProgressionTarget,
    WorkoutGoal,
    WorkoutSlot,
    parse_equipment_list,
)
from coach_engine.progression import DoubleProgressionPolicy, ProgressionPolicy, build_progression_target
from coach_engine.scoring import alternative_score, desirability_score, is_primary_blocked

logger = logging.getLogger(__name__)


def exercise_slot_count(available_minutes) -> int:
    """Number of exercises that fit the budget after a fixed warm-up, clamped to [1, 8]."""
    if isinstance(available_minutes, bool) or not isinstance(available_minutes, (int, float)):
        raise ConfigurationError(f"Available minutes must be a number, got {available_minutes!r}.")
    if math.isnan(available_minutes):
        raise ConfigurationError("Available minutes must be a number, got NaN.")
    working_minutes = max(0, available_minutes - WARMUP_MINUTES)
    # Capped before flooring so an infinite budget still yields the maximum.
    count = math.floor(min(working_minutes / MINUTES_PER_EXERCISE, MAX_EXERCISE_SLOTS))
    return max(MIN_EXERCISE_SLOTS, count)


def _equipment_set(available_equipment: Iterable) -> frozenset:
    if available_equipment is None or isinstance(available_equipment, (str, bytes)):
        return parse_equipment_list(available_equipment)
    items = list(available_equipment)
    if all(isinstance(item, Equipment) for item in items):
        return frozenset(items)
    return parse_equipment_list(items)


class WorkoutEngine:
    """Builds sessions from an exercise repository and a progression policy."""

    def __init__(self, repository: ExerciseRepository, progression_policy: Optional[ProgressionPolicy] = None):
        self.repository = repository
        self.progression_policy = progression_policy or DoubleProgressionPolicy()

    # Repository access; anything it raises becomes CatalogueUnavailableError.

    def _fetch_catalogue(self, equipment: frozenset) -> List[Exercise]:
        try:
            exercises = list(self.repository.fetch_exercises(equipment))
        except CoachEngineError:
            raise
        except Exception as e:
            logger.error(f"Exercise catalogue fetch failed: {e}", exc_info=True)
            raise CatalogueUnavailableError(f"Exercise catalogue unavailable: {e}") from e
        # The repository filter is advisory; eligibility is enforced here.
        return filter_by_equipment(exercises, equipment)

    def progression_target(self, exercise: Exercise, goal: WorkoutGoal) -> ProgressionTarget:
        try:
            history = self.repository.fetch_history(exercise.id)
        except CoachEngineError:
            raise
        except Exception as e:
            logger.error(f"History fetch failed for exercise {exercise.id}: {e}", exc_info=True)
            raise CatalogueUnavailableError(f"Exercise history unavailable: {e}") from e
        return build_progression_target(history, WorkoutGoal.parse(goal), self.progression_policy)

    def build_slot(self, exercise: Exercise, goal: WorkoutGoal) -> WorkoutSlot:
        goal = WorkoutGoal.parse(goal)
        return WorkoutSlot(
            exercise=exercise,
            recommended_sets=goal.recommended_sets,
            recommended_reps=goal.rep_range,
            progression_target=self.progression_target(exercise, goal),
        )

    def generate_workout(
        self,
        available_minutes,
        goal,
        available_equipment: Iterable,
        fatigue_profile: FatigueProfile,
        now: Optional[datetime] = None,
    ) -> List[WorkoutSlot]:
        """
        Generates an ordered workout plan.

        Compound exercises are taken first in score order; isolation exercises
        then fill the remaining slots, skipping any whose primary muscle is
        already trained. Exercises with a HIGH or SEVERE primary muscle are
        never selected.

        Args:
            available_minutes: Session length in minutes, warm-up included.
            goal: WorkoutGoal or its string value.
            available_equipment: Equipment members or names.
            fatigue_profile: Profile read once at the start of the call.
            now: Reference time for the fatigue snapshot, defaults to UTC now.

        Returns:
            A list of WorkoutSlot, possibly shorter than the budget allows or empty.

        Raises:
            ConfigurationError: for an unknown goal, unknown equipment or a non-numeric budget.
            CatalogueUnavailableError: if the repository fails.
        """
        goal = WorkoutGoal.parse(goal)
        equipment = _equipment_set(available_equipment)
        slot_count = exercise_slot_count(available_minutes)

        fatigue = fatigue_profile.current_fatigue(now or datetime.now(timezone.utc))

        eligible = self._fetch_catalogue(equipment)
        candidates = [ex for ex in eligible if not is_primary_blocked(ex, fatigue)]

        # Scored once with nothing claimed; ties keep catalogue order.
        scored = [(desirability_score(ex, fatigue), index, ex) for index, ex in enumerate(candidates)]
        scored.sort(key=lambda item: (-item[0], item[1]))
        ranked = [ex for _, _, ex in scored]

        chosen: List[Exercise] = []
        claimed = set()
        for ex in ranked:
            if len(chosen) >= slot_count:
                break
            if ex.is_compound:
                chosen.append(ex)
                claimed.add(ex.primary_muscle)
        for ex in ranked:
            if len(chosen) >= slot_count:
                break
            if ex.is_compound or ex.primary_muscle in claimed:
                continue
            chosen.append(ex)
            claimed.add(ex.primary_muscle)

        logger.info(
            f"Generated {goal.value} workout: {len(chosen)}/{slot_count} slots from "
            f"{len(eligible)} eligible exercises ({len(eligible) - len(candidates)} blocked by fatigue)."
        )
        return [self.build_slot(ex, goal) for ex in chosen]

    def find_alternative(
        self,
        exercise: Exercise,
        available_equipment: Iterable,
        fatigue_profile: FatigueProfile,
        now: Optional[datetime] = None,
    ) -> Optional[Exercise]:
        """Best replacement training the same primary muscle, or None."""
        equipment = _equipment_set(available_equipment)
        fatigue = fatigue_profile.current_fatigue(now or datetime.now(timezone.utc))

        best = None
        best_score = None
        for candidate in self._fetch_catalogue(equipment):
            if candidate.id == exercise.id or candidate.primary_muscle != exercise.primary_muscle:
                continue
            if is_primary_blocked(candidate, fatigue):
                continue
            score = alternative_score(candidate, exercise, fatigue)
            if best_score is None or score > best_score:
                best, best_score = candidate, score
        return best

    def swap_slot(
        self,
        slot: WorkoutSlot,
        goal,
        available_equipment: Iterable,
        fatigue_profile: FatigueProfile,
        now: Optional[datetime] = None,
    ) -> WorkoutSlot:
        """Replaces the slot's exercise; the slot comes back unchanged when nothing qualifies."""
        goal = WorkoutGoal.parse(goal)
        alternative = self.find_alternative(slot.exercise, available_equipment, fatigue_profile, now)
        if alternative is None:
            return slot
        return self.build_slot(alternative, goal)
