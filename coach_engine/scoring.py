"""
Desirability scoring of candidate exercises against the current fatigue state.

All functions are pure; ``fatigue`` is a snapshot dict in which an absent
muscle reads as FatigueLevel.NONE.
"""

from __future__ import annotations

from typing import Dict, Mapping

from coach_engine.constants import (
    BASE_SCORE,
    COMPOUND_BONUS,
    FATIGUE_PENALTIES,
    MUSCLE_VARIETY_BONUS,
    PRIMARY_BLOCK_RANK,
    PRIMARY_PENALTY_WEIGHT,
    SWAP_DISJOINT_EQUIPMENT_BONUS,
    SWAP_MECHANICS_BONUS,
)
from coach_engine.models import Exercise, FatigueLevel, MuscleGroup

FatigueSnapshot = Mapping[MuscleGroup, FatigueLevel]


def fatigue_penalty(level: FatigueLevel) -> float:
    return FATIGUE_PENALTIES[FatigueLevel(level).rank]


def _level(fatigue: FatigueSnapshot, muscle: MuscleGroup) -> FatigueLevel:
    return fatigue.get(muscle, FatigueLevel.NONE)


def is_primary_blocked(exercise: Exercise, fatigue: FatigueSnapshot) -> bool:
    """A HIGH or SEVERE primary muscle removes the exercise regardless of score."""
    return _level(fatigue, exercise.primary_muscle).rank >= PRIMARY_BLOCK_RANK


def explain_score(
    exercise: Exercise,
    fatigue: FatigueSnapshot,
    claimed_muscles: frozenset = frozenset(),
) -> Dict[str, float]:
    """
    Breaks the desirability score into its components.

    Returns:
        A dict with 'base', 'secondary_penalty', 'primary_penalty',
        'compound_bonus', 'variety_bonus' and 'total'. Penalties are positive
        amounts that were subtracted; 'total' is floored at 0.
    """
    secondary_penalty = sum(fatigue_penalty(_level(fatigue, m)) for m in exercise.secondary_muscles)
    primary_penalty = fatigue_penalty(_level(fatigue, exercise.primary_muscle)) * PRIMARY_PENALTY_WEIGHT
    compound_bonus = COMPOUND_BONUS if exercise.is_compound else 0.0
    variety_bonus = MUSCLE_VARIETY_BONUS if exercise.primary_muscle not in claimed_muscles else 0.0

    total = BASE_SCORE - secondary_penalty - primary_penalty + compound_bonus + variety_bonus
    return {
        'base': BASE_SCORE,
        'secondary_penalty': secondary_penalty,
        'primary_penalty': primary_penalty,
        'compound_bonus': compound_bonus,
        'variety_bonus': variety_bonus,
        'total': max(0.0, total),
    }


def desirability_score(
    exercise: Exercise,
    fatigue: FatigueSnapshot,
    claimed_muscles: frozenset = frozenset(),
) -> float:
    return explain_score(exercise, fatigue, claimed_muscles)['total']


def alternative_score(candidate: Exercise, original: Exercise, fatigue: FatigueSnapshot) -> float:
    """Desirability plus bonuses for differing from the exercise being replaced."""
    score = desirability_score(candidate, fatigue)
    if candidate.required_equipment.isdisjoint(original.required_equipment):
        score += SWAP_DISJOINT_EQUIPMENT_BONUS
    if candidate.is_compound != original.is_compound:
        score += SWAP_MECHANICS_BONUS
    return score
