"""
Domain types for the fatigue model and the workout engine.

Enumerations are native Python enums; raw strings/ints only exist at the
storage and HTTP boundary, where ``parse`` helpers rebuild the typed values.
Unknown raw values found while decoding stored data are treated as
"unknown/default" and never abort a computation.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional

from coach_engine.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _normalize_key(raw: Any) -> str:
    return str(raw).strip().lower().replace('-', '_').replace(' ', '_')


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are interpreted as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MuscleGroup(Enum):
    CHEST = 'chest'
    BACK = 'back'
    QUADS = 'quads'
    HAMSTRINGS = 'hamstrings'
    GLUTES = 'glutes'
    SHOULDERS = 'shoulders'
    CORE = 'core'
    CALVES = 'calves'
    BICEPS = 'biceps'
    TRICEPS = 'triceps'
    FOREARMS = 'forearms'
    HIP_FLEXORS = 'hip_flexors'  # kicking sports load these heavily
    NECK = 'neck'

    @classmethod
    def parse(cls, raw: Any, default: Optional['MuscleGroup'] = None) -> Optional['MuscleGroup']:
        """Tolerant lookup used when decoding stored or external data."""
        if isinstance(raw, cls):
            return raw
        if raw is None:
            return default
        key = _normalize_key(raw)
        key = MUSCLE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            logger.warning(f"Unknown muscle group '{raw}', using default {default}.")
            return default


MUSCLE_ALIASES: Dict[str, str] = {
    'quadriceps': 'quads',
    'abs': 'core',
    'abdominals': 'core',
    'lats': 'back',
    'delts': 'shoulders',
    'deltoids': 'shoulders',
    'hipflexors': 'hip_flexors',
}


class FatigueLevel(IntEnum):
    """Ordered fatigue severity. Ranks combine by addition, clamped at SEVERE."""
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    SEVERE = 4  # e.g. DOMS the day after heavy legs

    @property
    def rank(self) -> int:
        return int(self.value)

    @classmethod
    def from_rank(cls, rank: int) -> 'FatigueLevel':
        return cls(max(cls.NONE.value, min(int(rank), cls.SEVERE.value)))

    def combined(self, other: 'FatigueLevel') -> 'FatigueLevel':
        return FatigueLevel.from_rank(self.rank + FatigueLevel(other).rank)

    def shifted(self, delta: int) -> 'FatigueLevel':
        return FatigueLevel.from_rank(self.rank + delta)

    @classmethod
    def parse(cls, raw: Any, default: Optional['FatigueLevel'] = None) -> Optional['FatigueLevel']:
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, bool) or raw is None:
            return default
        if isinstance(raw, int):
            if cls.NONE.value <= raw <= cls.SEVERE.value:
                return cls(raw)
            logger.warning(f"Fatigue rank {raw} out of range, using default {default}.")
            return default
        key = _normalize_key(raw)
        if key.isdigit():
            return cls.parse(int(key), default)
        try:
            return cls[key.upper()]
        except KeyError:
            logger.warning(f"Unknown fatigue level '{raw}', using default {default}.")
            return default


class Equipment(Enum):
    BARBELL = 'barbell'
    DUMBBELL = 'dumbbell'
    CABLES = 'cables'
    MACHINE = 'machine'
    BODYWEIGHT = 'bodyweight'
    KETTLEBELL = 'kettlebell'
    RESISTANCE_BAND = 'resistance_band'

    @classmethod
    def parse(cls, raw: Any, default: Optional['Equipment'] = None) -> Optional['Equipment']:
        if isinstance(raw, cls):
            return raw
        if raw is None:
            return default
        key = _normalize_key(raw)
        key = EQUIPMENT_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return default


# Equipment aliases for normalization
EQUIPMENT_ALIASES: Dict[str, str] = {
    'dumbbells': 'dumbbell',
    'cable': 'cables',
    'machines': 'machine',
    'body_weight': 'bodyweight',
    'none': 'bodyweight',
    'kettlebells': 'kettlebell',
    'band': 'resistance_band',
    'bands': 'resistance_band',
    'resistance_bands': 'resistance_band',
}


def parse_equipment_list(values: Iterable[Any]) -> frozenset:
    """Strict parser for user supplied equipment; unknown names are rejected."""
    if values is None:
        raise ConfigurationError("Equipment list is required.")
    if isinstance(values, (str, bytes)):
        raise ConfigurationError("Equipment must be a list of names.")
    parsed = set()
    for raw in values:
        item = Equipment.parse(raw)
        if item is None:
            raise ConfigurationError(f"Unknown equipment: {raw!r}")
        parsed.add(item)
    return frozenset(parsed)


class FatigueSourceKind(Enum):
    GYM = 'gym'
    EXTERNAL_SPORT = 'external_sport'
    EXTERNAL_TRACKER = 'external_tracker'

    @classmethod
    def parse(cls, raw: Any, default: Optional['FatigueSourceKind'] = None) -> Optional['FatigueSourceKind']:
        if isinstance(raw, cls):
            return raw
        try:
            return cls(_normalize_key(raw))
        except ValueError:
            return default


@dataclass(frozen=True)
class RepRange:
    """Closed integer range of repetitions."""
    lower: int
    upper: int

    def __post_init__(self):
        if self.lower < 1 or self.upper < self.lower:
            raise ConfigurationError(f"Invalid rep range {self.lower}-{self.upper}.")

    def __contains__(self, reps: int) -> bool:
        return self.lower <= reps <= self.upper

    def to_dict(self) -> Dict[str, int]:
        return {'lower': self.lower, 'upper': self.upper}


class WorkoutGoal(Enum):
    STRENGTH = 'strength'
    HYPERTROPHY = 'hypertrophy'
    ENDURANCE = 'endurance'
    GENERAL_FITNESS = 'general_fitness'

    @property
    def rep_range(self) -> RepRange:
        return GOAL_REP_RANGES[self]

    @property
    def recommended_sets(self) -> int:
        return GOAL_RECOMMENDED_SETS[self]

    @classmethod
    def parse(cls, raw: Any) -> 'WorkoutGoal':
        if isinstance(raw, cls):
            return raw
        if raw is None:
            raise ConfigurationError("Workout goal is required.")
        try:
            return cls(_normalize_key(raw))
        except ValueError:
            raise ConfigurationError(f"Unknown workout goal: {raw!r}") from None


GOAL_REP_RANGES: Dict[WorkoutGoal, RepRange] = {
    WorkoutGoal.STRENGTH: RepRange(3, 5),
    WorkoutGoal.HYPERTROPHY: RepRange(8, 12),
    WorkoutGoal.ENDURANCE: RepRange(15, 20),
    WorkoutGoal.GENERAL_FITNESS: RepRange(8, 15),
}

GOAL_RECOMMENDED_SETS: Dict[WorkoutGoal, int] = {
    WorkoutGoal.STRENGTH: 5,
    WorkoutGoal.HYPERTROPHY: 4,
    WorkoutGoal.ENDURANCE: 3,
    WorkoutGoal.GENERAL_FITNESS: 3,
}


class OverloadStrategy(Enum):
    ADD_WEIGHT = 'add_weight'
    ADD_REP = 'add_rep'
    MAINTAIN = 'maintain'
    FIRST_TIME = 'first_time'

    @property
    def instruction(self) -> str:
        return OVERLOAD_INSTRUCTIONS[self]


OVERLOAD_INSTRUCTIONS: Dict[OverloadStrategy, str] = {
    OverloadStrategy.ADD_WEIGHT: "Add weight",
    OverloadStrategy.ADD_REP: "Add a rep",
    OverloadStrategy.MAINTAIN: "Hold steady, deload week",
    OverloadStrategy.FIRST_TIME: "First attempt, pick a comfortable starting weight",
}


# --- Fatigue maps at the storage/HTTP boundary ---

def fatigue_map_to_dict(levels: Mapping[MuscleGroup, FatigueLevel]) -> Dict[str, int]:
    return {muscle.value: int(level) for muscle, level in sorted(levels.items(), key=lambda kv: kv[0].value)}


def fatigue_map_from_dict(raw: Optional[Mapping[Any, Any]]) -> Dict[MuscleGroup, FatigueLevel]:
    """Decodes ``{muscle: rank}``; entries that do not decode are dropped."""
    decoded: Dict[MuscleGroup, FatigueLevel] = {}
    for key, value in (raw or {}).items():
        muscle = MuscleGroup.parse(key)
        level = FatigueLevel.parse(value)
        if muscle is None or level is None:
            continue
        decoded[muscle] = level
    return decoded


@dataclass(frozen=True)
class FatigueEvent:
    """One fatigue-contributing occurrence. Never mutated, only deleted."""
    timestamp: datetime
    source_kind: FatigueSourceKind
    source_name: str
    muscle_levels: Mapping[MuscleGroup, FatigueLevel] = field(default_factory=dict, hash=False)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        object.__setattr__(self, 'timestamp', ensure_utc(self.timestamp))
        object.__setattr__(self, 'muscle_levels', MappingProxyType(
            {MuscleGroup(muscle): FatigueLevel(level) for muscle, level in dict(self.muscle_levels).items()}
        ))

    @property
    def dedup_key(self) -> tuple:
        return (self.timestamp, self.source_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': str(self.id),
            'timestamp': self.timestamp.isoformat(),
            'source_kind': self.source_kind.value,
            'source_name': self.source_name,
            'muscle_levels': fatigue_map_to_dict(self.muscle_levels),
        }


@dataclass(frozen=True)
class Exercise:
    """Catalogue entry. An empty equipment set means bodyweight."""
    name: str
    primary_muscle: MuscleGroup
    secondary_muscles: frozenset = frozenset()
    required_equipment: frozenset = frozenset()
    is_compound: bool = False
    notes: Optional[str] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        object.__setattr__(self, 'secondary_muscles', frozenset(self.secondary_muscles))
        object.__setattr__(self, 'required_equipment', frozenset(self.required_equipment))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': str(self.id),
            'name': self.name,
            'primary_muscle': self.primary_muscle.value,
            'secondary_muscles': sorted(m.value for m in self.secondary_muscles),
            'required_equipment': sorted(e.value for e in self.required_equipment),
            'is_compound': self.is_compound,
            'notes': self.notes,
        }


@dataclass(frozen=True)
class ExerciseHistory:
    exercise_id: uuid.UUID
    last_weight: float
    last_reps: int
    session_date: datetime


@dataclass(frozen=True)
class ProgressionTarget:
    last_weight: float
    last_reps: int
    suggested_weight: float
    suggested_reps: int
    strategy: OverloadStrategy

    def to_dict(self) -> Dict[str, Any]:
        return {
            'last_weight': self.last_weight,
            'last_reps': self.last_reps,
            'suggested_weight': self.suggested_weight,
            'suggested_reps': self.suggested_reps,
            'strategy': self.strategy.value,
            'instruction': self.strategy.instruction,
        }


@dataclass(frozen=True)
class WorkoutSlot:
    exercise: Exercise
    recommended_sets: int
    recommended_reps: RepRange
    progression_target: Optional[ProgressionTarget] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'exercise': self.exercise.to_dict(),
            'recommended_sets': self.recommended_sets,
            'recommended_reps': self.recommended_reps.to_dict(),
            'progression_target': self.progression_target.to_dict() if self.progression_target else None,
        }
