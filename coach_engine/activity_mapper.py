"""
Translation of external activity records into fatigue events.

Pure and stateless: nothing in here touches storage. An activity type with
no mapping yields no event at all (it is not recorded as zero fatigue).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from coach_engine.constants import LONG_ACTIVITY_MINUTES, SHORT_ACTIVITY_MINUTES
from coach_engine.errors import ConfigurationError
from coach_engine.models import (
    FatigueEvent,
    FatigueLevel,
    FatigueSourceKind,
    MuscleGroup,
    ensure_utc,
)

logger = logging.getLogger(__name__)

M = MuscleGroup
F = FatigueLevel

_COMBAT = {M.SHOULDERS: F.HIGH, M.CORE: F.HIGH, M.HIP_FLEXORS: F.MEDIUM, M.FOREARMS: F.MEDIUM, M.BACK: F.LOW}
_JUMPING_BALL = {M.QUADS: F.HIGH, M.HAMSTRINGS: F.MEDIUM, M.CALVES: F.MEDIUM, M.SHOULDERS: F.MEDIUM, M.CORE: F.MEDIUM}
_THROWING = {M.SHOULDERS: F.HIGH, M.FOREARMS: F.MEDIUM, M.CORE: F.MEDIUM, M.BACK: F.LOW}
_RACKET = {M.SHOULDERS: F.HIGH, M.CORE: F.MEDIUM, M.QUADS: F.MEDIUM, M.FOREARMS: F.MEDIUM}
_WALKING = {M.QUADS: F.LOW, M.HAMSTRINGS: F.LOW, M.CALVES: F.MEDIUM, M.HIP_FLEXORS: F.LOW}
# Rough estimate; a logged gym session replaces this with its own event
_STRENGTH = {M.BACK: F.MEDIUM, M.CHEST: F.MEDIUM, M.SHOULDERS: F.MEDIUM, M.QUADS: F.MEDIUM, M.CORE: F.LOW}
_INTERVALS = {M.QUADS: F.HIGH, M.SHOULDERS: F.MEDIUM, M.CORE: F.HIGH, M.HAMSTRINGS: F.MEDIUM}
_DANCE = {M.QUADS: F.MEDIUM, M.CALVES: F.MEDIUM, M.CORE: F.MEDIUM, M.HIP_FLEXORS: F.LOW}

# Normalized activity tag -> per-muscle fatigue caused by a typical session
ACTIVITY_FATIGUE_MAP: Dict[str, Dict[MuscleGroup, FatigueLevel]] = {
    # Combat sports
    'martial_arts': _COMBAT,
    'boxing': _COMBAT,
    'kickboxing': _COMBAT,
    'wrestling': {M.BACK: F.HIGH, M.CORE: F.HIGH, M.SHOULDERS: F.MEDIUM, M.QUADS: F.MEDIUM, M.FOREARMS: F.MEDIUM},
    # Hockey (incl. floorball) and skating
    'hockey': {
        M.QUADS: F.HIGH, M.HAMSTRINGS: F.HIGH, M.GLUTES: F.MEDIUM,
        M.CALVES: F.MEDIUM, M.SHOULDERS: F.MEDIUM, M.CORE: F.LOW,
    },
    'skating': {M.QUADS: F.HIGH, M.GLUTES: F.HIGH, M.HAMSTRINGS: F.MEDIUM, M.CALVES: F.MEDIUM, M.CORE: F.LOW},
    # Running ball sports
    'soccer': {M.QUADS: F.HIGH, M.HAMSTRINGS: F.HIGH, M.CALVES: F.MEDIUM, M.HIP_FLEXORS: F.MEDIUM, M.CORE: F.LOW},
    'basketball': _JUMPING_BALL,
    'volleyball': _JUMPING_BALL,
    'handball': _JUMPING_BALL,
    'baseball': _THROWING,
    'softball': _THROWING,
    # Racket sports
    'tennis': {M.SHOULDERS: F.HIGH, M.QUADS: F.HIGH, M.CORE: F.MEDIUM, M.FOREARMS: F.MEDIUM, M.CALVES: F.LOW},
    'squash': _RACKET,
    'racquetball': _RACKET,
    'badminton': _RACKET,
    'table_tennis': _RACKET,
    # Running and walking
    'running': {M.QUADS: F.HIGH, M.HAMSTRINGS: F.HIGH, M.CALVES: F.MEDIUM, M.HIP_FLEXORS: F.MEDIUM, M.CORE: F.LOW},
    'walking': _WALKING,
    'hiking': _WALKING,
    'stairs': {M.QUADS: F.HIGH, M.GLUTES: F.MEDIUM, M.CALVES: F.MEDIUM, M.HAMSTRINGS: F.LOW},
    'cycling': {M.QUADS: F.HIGH, M.HAMSTRINGS: F.MEDIUM, M.GLUTES: F.MEDIUM, M.CALVES: F.LOW, M.CORE: F.LOW},
    # Water
    'swimming': {M.BACK: F.HIGH, M.SHOULDERS: F.HIGH, M.CORE: F.MEDIUM, M.TRICEPS: F.MEDIUM},
    'rowing': {M.BACK: F.HIGH, M.BICEPS: F.HIGH, M.CORE: F.MEDIUM, M.QUADS: F.MEDIUM, M.SHOULDERS: F.LOW},
    # Strength and conditioning
    'traditional_strength_training': _STRENGTH,
    'functional_strength_training': _STRENGTH,
    'cross_training': _INTERVALS,
    'high_intensity_interval_training': _INTERVALS,
    # Gymnastics and climbing
    'gymnastics': {M.CORE: F.HIGH, M.SHOULDERS: F.HIGH, M.BACK: F.MEDIUM, M.TRICEPS: F.MEDIUM},
    'climbing': {M.BACK: F.HIGH, M.FOREARMS: F.HIGH, M.BICEPS: F.HIGH, M.CORE: F.MEDIUM, M.SHOULDERS: F.MEDIUM},
    # Mind and body
    'yoga': {M.CORE: F.LOW, M.SHOULDERS: F.LOW, M.BACK: F.LOW},
    'pilates': {M.CORE: F.MEDIUM, M.BACK: F.LOW, M.SHOULDERS: F.LOW},
    # Group fitness
    'dance': _DANCE,
    'dance_inspired_training': _DANCE,
    'jump_rope': {M.CALVES: F.HIGH, M.SHOULDERS: F.MEDIUM, M.CORE: F.LOW},
}

ACTIVITY_DISPLAY_NAMES: Dict[str, str] = {
    'martial_arts': "Martial Arts",
    'boxing': "Boxing",
    'kickboxing': "Kickboxing",
    'wrestling': "Wrestling",
    'hockey': "Hockey / Floorball",
    'skating': "Skating",
    'soccer': "Soccer",
    'basketball': "Basketball",
    'volleyball': "Volleyball",
    'handball': "Handball",
    'baseball': "Baseball",
    'softball': "Softball",
    'tennis': "Tennis",
    'squash': "Squash",
    'racquetball': "Racquetball",
    'badminton': "Badminton",
    'table_tennis': "Table Tennis",
    'running': "Running",
    'walking': "Walking",
    'hiking': "Hiking",
    'stairs': "Stairs",
    'cycling': "Cycling",
    'swimming': "Swimming",
    'rowing': "Rowing",
    'traditional_strength_training': "Strength Training",
    'functional_strength_training': "Functional Training",
    'cross_training': "Cross Training",
    'high_intensity_interval_training': "HIIT",
    'gymnastics': "Gymnastics",
    'climbing': "Climbing",
    'yoga': "Yoga",
    'pilates': "Pilates",
    'dance': "Dance",
    'dance_inspired_training': "Dance Training",
    'jump_rope': "Jump Rope",
}
UNKNOWN_ACTIVITY_NAME = "Other Activity"

_TRACKER_PREFIX = 'hkworkoutactivitytype'


def normalize_activity_tag(tag: Any) -> str:
    if tag is None:
        return ''
    key = str(tag).strip().lower().replace('-', '_').replace(' ', '_')
    if key.startswith(_TRACKER_PREFIX):
        key = key[len(_TRACKER_PREFIX):].lstrip('_')
    return key


def display_name(tag: Any) -> str:
    return ACTIVITY_DISPLAY_NAMES.get(normalize_activity_tag(tag), UNKNOWN_ACTIVITY_NAME)


def map_activity(tag: Any) -> Dict[MuscleGroup, FatigueLevel]:
    """Base fatigue map for an activity type; empty for unrecognized types."""
    return dict(ACTIVITY_FATIGUE_MAP.get(normalize_activity_tag(tag), {}))


def scale_by_duration(
    levels: Mapping[MuscleGroup, FatigueLevel],
    duration_minutes: float,
) -> Dict[MuscleGroup, FatigueLevel]:
    """Short sessions (< 20 min) drop one rank, long ones (> 90 min) gain one."""
    if duration_minutes < SHORT_ACTIVITY_MINUTES:
        delta = -1
    elif duration_minutes > LONG_ACTIVITY_MINUTES:
        delta = 1
    else:
        delta = 0
    return {muscle: FatigueLevel(level).shifted(delta) for muscle, level in levels.items()}


def translate(
    tag: Any,
    start_time: datetime,
    duration_minutes: float,
    source_kind: FatigueSourceKind = FatigueSourceKind.EXTERNAL_TRACKER,
) -> Optional[FatigueEvent]:
    base = map_activity(tag)
    if not base:
        return None
    return FatigueEvent(
        timestamp=start_time,
        source_kind=source_kind,
        source_name=display_name(tag),
        muscle_levels=scale_by_duration(base, duration_minutes),
    )


@dataclass(frozen=True)
class ActivityRecord:
    """One record of the inbound activity feed."""
    activity_type_tag: str
    start_time: datetime
    duration_seconds: float

    @property
    def duration_minutes(self) -> float:
        return self.duration_seconds / 60.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ActivityRecord':
        """
        Builds a record from a JSON payload.

        Accepts camelCase or snake_case keys; ``start_time`` may be an ISO-8601
        string or epoch seconds.

        Raises:
            ConfigurationError: if a field is missing or malformed.
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("Activity record must be an object.")
        tag = data.get('activity_type_tag', data.get('activityTypeTag'))
        raw_start = data.get('start_time', data.get('startTime'))
        raw_duration = data.get('duration_seconds', data.get('durationSeconds'))
        if not tag or raw_start is None or raw_duration is None:
            raise ConfigurationError(
                "Activity record requires activity_type_tag, start_time and duration_seconds."
            )
        try:
            duration = float(raw_duration)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid duration_seconds: {raw_duration!r}") from None
        if duration < 0:
            raise ConfigurationError("duration_seconds must not be negative.")
        return cls(activity_type_tag=str(tag), start_time=parse_timestamp(raw_start), duration_seconds=duration)


def parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(raw, tz=timezone.utc)
    if isinstance(raw, str):
        try:
            return ensure_utc(datetime.fromisoformat(raw.replace('Z', '+00:00')))
        except ValueError:
            pass
    raise ConfigurationError(f"Invalid timestamp: {raw!r}")


def translate_feed(records: Iterable[ActivityRecord]) -> List[FatigueEvent]:
    """Zero or one event per record. No input ordering is assumed."""
    events = []
    for record in records:
        event = translate(record.activity_type_tag, record.start_time, record.duration_minutes)
        if event is None:
            logger.debug(f"No fatigue mapping for activity '{record.activity_type_tag}', skipped.")
            continue
        events.append(event)
    return events
