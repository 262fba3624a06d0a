"""
Fatigue event store and the rolling-window aggregator.

``current_fatigue`` is a pure function over a list of events. ``FatigueProfile``
is the single mutable aggregate holding one user's event history: appends and
deletions go through a lock, readers work on an immutable tuple snapshot.
"""

from __future__ import annotations

import logging
import math
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from coach_engine.activity_mapper import ActivityRecord, translate_feed
from coach_engine.constants import (
    DEFAULT_ROLLING_WINDOW_HOURS,
    MANUAL_OVERRIDE_FATIGUE_RANK,
    MANUAL_OVERRIDE_SKIP_RANK,
)
from coach_engine.errors import ActivityFeedError, ConfigurationError
from coach_engine.models import (
    FatigueEvent,
    FatigueLevel,
    FatigueSourceKind,
    MuscleGroup,
    ensure_utc,
)

logger = logging.getLogger(__name__)

FatigueMap = Dict[MuscleGroup, FatigueLevel]


def validate_window_hours(window_hours) -> float:
    try:
        value = float(window_hours)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Rolling window must be a number, got {window_hours!r}.") from None
    if math.isnan(value) or value <= 0:
        raise ConfigurationError(f"Rolling window must be positive, got {window_hours!r}.")
    return value


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def current_fatigue(
    events: Iterable[FatigueEvent],
    window_hours: float,
    now: datetime,
) -> FatigueMap:
    """
    Aggregates events into the current per-muscle fatigue level.

    Every event inside the window contributes ``rank * decay`` (rounded half up)
    to each muscle it names, where decay falls linearly from 1 at ``now`` to 0
    at the window edge. Totals are clamped at SEVERE. Muscles without a
    contribution are absent from the result, which reads as NONE.

    Args:
        events: Fatigue events in any order.
        window_hours: Rolling window length, must be > 0.
        now: Query time. Events after it are ignored.

    Returns:
        A dict mapping MuscleGroup to FatigueLevel.

    Raises:
        ConfigurationError: if ``window_hours`` is not positive.
    """
    window_seconds = validate_window_hours(window_hours) * 3600.0
    now = ensure_utc(now)
    cutoff = now - timedelta(seconds=window_seconds)

    totals: Dict[MuscleGroup, int] = {}
    for event in events:
        # Stricter than the cutoff alone: events dated after the query time do not count yet.
        if event.timestamp < cutoff or event.timestamp > now:
            continue
        age_seconds = (now - event.timestamp).total_seconds()
        decay = max(0.0, 1.0 - age_seconds / window_seconds)
        for muscle, level in event.muscle_levels.items():
            contribution = _round_half_up(level.rank * decay)
            if contribution:
                totals[muscle] = totals.get(muscle, 0) + contribution

    return {muscle: FatigueLevel.from_rank(total) for muscle, total in totals.items()}


def level_for(fatigue: FatigueMap, muscle: MuscleGroup) -> FatigueLevel:
    return fatigue.get(muscle, FatigueLevel.NONE)


class FatigueProfile:
    """One user's fatigue history plus the rolling window it is read through."""

    def __init__(self, rolling_window_hours: float = DEFAULT_ROLLING_WINDOW_HOURS,
                 events: Iterable[FatigueEvent] = ()):
        self._window_hours = validate_window_hours(rolling_window_hours)
        # Re-entrant: the manual override holds it across its check and add_events.
        self._lock = threading.RLock()
        self._events: Tuple[FatigueEvent, ...] = ()
        self._keys = set()
        self.add_events(events)

    @property
    def rolling_window_hours(self) -> float:
        return self._window_hours

    @rolling_window_hours.setter
    def rolling_window_hours(self, value: float):
        # Applies retroactively to every later query; stored events are not touched.
        self._window_hours = validate_window_hours(value)

    @property
    def events(self) -> Tuple[FatigueEvent, ...]:
        return self._events

    def snapshot(self) -> Tuple[FatigueEvent, ...]:
        return self._events

    def __len__(self) -> int:
        return len(self._events)

    def current_fatigue(self, at: Optional[datetime] = None) -> FatigueMap:
        now = at or datetime.now(timezone.utc)
        return current_fatigue(self.snapshot(), self._window_hours, now)

    def add_events(self, events: Iterable[FatigueEvent]) -> List[FatigueEvent]:
        """
        Appends events not already present under the same (timestamp, source_name).

        Returns the events actually appended, so callers can persist only those.
        """
        incoming = list(events)
        appended = []
        with self._lock:
            keys = set(self._keys)
            for event in incoming:
                if event.dedup_key in keys:
                    continue
                keys.add(event.dedup_key)
                appended.append(event)
            if appended:
                self._events = self._events + tuple(appended)
                self._keys = keys
        if incoming and len(appended) < len(incoming):
            logger.debug(f"Skipped {len(incoming) - len(appended)} duplicate fatigue events.")
        return appended

    def remove_event(self, event_id: uuid.UUID) -> bool:
        with self._lock:
            remaining = tuple(e for e in self._events if e.id != event_id)
            if len(remaining) == len(self._events):
                return False
            self._events = remaining
            self._keys = {e.dedup_key for e in remaining}
        return True

    def apply_manual_override(self, muscle: MuscleGroup, at: Optional[datetime] = None) -> Optional[FatigueEvent]:
        """
        Marks one muscle as sore right now.

        Nothing is added when the muscle already reads MEDIUM or higher, so
        tapping the override twice does not stack.
        """
        now = ensure_utc(at or datetime.now(timezone.utc))
        with self._lock:
            current = level_for(self.current_fatigue(now), muscle)
            if current.rank >= MANUAL_OVERRIDE_SKIP_RANK:
                logger.info(f"Manual override for {muscle.value} skipped, already at {current.name.lower()}.")
                return None
            event = FatigueEvent(
                timestamp=now,
                source_kind=FatigueSourceKind.EXTERNAL_SPORT,
                source_name=f"Manual Override: {muscle.value}",
                muscle_levels={muscle: FatigueLevel.from_rank(MANUAL_OVERRIDE_FATIGUE_RANK)},
            )
            appended = self.add_events([event])
        return appended[0] if appended else None

    def sync_activity_feed(self, fetch_records: Callable[[], Iterable[ActivityRecord]]) -> List[FatigueEvent]:
        """
        Pulls the external activity feed and appends the translated events.

        Raises:
            ActivityFeedError: if the feed cannot be read. The profile is left unchanged.
        """
        try:
            records = list(fetch_records())
        except Exception as e:
            logger.error(f"Activity feed unavailable: {e}", exc_info=True)
            raise ActivityFeedError(f"Activity feed unavailable: {e}") from e
        appended = self.add_events(translate_feed(records))
        logger.info(f"Activity sync: {len(records)} records, {len(appended)} new fatigue events.")
        return appended
