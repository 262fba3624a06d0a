"""
PostgreSQL persistence for the catalogue, the fatigue profile and logged sessions.

Every function takes an open psycopg2 connection from the pool and leaves
commit/rollback to the caller. Fatigue maps are stored as JSONB
``{muscle: rank}`` objects.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional

import psycopg2
import psycopg2.extras

from coach_engine.constants import DEFAULT_ROLLING_WINDOW_HOURS
from coach_engine.errors import CatalogueUnavailableError
from coach_engine.fatigue import FatigueProfile, validate_window_hours
from coach_engine.models import (
    Equipment,
    Exercise,
    ExerciseHistory,
    FatigueEvent,
    FatigueSourceKind,
    MuscleGroup,
    fatigue_map_from_dict,
    fatigue_map_to_dict,
)
from coach_engine.workout_log import WorkoutSession

logger = logging.getLogger(__name__)

EXERCISE_COLUMNS = "id, name, primary_muscle, secondary_muscles, required_equipment, is_compound, notes"


def row_to_exercise(row) -> Optional[Exercise]:
    """Rows whose primary muscle does not decode are skipped (None)."""
    primary = MuscleGroup.parse(row['primary_muscle'])
    if primary is None:
        logger.warning(f"Exercise {row['name']} has unknown primary muscle '{row['primary_muscle']}', skipped.")
        return None
    secondary = {MuscleGroup.parse(m) for m in (row.get('secondary_muscles') or [])}
    equipment = set()
    for raw in row.get('required_equipment') or []:
        item = Equipment.parse(raw)
        if item is None:
            # Unknown equipment can never be satisfied.
            logger.warning(f"Exercise {row['name']} requires unknown equipment '{raw}', skipped.")
            return None
        equipment.add(item)
    return Exercise(
        id=uuid.UUID(str(row['id'])),
        name=row['name'],
        primary_muscle=primary,
        secondary_muscles=frozenset(m for m in secondary if m is not None and m != primary),
        required_equipment=frozenset(equipment),
        is_compound=bool(row.get('is_compound')),
        notes=row.get('notes'),
    )


def row_to_event(row) -> FatigueEvent:
    return FatigueEvent(
        id=uuid.UUID(str(row['id'])),
        timestamp=row['occurred_at'],
        source_kind=FatigueSourceKind.parse(row['source_kind'], FatigueSourceKind.EXTERNAL_TRACKER),
        source_name=row['source_name'],
        muscle_levels=fatigue_map_from_dict(row.get('muscle_levels')),
    )


class PostgresExerciseRepository:
    """Exercise catalogue backed by the ``exercises`` and ``exercise_sets`` tables."""

    def __init__(self, conn):
        self.conn = conn

    def fetch_exercises(self, available_equipment: Optional[frozenset] = None) -> List[Exercise]:
        """
        Catalogue ordered by name. With ``available_equipment`` only exercises
        whose requirements are covered (bodyweight always included) are returned.
        """
        try:
            with self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                if available_equipment is None:
                    cur.execute(f"SELECT {EXERCISE_COLUMNS} FROM exercises ORDER BY name ASC;")
                else:
                    usable = sorted({e.value for e in available_equipment} | {Equipment.BODYWEIGHT.value})
                    cur.execute(
                        f"""
                        SELECT {EXERCISE_COLUMNS} FROM exercises
                        WHERE required_equipment <@ %s::text[]
                        ORDER BY name ASC;
                        """,
                        (usable,)
                    )
                rows = cur.fetchall()
        except psycopg2.Error as e:
            logger.error(f"Database error fetching exercise catalogue: {e}", exc_info=True)
            raise CatalogueUnavailableError(f"Exercise catalogue unavailable: {e}") from e
        return [ex for ex in (row_to_exercise(r) for r in rows) if ex is not None]

    def get_exercises(self, exercise_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, Exercise]:
        ids = [str(i) for i in exercise_ids]
        if not ids:
            return {}
        try:
            with self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(f"SELECT {EXERCISE_COLUMNS} FROM exercises WHERE id::text = ANY(%s);", (ids,))
                rows = cur.fetchall()
        except psycopg2.Error as e:
            logger.error(f"Database error fetching exercises {ids}: {e}", exc_info=True)
            raise CatalogueUnavailableError(f"Exercise catalogue unavailable: {e}") from e
        exercises = (row_to_exercise(r) for r in rows)
        return {ex.id: ex for ex in exercises if ex is not None}

    def get_exercise(self, exercise_id: uuid.UUID) -> Optional[Exercise]:
        return self.get_exercises([exercise_id]).get(exercise_id)

    def fetch_history(self, exercise_id: uuid.UUID) -> Optional[ExerciseHistory]:
        try:
            with self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT weight_kg, reps, completed_at
                    FROM exercise_sets
                    WHERE exercise_id = %s AND is_warmup = FALSE
                    ORDER BY completed_at DESC, order_index DESC
                    LIMIT 1;
                    """,
                    (str(exercise_id),)
                )
                row = cur.fetchone()
        except psycopg2.Error as e:
            logger.error(f"Database error fetching history for exercise {exercise_id}: {e}", exc_info=True)
            raise CatalogueUnavailableError(f"Exercise history unavailable: {e}") from e
        if not row:
            return None
        return ExerciseHistory(
            exercise_id=exercise_id,
            last_weight=float(row['weight_kg']),
            last_reps=int(row['reps']),
            session_date=row['completed_at'],
        )


# --- Fatigue profile ---

def load_fatigue_profile(conn, default_window_hours: Optional[float] = None) -> FatigueProfile:
    """Builds the profile from the stored window and every stored event."""
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute("SELECT rolling_window_hours FROM fatigue_profile WHERE id = 1;")
        profile_row = cur.fetchone()
        cur.execute(
            """
            SELECT id, occurred_at, source_kind, source_name, muscle_levels
            FROM fatigue_events
            ORDER BY occurred_at ASC;
            """
        )
        event_rows = cur.fetchall()

    if profile_row and profile_row['rolling_window_hours'] is not None:
        window = float(profile_row['rolling_window_hours'])
    else:
        window = default_window_hours or DEFAULT_ROLLING_WINDOW_HOURS
    return FatigueProfile(rolling_window_hours=window, events=[row_to_event(r) for r in event_rows])


def save_fatigue_events(conn, events: Iterable[FatigueEvent]) -> int:
    """Inserts events, silently skipping any (occurred_at, source_name) already stored."""
    inserted = 0
    with conn.cursor() as cur:
        for event in events:
            cur.execute(
                """
                INSERT INTO fatigue_events (id, occurred_at, source_kind, source_name, muscle_levels)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (occurred_at, source_name) DO NOTHING;
                """,
                (
                    str(event.id),
                    event.timestamp,
                    event.source_kind.value,
                    event.source_name,
                    psycopg2.extras.Json(fatigue_map_to_dict(event.muscle_levels)),
                )
            )
            inserted += cur.rowcount or 0
    return inserted


def delete_fatigue_event(conn, event_id: uuid.UUID) -> bool:
    with conn.cursor() as cur:
        cur.execute("DELETE FROM fatigue_events WHERE id = %s;", (str(event_id),))
        return cur.rowcount > 0


def update_rolling_window(conn, window_hours: float) -> float:
    value = validate_window_hours(window_hours)
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO fatigue_profile (id, rolling_window_hours, updated_at)
            VALUES (1, %s, NOW())
            ON CONFLICT (id) DO UPDATE
            SET rolling_window_hours = EXCLUDED.rolling_window_hours, updated_at = NOW();
            """,
            (value,)
        )
    return value


# --- Workout sessions ---

def save_workout_session(conn, session: WorkoutSession) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO workout_sessions
                (id, name, started_at, completed_at, duration_seconds,
                 available_equipment, target_duration_minutes, notes)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s);
            """,
            (
                str(session.id),
                session.name,
                session.started_at,
                session.completed_at,
                session.duration_seconds,
                sorted(e.value for e in session.available_equipment),
                session.target_duration_minutes,
                session.notes,
            )
        )
        for s in session.sets:
            cur.execute(
                """
                INSERT INTO exercise_sets
                    (id, session_id, exercise_id, order_index, weight_kg, reps,
                     reps_in_reserve, rpe, tempo, is_warmup, completed_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s);
                """,
                (
                    str(s.id),
                    str(session.id),
                    str(s.exercise_id),
                    s.order_index,
                    s.weight,
                    s.reps,
                    s.reps_in_reserve,
                    s.rpe,
                    s.tempo,
                    s.is_warmup,
                    s.completed_at,
                )
            )
    logger.info(f"Stored workout session {session.id} with {len(session.sets)} sets.")
