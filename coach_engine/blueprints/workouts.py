from flask import Blueprint, request, jsonify, current_app
from coach_engine.app import get_db_connection, release_db_connection, logger, limiter
import psycopg2
import uuid
from datetime import datetime, timezone

from coach_engine.activity_mapper import parse_timestamp
from coach_engine.errors import CollaboratorError, ConfigurationError
from coach_engine.models import Equipment, WorkoutGoal, parse_equipment_list
from coach_engine.repository import (
    PostgresExerciseRepository,
    load_fatigue_profile,
    save_fatigue_events,
    save_workout_session,
)
from coach_engine.scoring import explain_score
from coach_engine.session_builder import WorkoutEngine, exercise_slot_count
from coach_engine.workout_log import WorkoutSession

workouts_bp = Blueprint('workouts', __name__)


def _request_goal(data):
    return WorkoutGoal.parse(data.get('goal') or current_app.config['DEFAULT_WORKOUT_GOAL'])


def _request_time(data):
    raw = data.get('at')
    return parse_timestamp(raw) if raw is not None else datetime.now(timezone.utc)


def _parse_uuid(raw, field_name):
    try:
        return uuid.UUID(str(raw))
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid {field_name}: {raw!r}") from None


@workouts_bp.route('/v1/workouts/generate', methods=['POST'])
@limiter.limit("30 per hour")
def generate_workout():
    data = request.get_json(silent=True) or {}
    try:
        if 'available_minutes' not in data:
            raise ConfigurationError("available_minutes is required.")
        goal = _request_goal(data)
        equipment = parse_equipment_list(data.get('available_equipment'))
        slot_count = exercise_slot_count(data['available_minutes'])
        now = _request_time(data)
    except ConfigurationError as e:
        return jsonify(error=str(e)), 400

    conn = None
    try:
        conn = get_db_connection()
        profile = load_fatigue_profile(conn, current_app.config['FATIGUE_WINDOW_HOURS'])
        engine = WorkoutEngine(PostgresExerciseRepository(conn))
        slots = engine.generate_workout(data['available_minutes'], goal, equipment, profile, now=now)

        fatigue = profile.current_fatigue(now)
        slot_dicts = []
        for slot in slots:
            slot_dict = slot.to_dict()
            slot_dict['score'] = explain_score(slot.exercise, fatigue)
            slot_dicts.append(slot_dict)

        return jsonify({
            'goal': goal.value,
            'max_slots': slot_count,
            'slots': slot_dicts,
            'message': None if slots else "No exercises available for this equipment and fatigue state.",
        }), 200
    except CollaboratorError as e:
        return jsonify(error=str(e)), 503
    except psycopg2.Error as e:
        logger.error(f"Database error generating workout: {e}", exc_info=True)
        return jsonify(error="Database error generating workout."), 500
    finally:
        if conn:
            release_db_connection(conn)


@workouts_bp.route('/v1/workouts/alternative', methods=['POST'])
def find_alternative():
    data = request.get_json(silent=True) or {}
    try:
        exercise_id = _parse_uuid(data.get('exercise_id'), 'exercise_id')
        goal = _request_goal(data)
        equipment = parse_equipment_list(data.get('available_equipment'))
        now = _request_time(data)
    except ConfigurationError as e:
        return jsonify(error=str(e)), 400

    conn = None
    try:
        conn = get_db_connection()
        repository = PostgresExerciseRepository(conn)
        original = repository.get_exercise(exercise_id)
        if original is None:
            return jsonify(error="Exercise not found."), 404

        profile = load_fatigue_profile(conn, current_app.config['FATIGUE_WINDOW_HOURS'])
        engine = WorkoutEngine(repository)
        current_slot = engine.build_slot(original, goal)
        swapped = engine.swap_slot(current_slot, goal, equipment, profile, now=now)
        if swapped is current_slot:
            return jsonify(alternative=None, message="No suitable alternative found."), 200
        return jsonify(alternative=swapped.to_dict()), 200
    except CollaboratorError as e:
        return jsonify(error=str(e)), 503
    except psycopg2.Error as e:
        logger.error(f"Database error finding alternative for {exercise_id}: {e}", exc_info=True)
        return jsonify(error="Database error finding alternative."), 500
    finally:
        if conn:
            release_db_connection(conn)


def _build_session(data):
    """Builds a WorkoutSession from the completion payload."""
    sets = data.get('sets')
    if not isinstance(sets, list) or not sets:
        raise ConfigurationError("A completed workout needs a non-empty 'sets' list.")
    equipment = data.get('available_equipment')
    session = WorkoutSession(
        name=data.get('name'),
        started_at=parse_timestamp(data['started_at']) if data.get('started_at') else datetime.now(timezone.utc),
        available_equipment=parse_equipment_list(equipment) if equipment is not None else frozenset(Equipment),
        target_duration_minutes=data.get('target_duration_minutes'),
        notes=data.get('notes'),
    )
    for item in sets:
        if not isinstance(item, dict):
            raise ConfigurationError("Each set must be an object.")
        try:
            weight = float(item.get('weight', 0))
            reps = int(item['reps'])
            rir = int(item['reps_in_reserve']) if item.get('reps_in_reserve') is not None else None
            rpe = float(item['rpe']) if item.get('rpe') is not None else None
        except (KeyError, TypeError, ValueError):
            raise ConfigurationError(f"Invalid set: {item!r}") from None
        extra = {
            'is_warmup': bool(item.get('is_warmup', False)),
            'reps_in_reserve': rir,
            'rpe': rpe,
            'tempo': item.get('tempo'),
        }
        if item.get('completed_at'):
            extra['completed_at'] = parse_timestamp(item['completed_at'])
        session.log_set(_parse_uuid(item.get('exercise_id'), 'exercise_id'), weight, reps, **extra)
    return session


@workouts_bp.route('/v1/workouts/complete', methods=['POST'])
def complete_workout():
    """Stores a finished session and records the gym fatigue it caused."""
    data = request.get_json(silent=True) or {}
    try:
        session = _build_session(data)
        finished_at = parse_timestamp(data['completed_at']) if data.get('completed_at') else None
    except ConfigurationError as e:
        return jsonify(error=str(e)), 400

    conn = None
    try:
        conn = get_db_connection()
        repository = PostgresExerciseRepository(conn)
        exercises_by_id = repository.get_exercises({s.exercise_id for s in session.sets})
        unknown = {s.exercise_id for s in session.sets} - set(exercises_by_id)
        if unknown:
            return jsonify(error=f"Unknown exercise ids: {sorted(str(u) for u in unknown)}"), 400

        event = session.finish(exercises_by_id, finished_at)
        save_workout_session(conn, session)

        added = []
        if event is not None:
            profile = load_fatigue_profile(conn, current_app.config['FATIGUE_WINDOW_HOURS'])
            added = profile.add_events([event])
            save_fatigue_events(conn, added)
        conn.commit()

        logger.info(f"Workout {session.id} completed: {len(session.sets)} sets, volume {session.total_volume:.1f}.")
        return jsonify({
            'session': session.summary(),
            'fatigue_event': added[0].to_dict() if added else None,
        }), 201
    except CollaboratorError as e:
        if conn:
            conn.rollback()
        return jsonify(error=str(e)), 503
    except psycopg2.Error as e:
        if conn:
            conn.rollback()
        logger.error(f"Database error completing workout: {e}", exc_info=True)
        return jsonify(error="Database error storing workout."), 500
    finally:
        if conn:
            release_db_connection(conn)


@workouts_bp.route('/v1/exercises', methods=['GET'])
def list_exercises():
    raw_equipment = request.args.get('equipment')
    try:
        equipment = None
        if raw_equipment is not None:
            equipment = parse_equipment_list([e for e in raw_equipment.split(',') if e.strip()])
    except ConfigurationError as e:
        return jsonify(error=str(e)), 400

    conn = None
    try:
        conn = get_db_connection()
        exercises = PostgresExerciseRepository(conn).fetch_exercises(equipment)
        return jsonify([ex.to_dict() for ex in exercises]), 200
    except CollaboratorError as e:
        return jsonify(error=str(e)), 503
    finally:
        if conn:
            release_db_connection(conn)
