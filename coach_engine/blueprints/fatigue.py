from flask import Blueprint, request, jsonify, current_app
from coach_engine.app import get_db_connection, release_db_connection, logger, limiter
import psycopg2
from datetime import datetime, timezone

from coach_engine.activity_mapper import ActivityRecord, parse_timestamp
from coach_engine.errors import CollaboratorError, ConfigurationError
from coach_engine.fatigue import validate_window_hours
from coach_engine.models import MuscleGroup, fatigue_map_to_dict
from coach_engine.repository import (
    delete_fatigue_event,
    load_fatigue_profile,
    save_fatigue_events,
    update_rolling_window,
)
from coach_engine.tasks import enqueue_activity_sync

fatigue_bp = Blueprint('fatigue', __name__)


def _query_time():
    raw = request.args.get('at')
    if raw is None:
        return datetime.now(timezone.utc)
    return parse_timestamp(raw)


def _activity_records(data):
    activities = data.get('activities') if isinstance(data, dict) else None
    if not isinstance(activities, list):
        raise ConfigurationError("Request body must contain an 'activities' list.")
    return [ActivityRecord.from_dict(item) for item in activities]


@fatigue_bp.route('/v1/fatigue', methods=['GET'])
def get_current_fatigue():
    conn = None
    try:
        at = _query_time()
        conn = get_db_connection()
        profile = load_fatigue_profile(conn, current_app.config['FATIGUE_WINDOW_HOURS'])
        fatigue = profile.current_fatigue(at)
        return jsonify({
            'at': at.isoformat(),
            'rolling_window_hours': profile.rolling_window_hours,
            'fatigue': fatigue_map_to_dict(fatigue),
            'levels': {m.value: level.name.lower() for m, level in fatigue.items()},
        }), 200
    except ConfigurationError as e:
        return jsonify(error=str(e)), 400
    except psycopg2.Error as e:
        logger.error(f"Database error computing current fatigue: {e}", exc_info=True)
        return jsonify(error="Database error computing fatigue."), 500
    finally:
        if conn:
            release_db_connection(conn)


@fatigue_bp.route('/v1/fatigue/events', methods=['GET'])
def list_fatigue_events():
    conn = None
    try:
        conn = get_db_connection()
        profile = load_fatigue_profile(conn, current_app.config['FATIGUE_WINDOW_HOURS'])
        events = sorted(profile.events, key=lambda e: e.timestamp, reverse=True)
        return jsonify([e.to_dict() for e in events]), 200
    except psycopg2.Error as e:
        logger.error(f"Database error listing fatigue events: {e}", exc_info=True)
        return jsonify(error="Database error listing fatigue events."), 500
    finally:
        if conn:
            release_db_connection(conn)


@fatigue_bp.route('/v1/fatigue/activities', methods=['POST'])
@limiter.limit("60 per hour")
def ingest_activities():
    """Applies a batch of external activity records; re-sending a batch is a no-op."""
    data = request.get_json(silent=True)
    try:
        records = _activity_records(data)
    except ConfigurationError as e:
        return jsonify(error=str(e)), 400

    conn = None
    try:
        conn = get_db_connection()
        profile = load_fatigue_profile(conn, current_app.config['FATIGUE_WINDOW_HOURS'])
        appended = profile.sync_activity_feed(lambda: records)
        save_fatigue_events(conn, appended)
        conn.commit()
        logger.info(f"Ingested {len(records)} activities, {len(appended)} new fatigue events.")
        return jsonify({
            'received': len(records),
            'added': [e.to_dict() for e in appended],
        }), 201
    except CollaboratorError as e:
        return jsonify(error=str(e)), 503
    except psycopg2.Error as e:
        if conn:
            conn.rollback()
        logger.error(f"Database error ingesting activities: {e}", exc_info=True)
        return jsonify(error="Database error storing fatigue events."), 500
    finally:
        if conn:
            release_db_connection(conn)


@fatigue_bp.route('/v1/fatigue/override/<string:muscle>', methods=['POST'])
def manual_override(muscle):
    muscle_group = MuscleGroup.parse(muscle)
    if muscle_group is None:
        return jsonify(error=f"Unknown muscle group: {muscle}"), 400

    conn = None
    try:
        conn = get_db_connection()
        profile = load_fatigue_profile(conn, current_app.config['FATIGUE_WINDOW_HOURS'])
        event = profile.apply_manual_override(muscle_group)
        if event is None:
            return jsonify(applied=False, message=f"{muscle_group.value} is already fatigued."), 200
        save_fatigue_events(conn, [event])
        conn.commit()
        return jsonify(applied=True, event=event.to_dict()), 201
    except psycopg2.Error as e:
        if conn:
            conn.rollback()
        logger.error(f"Database error applying manual override for {muscle}: {e}", exc_info=True)
        return jsonify(error="Database error applying override."), 500
    finally:
        if conn:
            release_db_connection(conn)


@fatigue_bp.route('/v1/fatigue/events/<uuid:event_id>', methods=['DELETE'])
def remove_fatigue_event(event_id):
    conn = None
    try:
        conn = get_db_connection()
        deleted = delete_fatigue_event(conn, event_id)
        if not deleted:
            return jsonify(error="Fatigue event not found."), 404
        conn.commit()
        return jsonify(message="Fatigue event deleted."), 200
    except psycopg2.Error as e:
        if conn:
            conn.rollback()
        logger.error(f"Database error deleting fatigue event {event_id}: {e}", exc_info=True)
        return jsonify(error="Database error deleting fatigue event."), 500
    finally:
        if conn:
            release_db_connection(conn)


@fatigue_bp.route('/v1/fatigue/window', methods=['PUT'])
def set_rolling_window():
    data = request.get_json(silent=True) or {}
    try:
        window_hours = validate_window_hours(data.get('rolling_window_hours'))
    except ConfigurationError as e:
        return jsonify(error=str(e)), 400

    conn = None
    try:
        conn = get_db_connection()
        update_rolling_window(conn, window_hours)
        conn.commit()
        return jsonify(rolling_window_hours=window_hours), 200
    except psycopg2.Error as e:
        if conn:
            conn.rollback()
        logger.error(f"Database error updating rolling window: {e}", exc_info=True)
        return jsonify(error="Database error updating rolling window."), 500
    finally:
        if conn:
            release_db_connection(conn)


@fatigue_bp.route('/v1/system/sync-activities', methods=['POST'])
@limiter.limit("10 per hour")
def trigger_activity_sync():
    """Queues an activity batch for background processing."""
    data = request.get_json(silent=True)
    try:
        records = _activity_records(data)
    except ConfigurationError as e:
        return jsonify(error=str(e)), 400
    job = enqueue_activity_sync(data['activities'])
    logger.info(f"Queued activity sync job {job.id} with {len(records)} records.")
    return jsonify(message="Activity sync queued", job_id=job.id), 202
