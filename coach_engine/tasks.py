import os
import logging
import psycopg2
from redis import Redis
from rq import Queue, Retry, get_current_job

from coach_engine.activity_mapper import ActivityRecord
from coach_engine.app import get_db_connection, release_db_connection
from coach_engine.repository import load_fatigue_profile, save_fatigue_events

logger = logging.getLogger(__name__)

# Redis connection for RQ
redis_url = os.getenv("REDIS_URL", "redis://redis:6379/0")
redis_conn = Redis.from_url(redis_url)

# Default queue used by the API and worker
queue = Queue("training", connection=redis_conn)

DEFAULT_RETRY = Retry(max=3, interval=[10, 30, 60])


def enqueue_activity_sync(records):
    """Enqueue an activity batch with retry strategy."""
    return queue.enqueue(
        sync_activity_records,
        records,
        retry=DEFAULT_RETRY,
    )


def sync_activity_records(records):
    """
    Applies a batch of raw activity records to the stored fatigue profile.

    Safe to retry: events already stored under the same (timestamp, source name)
    are skipped both in memory and by the insert.
    """
    job = get_current_job()
    if job and job.meta.get("retry_count", 0) > 0:
        logger.info(
            "Retry attempt %s for job %s", job.meta["retry_count"], job.id
        )

    parsed = [ActivityRecord.from_dict(r) for r in records]
    conn = None
    try:
        conn = get_db_connection()
        profile = load_fatigue_profile(conn)
        appended = profile.sync_activity_feed(lambda: parsed)
        inserted = save_fatigue_events(conn, appended)
        conn.commit()
        logger.info("Activity sync stored %s new fatigue events.", inserted)
        return inserted
    except psycopg2.Error as e:
        if conn:
            conn.rollback()
        logger.error("Database error during activity sync: %s", e)
        raise
    finally:
        if conn:
            release_db_connection(conn)
