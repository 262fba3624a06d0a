import logging
from rq import Worker
from rq.registry import FailedJobRegistry
from coach_engine.tasks import queue, redis_conn


def requeue_failed_syncs():
    """Activity sync jobs are idempotent, so anything that failed is simply run again."""
    failed_registry = FailedJobRegistry(queue.name, connection=redis_conn)
    job_ids = failed_registry.get_job_ids()
    for job_id in job_ids:
        logging.info("Requeuing failed activity sync job %s", job_id)
        queue.requeue(job_id)
    return len(job_ids)


def main():
    logging.basicConfig(level=logging.INFO)
    requeued = requeue_failed_syncs()
    if requeued:
        logging.info("Requeued %s failed jobs before start-up", requeued)
    Worker([queue], connection=redis_conn).work(with_scheduler=True)


if __name__ == "__main__":
    main()
