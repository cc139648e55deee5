"""
Background job registry backed by RQ.

Admin endpoints enqueue by name; `python -m bestday.workers.worker`
executes them.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from redis import Redis
from rq import Queue

from bestday.core.config import settings
from bestday.core.errors import NotFoundError
from bestday.core.logging import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

QUEUE_NAME = "default"


def poll_shipments_job() -> Dict:
    from bestday.features.shipments.poller import poll_shipments

    return poll_shipments()


def reconcile_pledges_job() -> Dict:
    from bestday.features.pledges.reconcile_job import run_reconcile_job

    return run_reconcile_job()


JOBS: Dict[str, Callable[[], Dict]] = {
    "poll_shipments": poll_shipments_job,
    "reconcile_pledges": reconcile_pledges_job,
}


def get_redis_conn() -> Redis:
    return Redis.from_url(settings.REDIS_URL)


def get_queue(connection: Optional[Redis] = None) -> Queue:
    return Queue(QUEUE_NAME, connection=connection or get_redis_conn())


def enqueue_job(job_name: str, queue: Optional[Queue] = None) -> str:
    """Enqueue a registered job and return its RQ job id."""
    func = JOBS.get(job_name)
    if func is None:
        raise NotFoundError(f"Unknown job: {job_name}")

    queue = queue or get_queue()
    job = queue.enqueue(func)
    logger.info(f"[jobs] enqueued {job_name}: {job.id}", extra={"job_name": job_name})
    return job.id
