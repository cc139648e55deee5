# Run with: python -m bestday.workers.worker
# or: rq worker -u redis://localhost:6379/0 default
import logging

from rq import Queue, Worker

from bestday.core.config import settings
from bestday.core.logging import LOGGER_NAME, configure_logging
from bestday.features.jobs.queue import QUEUE_NAME, get_redis_conn

configure_logging(settings.ENV)
logger = logging.getLogger(LOGGER_NAME)

listen = [QUEUE_NAME]


def main() -> None:
    conn = get_redis_conn()
    worker = Worker([Queue(name, connection=conn) for name in listen], connection=conn)
    logger.info("Starting RQ worker.")
    worker.work()


if __name__ == "__main__":
    main()
