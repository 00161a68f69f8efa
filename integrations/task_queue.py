"""
Background job queue for batch geocoding.

Each batch step that leaves work behind enqueues the next step as an rq job.
Progress therefore survives worker restarts and execution-time limits: the
job only carries the list id, all other state lives in the database.
"""

from typing import Optional, Protocol
import structlog

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue

from config import settings
from exceptions import ExternalServiceError

logger = structlog.get_logger(__name__)


SERVICE_NAME = "task_queue"
GEOCODE_STEP_JOB = "services.geocode_batch_service.run_geocode_batch_step"


class ContinuationScheduler(Protocol):
    """Anything that can make sure another batch step runs for a list."""

    def schedule(self, list_id: str) -> Optional[str]:
        """Schedule the next step; returns a job id when one is known."""
        ...


def get_redis_connection() -> Redis:
    """Create a Redis connection from settings."""
    return Redis.from_url(settings.redis_url)


class GeocodeContinuationQueue:
    """Enqueues batch geocoding steps on an rq queue."""

    def __init__(self, queue: Optional[Queue] = None):
        self._queue = queue

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue(
                settings.geocode_queue_name,
                connection=get_redis_connection(),
                default_timeout=settings.geocode_job_timeout_seconds,
            )
        return self._queue

    def schedule(self, list_id: str) -> Optional[str]:
        """
        Enqueue one batch geocoding step for a list.

        Returns:
            rq job id

        Raises:
            ExternalServiceError: If the job could not be enqueued
        """
        try:
            job = self.queue.enqueue(
                GEOCODE_STEP_JOB,
                list_id,
                description=f"geocode batch for list {list_id}",
            )
        except RedisError as e:
            logger.error("geocode_step_enqueue_failed", list_id=list_id, error=str(e))
            raise ExternalServiceError(
                SERVICE_NAME,
                f"Could not enqueue geocoding step: {e}",
                details={"list_id": list_id},
            ) from e

        logger.info("geocode_step_enqueued", list_id=list_id, job_id=job.id)
        return job.id


_queue: Optional[GeocodeContinuationQueue] = None


def get_continuation_queue() -> GeocodeContinuationQueue:
    """Get or create the shared continuation queue."""
    global _queue
    if _queue is None:
        _queue = GeocodeContinuationQueue()
    return _queue
