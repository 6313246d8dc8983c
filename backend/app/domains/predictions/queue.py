"""
Prediction Job Queue

Producer side of the prediction pipeline. The API never depends on the
queue being healthy: ``create_prediction_queue`` falls back to a
``NullPredictionQueue`` when Redis cannot be reached at startup, and
``enqueue_prediction`` bounds every enqueue and swallows its failures.

The queue handle is built once per process and passed to whoever needs it
(the FastAPI app keeps it on ``app.state``); there is no module-level
connection.
"""
# Standard library imports
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional

# Third-party imports
from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

# App imports
from app.config import Settings, get_settings
from app.shared.exceptions import QueueUnavailableException

logger = logging.getLogger(__name__)

PREDICT_JOB_NAME = "predict_listing"


class JobState(str, Enum):
    """Lifecycle of a prediction job as reported in logs."""
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class PredictionQueue:
    """Capability interface for handing prediction jobs to a worker."""

    available: bool = False

    async def enqueue(
        self,
        listing_id: str,
        features: Optional[Dict[str, Any]] = None,
        *,
        attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ) -> Optional[str]:
        """Queue a prediction for ``listing_id``; returns the job id when one was created."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


class NullPredictionQueue(PredictionQueue):
    """Stand-in used when no queue backend is reachable; drops every job."""

    async def enqueue(self, listing_id, features=None, *, attempts=None, backoff_seconds=None):
        logger.warning(f"Prediction queue unavailable; job for listing {listing_id} skipped")
        return None


class ArqPredictionQueue(PredictionQueue):
    """Redis-backed queue consumed by the arq prediction worker."""

    available = True

    def __init__(self, pool: ArqRedis, settings: Optional[Settings] = None):
        self.pool = pool
        self.settings = settings or get_settings()

    async def enqueue(self, listing_id, features=None, *, attempts=None, backoff_seconds=None):
        job = await self.pool.enqueue_job(
            PREDICT_JOB_NAME,
            listing_id,
            features=features,
            max_attempts=attempts or self.settings.prediction_max_attempts,
            backoff_seconds=backoff_seconds or self.settings.prediction_backoff_seconds,
            _queue_name=self.settings.prediction_queue_name,
        )
        if job is None:
            # arq returns None only when a job with the same id already exists
            return None
        logger.info(f"Enqueued prediction job {job.job_id} for listing {listing_id} ({JobState.WAITING.value})")
        return job.job_id

    async def close(self) -> None:
        await self.pool.aclose()


def build_redis_settings(settings: Settings) -> RedisSettings:
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    # Fail fast at startup; the API degrades to NullPredictionQueue instead of waiting on Redis
    redis_settings.conn_retries = 1
    redis_settings.conn_timeout = max(1, int(settings.enqueue_timeout_seconds))
    return redis_settings


async def create_prediction_queue(settings: Optional[Settings] = None) -> PredictionQueue:
    """Connect to the queue backend, or return a no-op queue if that fails."""
    settings = settings or get_settings()
    try:
        pool = await create_pool(
            build_redis_settings(settings),
            default_queue_name=settings.prediction_queue_name,
        )
        await pool.ping()
    except Exception as e:
        logger.warning(f"Prediction queue backend unavailable at {settings.redis_url}: {e}. Predictions will be skipped.")
        return NullPredictionQueue()
    logger.info(f"Prediction queue connected: {settings.prediction_queue_name}")
    return ArqPredictionQueue(pool, settings)


async def enqueue_prediction(
    queue: PredictionQueue,
    listing_id: str,
    features: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None,
) -> Optional[str]:
    """
    Best-effort enqueue for the listing write path.

    Never raises: a slow or failing backend is logged and treated as a
    skipped job so listing writes stay available.
    """
    timeout = timeout if timeout is not None else get_settings().enqueue_timeout_seconds
    try:
        return await asyncio.wait_for(queue.enqueue(listing_id, features), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Enqueue for listing {listing_id} timed out after {timeout}s; job skipped")
    except Exception as e:
        logger.warning(f"Enqueue for listing {listing_id} failed: {e}; job skipped")
    return None


async def require_enqueue(queue: PredictionQueue, listing_id: str) -> Optional[str]:
    """Enqueue for explicit re-trigger requests, where the caller must know it failed."""
    if not queue.available:
        raise QueueUnavailableException("no queue backend connected")
    try:
        return await asyncio.wait_for(queue.enqueue(listing_id), timeout=get_settings().enqueue_timeout_seconds)
    except Exception as e:
        raise QueueUnavailableException(str(e) or type(e).__name__) from e
