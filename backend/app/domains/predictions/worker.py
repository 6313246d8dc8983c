"""
Prediction Worker

arq worker that consumes ``predict_listing`` jobs. Run it with::

    arq app.domains.predictions.worker.WorkerSettings

or ``python -m app.domains.predictions.cli worker``.

Retry policy: a failed attempt is re-queued with exponential backoff
(``backoff_seconds * 2 ** (attempt - 1)``) until ``max_attempts`` runs have
happened, after which the error propagates and arq marks the job failed.
Deferred retries sit in the queue's time-scored set and every worker polls
it, so retries keep moving without any separate scheduler process.
"""
# Standard library imports
import logging
from typing import Any, Dict, Optional

# Third-party imports
from arq import Retry, func
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# App imports
from app.config import get_settings
from .processor import PredictionProcessor
from .queue import PREDICT_JOB_NAME, JobState
from .scoring_client import ScoringClient

logger = logging.getLogger(__name__)

settings = get_settings()


def retry_delay(attempt: int, backoff_seconds: float) -> float:
    """Delay before the attempt following ``attempt`` (1-based)."""
    return backoff_seconds * (2 ** (attempt - 1))


async def predict_listing(
    ctx: Dict[str, Any],
    listing_id: str,
    features: Optional[Dict[str, Any]] = None,
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Compute and store the rent prediction for one listing.

    ``features`` is the producer's snapshot and is ignored; the processor
    re-derives features from the current listing row.
    """
    processor: PredictionProcessor = ctx["processor"]
    job_id = ctx.get("job_id")
    attempt = ctx.get("job_try") or 1
    max_attempts = max_attempts or settings.prediction_max_attempts
    backoff_seconds = backoff_seconds or settings.prediction_backoff_seconds

    try:
        outcome = await processor.process(listing_id)
    except Exception as e:
        if attempt >= max_attempts:
            logger.error(
                f"Prediction job {job_id} for listing {listing_id} {JobState.FAILED.value} "
                f"after {attempt} attempts: {e}"
            )
            raise
        delay = retry_delay(attempt, backoff_seconds)
        logger.warning(
            f"Prediction job {job_id} for listing {listing_id} attempt {attempt}/{max_attempts} failed: {e}; "
            f"retrying in {delay}s"
        )
        raise Retry(defer=delay) from e

    logger.info(f"Prediction job {job_id} for listing {listing_id} {JobState.COMPLETED.value}: {outcome['status']}")
    return outcome


async def on_job_start(ctx: Dict[str, Any]) -> None:
    logger.info(f"Prediction job {ctx.get('job_id')} {JobState.ACTIVE.value} (attempt {ctx.get('job_try')})")


async def startup(ctx: Dict[str, Any]) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    engine = create_async_engine(settings.database_url, echo=settings.db_echo)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    scoring_client = ScoringClient()
    ctx["engine"] = engine
    ctx["scoring_client"] = scoring_client
    ctx["processor"] = PredictionProcessor(session_factory, scoring_client)
    logger.info(
        f"Prediction worker started; queue={settings.prediction_queue_name} "
        f"ml_base_url={settings.ml_base_url} concurrency={settings.worker_concurrency}"
    )


async def shutdown(ctx: Dict[str, Any]) -> None:
    scoring_client: Optional[ScoringClient] = ctx.get("scoring_client")
    if scoring_client:
        await scoring_client.close()
    engine = ctx.get("engine")
    if engine:
        await engine.dispose()
    logger.info("Prediction worker stopped")


class WorkerSettings:
    functions = [func(predict_listing, name=PREDICT_JOB_NAME, max_tries=settings.prediction_max_attempts)]
    on_startup = startup
    on_shutdown = shutdown
    on_job_start = on_job_start
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.prediction_queue_name
    max_jobs = settings.worker_concurrency
    max_tries = settings.prediction_max_attempts
    job_timeout = settings.job_timeout_seconds
    keep_result = settings.job_keep_result_seconds
