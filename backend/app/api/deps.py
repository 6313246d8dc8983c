from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.session import AsyncSessionLocal
from app.domains.predictions.queue import PredictionQueue, NullPredictionQueue
from app.domains.predictions.scoring_client import ScoringClient


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency to get an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_prediction_queue(request: Request) -> PredictionQueue:
    """The queue handle built during application startup."""
    queue = getattr(request.app.state, "prediction_queue", None)
    return queue if queue is not None else NullPredictionQueue()


def get_scoring_client(request: Request) -> ScoringClient:
    return request.app.state.scoring_client
