"""
Prediction Processor

One prediction run for one listing, independent of the queue that
scheduled it:

1. re-read the listing (a deleted listing ends the run as a no-op),
2. extract features from that fresh row,
3. score them,
4. write only the prediction columns back.

Job payload snapshots are never used; attributes may have changed between
enqueue and execution. No database session is held across the scoring call.
"""
# Standard library imports
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Third-party imports
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# App imports
from app.domains.listings.models.listing import Listing
from .features import extract_features
from .scoring_client import PredictionResult, ScoringClient

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_SKIPPED = "skipped"
REASON_LISTING_DELETED = "listing-deleted"


async def write_prediction(db: AsyncSession, listing_id: str, result: PredictionResult) -> bool:
    """
    Store a prediction on a listing without touching any other column.

    Returns False when the listing no longer exists. Caller commits.
    """
    stmt = (
        update(Listing)
        .where(Listing.id == listing_id)
        .values(
            predicted_rent=result.predicted_value,
            predicted_at=datetime.now(timezone.utc).replace(tzinfo=None),
            prediction_model_version=result.model_version,
            # updated_at tracks owner edits only
            updated_at=Listing.updated_at,
        )
        .execution_options(synchronize_session=False)
    )
    outcome = await db.execute(stmt)
    return outcome.rowcount > 0


class PredictionProcessor:
    """Runs the re-fetch / extract / score / write-back sequence."""

    def __init__(self, session_factory: async_sessionmaker, scoring_client: ScoringClient):
        self.session_factory = session_factory
        self.scoring_client = scoring_client

    async def _load_features(self, listing_id: str) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as db:
            result = await db.execute(select(Listing).where(Listing.id == listing_id))
            listing = result.scalar_one_or_none()
            if listing is None:
                return None
            return extract_features(listing)

    async def process(self, listing_id: str) -> Dict[str, Any]:
        features = await self._load_features(listing_id)
        if features is None:
            logger.info(f"Listing {listing_id} no longer exists; prediction skipped")
            return {"status": STATUS_SKIPPED, "reason": REASON_LISTING_DELETED}

        result = await self.scoring_client.score(features)

        async with self.session_factory() as db:
            written = await write_prediction(db, listing_id, result)
            await db.commit()

        if not written:
            logger.info(f"Listing {listing_id} was deleted while scoring; prediction discarded")
            return {"status": STATUS_SKIPPED, "reason": REASON_LISTING_DELETED}

        logger.info(f"Stored predicted rent {result.predicted_value} for listing {listing_id}")
        return {
            "status": STATUS_OK,
            "predicted": result.predicted_value,
            "model_version": result.model_version,
        }
