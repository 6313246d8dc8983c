import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_prediction_queue, get_scoring_client
from app.config import get_settings
from app.domains.accounts.api.user_endpoints import get_current_user
from app.domains.accounts.models.user import User
from app.domains.predictions.features import extract_features
from app.domains.predictions.processor import write_prediction
from app.domains.predictions.queue import PredictionQueue, enqueue_prediction, require_enqueue
from app.domains.predictions.scoring_client import ScoringClient
from app.shared.exceptions import ListingNotFoundException, ListingPermissionException, UploadRejectedException
from ..models.listing import Listing
from ..schemas.listing import (
    ListingCreate, ListingUpdate, ListingEnvelope, ListingResponse, ListingImageResponse,
    PhotoUploadResponse, PredictionTriggerResponse, PredictNowResponse
)
from ..services.listing_service import ListingService, DEFAULT_SEARCH_LIMIT, MAX_SEARCH_LIMIT
from ..services.presentation import present_listing, present_listings
from ..services.upload_service import UploadService, get_upload_service

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_listing_or_404(db: AsyncSession, listing_id: str) -> Listing:
    listing = await ListingService.get_listing_by_id(db, listing_id)
    if not listing:
        raise ListingNotFoundException(listing_id)
    return listing


@router.post("/", response_model=ListingEnvelope, status_code=status.HTTP_201_CREATED)
async def create_listing(
    listing_data: ListingCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue: PredictionQueue = Depends(get_prediction_queue)
):
    listing = await ListingService.create_listing(
        db, current_user.id, listing_data, get_settings().exchange_rate_usd_to_inr
    )
    await enqueue_prediction(queue, listing.id, extract_features(listing))
    return {"listing": present_listing(listing)}


@router.get("/search", response_model=List[ListingResponse])
async def search_listings(
    q: Optional[str] = None,
    city: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    owner_id: Optional[int] = None,
    limit: int = Query(DEFAULT_SEARCH_LIMIT, ge=1, le=MAX_SEARCH_LIMIT),
    db: AsyncSession = Depends(get_db)
):
    listings = await ListingService.search_listings(
        db, q=q, city=city, min_price=min_price, max_price=max_price, owner_id=owner_id, limit=limit
    )
    return present_listings(listings)


@router.get("/{listing_id}", response_model=ListingEnvelope)
async def get_listing(listing_id: str, db: AsyncSession = Depends(get_db)):
    listing = await get_listing_or_404(db, listing_id)
    return {"listing": present_listing(listing)}


@router.put("/{listing_id}", response_model=ListingEnvelope)
async def update_listing(
    listing_id: str,
    listing_data: ListingUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue: PredictionQueue = Depends(get_prediction_queue)
):
    listing = await get_listing_or_404(db, listing_id)
    ListingService.ensure_can_modify(listing, current_user)

    listing, inputs_changed = await ListingService.update_listing(db, listing, listing_data)
    if inputs_changed:
        await enqueue_prediction(queue, listing.id, extract_features(listing))
    return {"listing": present_listing(listing)}


@router.delete("/{listing_id}")
async def delete_listing(
    listing_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    uploads: UploadService = Depends(get_upload_service)
):
    listing = await get_listing_or_404(db, listing_id)
    ListingService.ensure_can_modify(listing, current_user)

    filenames = await ListingService.delete_listing(db, listing)
    uploads.delete_files(filenames)
    return {"ok": True}


@router.post("/{listing_id}/photos", response_model=PhotoUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_listing_photos(
    listing_id: str,
    request: Request,
    images: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    uploads: UploadService = Depends(get_upload_service)
):
    listing = await get_listing_or_404(db, listing_id)
    ListingService.ensure_can_modify(listing, current_user)
    if not images:
        raise UploadRejectedException("images", "no files uploaded")

    stored = await uploads.save_images(images, str(request.base_url))
    created = await ListingService.add_images(db, listing, stored)
    return {"uploaded": [ListingImageResponse.model_validate(image) for image in created]}


@router.post("/{listing_id}/predict", response_model=PredictionTriggerResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_prediction(
    listing_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue: PredictionQueue = Depends(get_prediction_queue)
):
    """Manually re-queue a prediction, e.g. after retries were exhausted."""
    listing = await get_listing_or_404(db, listing_id)
    ListingService.ensure_can_modify(listing, current_user)

    job_id = await require_enqueue(queue, listing.id)
    return {"queued": job_id is not None, "job_id": job_id}


@router.post("/{listing_id}/predict-now", response_model=PredictNowResponse)
async def predict_now(
    listing_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    scoring_client: ScoringClient = Depends(get_scoring_client)
):
    """Score a listing synchronously, bypassing the queue (admin only)."""
    listing = await get_listing_or_404(db, listing_id)
    if not current_user.is_admin:
        raise ListingPermissionException(listing.id, current_user.id)

    result = await scoring_client.score(extract_features(listing))
    if not await write_prediction(db, listing.id, result):
        raise ListingNotFoundException(listing_id)
    await db.commit()

    listing = await get_listing_or_404(db, listing_id)
    logger.info(f"predict-now stored {result.predicted_value} for listing {listing_id}")
    return {
        "ok": True,
        "predicted": result.predicted_value,
        "model_version": result.model_version,
        "listing": present_listing(listing),
    }
