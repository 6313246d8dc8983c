from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import or_
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from app.domains.accounts.models.user import User
from app.domains.accounts.services.user_service import UserService
from app.domains.predictions.features import to_float
from app.shared.exceptions import InvalidListingDataException, ListingPermissionException
from ..models.listing import Listing, ListingImage, PREDICTION_INPUT_COLUMNS
from ..schemas.listing import ListingAttributes, ListingCreate, ListingUpdate
from .upload_service import StoredFile

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 100
DEFAULT_SEARCH_LIMIT = 20

_ATTRIBUTE_FIELDS = tuple(ListingAttributes.model_fields)

# Server-owned fields that must never arrive through the raw attributes blob
_RESERVED_EXTRAS = frozenset({
    "id", "owner_id", "ownerId", "attributes", "is_rented", "isRented",
    "predicted_rent", "predictedRent", "predicted_is_fallback", "predictedIsFallback",
    "predicted_at", "predictedAt", "prediction_model_version", "predictionModelVersion",
    "created_at", "createdAt", "updated_at", "updatedAt", "images",
})

# Update fields backed by NOT NULL columns; an explicit null is rejected
_NOT_NULL_UPDATES = ("price", "is_rented", "attributes")


def _filter_reserved(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in raw.items() if key not in _RESERVED_EXTRAS}


def resolve_asking_price(data: ListingCreate, exchange_rate_usd_to_inr: Optional[float] = None) -> float:
    """Asking price in INR: explicit INR price, then plain price, then converted USD price, else 0."""
    for candidate in (data.price_inr, data.price):
        value = to_float(candidate)
        if value is not None:
            return value
    usd = to_float(data.price_usd)
    if usd is not None:
        return usd * exchange_rate_usd_to_inr if exchange_rate_usd_to_inr else usd
    return 0.0


def _column_value(field: str, value: Any) -> Any:
    if field == "parking" and value is not None:
        return str(value)
    return value


class ListingService:

    @staticmethod
    def ensure_can_modify(listing: Listing, user: User) -> None:
        if listing.owner_id != user.id and not user.is_admin:
            raise ListingPermissionException(listing.id, user.id)

    @staticmethod
    async def create_listing(
        db: AsyncSession,
        owner_id: int,
        listing_data: ListingCreate,
        exchange_rate_usd_to_inr: Optional[float] = None
    ) -> Listing:
        price = resolve_asking_price(listing_data, exchange_rate_usd_to_inr)
        if price < 0:
            raise InvalidListingDataException("price", "must not be negative")

        columns = {
            field: _column_value(field, getattr(listing_data, field))
            for field in _ATTRIBUTE_FIELDS
        }
        if columns["built_up_area_sqft"] is None and columns["super_built_up_area_sqft"] is not None:
            columns["built_up_area_sqft"] = round(columns["super_built_up_area_sqft"] * 0.95)
        if columns["carpet_area_sqft"] is None and columns["built_up_area_sqft"] is not None:
            columns["carpet_area_sqft"] = round(columns["built_up_area_sqft"] * 0.85)

        db_listing = Listing(
            owner_id=owner_id,
            title=listing_data.title.strip(),
            description=listing_data.description or "",
            address=listing_data.address.strip(),
            price=price,
            attributes=_filter_reserved(listing_data.model_extra or {}),
            predicted_rent=None,
            **columns
        )
        db.add(db_listing)
        await UserService.adjust_listing_count(db, owner_id, 1)
        await db.commit()
        return await ListingService.get_listing_by_id(db, db_listing.id)

    @staticmethod
    async def get_listing_by_id(db: AsyncSession, listing_id: str) -> Optional[Listing]:
        result = await db.execute(
            select(Listing)
            .where(Listing.id == listing_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def search_listings(
        db: AsyncSession,
        q: Optional[str] = None,
        city: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        owner_id: Optional[int] = None,
        limit: int = DEFAULT_SEARCH_LIMIT
    ) -> List[Listing]:
        query = select(Listing)
        if q:
            pattern = f"%{q.strip()}%"
            query = query.where(or_(Listing.title.ilike(pattern), Listing.description.ilike(pattern)))
        if city:
            query = query.where(Listing.city.ilike(f"%{city.strip()}%"))
        if min_price is not None:
            query = query.where(Listing.price >= min_price)
        if max_price is not None:
            query = query.where(Listing.price <= max_price)
        if owner_id is not None:
            query = query.where(Listing.owner_id == owner_id)

        limit = max(1, min(MAX_SEARCH_LIMIT, limit))
        result = await db.execute(query.order_by(Listing.created_at.desc(), Listing.id).limit(limit))
        return list(result.scalars().all())

    @staticmethod
    async def update_listing(db: AsyncSession, listing: Listing, listing_data: ListingUpdate) -> Tuple[Listing, bool]:
        """
        Apply owner edits. The prediction columns are not editable here.

        Returns:
            The refreshed listing and whether a prediction input changed
        """
        updates: Dict[str, Any] = listing_data.model_dump(exclude_unset=True)
        if "title" in updates and not (updates["title"] or "").strip():
            raise InvalidListingDataException("title", "must not be empty")
        if "address" in updates and not (updates["address"] or "").strip():
            raise InvalidListingDataException("address", "must not be empty")
        for field in _NOT_NULL_UPDATES:
            if field in updates and updates[field] is None:
                raise InvalidListingDataException(field, "must not be null")
        if "attributes" in updates:
            updates["attributes"] = _filter_reserved(updates["attributes"])

        inputs_changed = False
        for field, value in updates.items():
            value = _column_value(field, value)
            if field in ("title", "address"):
                value = value.strip()
            if field == "description" and value is None:
                value = ""
            if field in PREDICTION_INPUT_COLUMNS and getattr(listing, field) != value:
                inputs_changed = True
            setattr(listing, field, value)

        await db.commit()
        return await ListingService.get_listing_by_id(db, listing.id), inputs_changed

    @staticmethod
    async def delete_listing(db: AsyncSession, listing: Listing) -> List[str]:
        """Delete a listing and its image rows; returns the image filenames to remove from disk."""
        filenames = [image.filename for image in listing.images]
        owner_id = listing.owner_id
        await db.delete(listing)
        await UserService.adjust_listing_count(db, owner_id, -1)
        await db.commit()
        logger.info(f"Deleted listing {listing.id} with {len(filenames)} images")
        return filenames

    @staticmethod
    async def add_images(db: AsyncSession, listing: Listing, stored_files: Sequence[StoredFile]) -> List[ListingImage]:
        images = [
            ListingImage(listing_id=listing.id, url=stored.url, filename=stored.filename)
            for stored in stored_files
        ]
        db.add_all(images)
        await db.commit()
        for image in images:
            await db.refresh(image)
        return images
