"""
Read-path presentation of listings.

A listing without a computed prediction is shown with its asking price as
the predicted rent and ``predictedIsFallback`` set, so clients can tell a
placeholder from a real model output. Nothing here writes to the listing.
"""
from typing import Iterable, List

from ..models.listing import Listing
from ..schemas.listing import ListingAttributes, ListingImageResponse, ListingResponse

_ATTRIBUTE_FIELDS = tuple(ListingAttributes.model_fields)


def present_listing(listing: Listing) -> ListingResponse:
    is_fallback = listing.predicted_rent is None
    return ListingResponse(
        id=listing.id,
        owner_id=listing.owner_id,
        title=listing.title,
        description=listing.description or "",
        address=listing.address,
        attributes=dict(listing.attributes or {}),
        price=listing.price or 0,
        is_rented=bool(listing.is_rented),
        predicted_rent=(listing.price or 0) if is_fallback else listing.predicted_rent,
        predicted_is_fallback=is_fallback,
        predicted_at=listing.predicted_at,
        prediction_model_version=listing.prediction_model_version,
        images=[ListingImageResponse.model_validate(image) for image in listing.images],
        created_at=listing.created_at,
        updated_at=listing.updated_at,
        **{field: getattr(listing, field) for field in _ATTRIBUTE_FIELDS},
    )


def present_listings(listings: Iterable[Listing]) -> List[ListingResponse]:
    return [present_listing(listing) for listing in listings]
