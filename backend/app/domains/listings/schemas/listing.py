from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

Number = Union[float, str]


class ListingAttributes(BaseModel):
    """Structured attributes shared by create and update payloads."""
    city: Optional[str] = None
    locality: Optional[str] = None
    country: Optional[str] = None
    property_type: Optional[str] = None
    bhk: Optional[int] = None
    bathrooms: Optional[int] = None
    balconies: Optional[int] = None
    furnishing: Optional[str] = None
    super_built_up_area_sqft: Optional[float] = None
    built_up_area_sqft: Optional[float] = None
    carpet_area_sqft: Optional[float] = None
    floor: Optional[int] = None
    total_floors: Optional[int] = None
    parking: Optional[Union[int, str]] = None
    building_type: Optional[str] = None
    year_built: Optional[int] = None
    age_years: Optional[float] = None
    facing: Optional[str] = None
    amenities_count: Optional[int] = None
    is_rera_registered: Optional[bool] = None
    rera_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ListingCreate(ListingAttributes):
    # Unrecognised keys (legacy attribute names such as "BHK" or "bedrooms")
    # are kept and stored in the listing's attributes blob.
    model_config = ConfigDict(extra="allow")

    title: str = Field(min_length=1)
    address: str = Field(min_length=1)
    description: str = ""
    price: Optional[Number] = None
    price_inr: Optional[Number] = None
    price_usd: Optional[Number] = None


class ListingUpdate(ListingAttributes):
    title: Optional[str] = None
    description: Optional[str] = None
    address: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    is_rented: Optional[bool] = None
    attributes: Optional[Dict[str, Any]] = None


class ListingImageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    url: str
    filename: str


class ListingResponse(ListingAttributes):
    """Read model for a listing; prediction fields are always present."""
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    owner_id: int
    title: str
    description: str
    address: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    price: float
    is_rented: bool
    predicted_rent: float
    predicted_is_fallback: bool
    predicted_at: Optional[datetime] = None
    prediction_model_version: Optional[str] = None
    images: List[ListingImageResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ListingEnvelope(BaseModel):
    listing: ListingResponse


class PhotoUploadResponse(BaseModel):
    uploaded: List[ListingImageResponse]


class PredictionTriggerResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    queued: bool
    job_id: Optional[str] = None


class PredictNowResponse(BaseModel):
    ok: bool
    predicted: float
    model_version: Optional[str] = None
    listing: ListingResponse
