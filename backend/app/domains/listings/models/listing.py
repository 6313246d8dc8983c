import uuid

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, func
)
from sqlalchemy.orm import relationship
from app.db.base_class import Base


def _new_listing_id() -> str:
    return str(uuid.uuid4())


class Listing(Base):
    __tablename__ = "listings"

    id = Column(String(36), primary_key=True, default=_new_listing_id)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Free text
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    address = Column(String, nullable=False)
    country = Column(String)
    locality = Column(String)

    # Attributes used for rent prediction
    city = Column(String, index=True)
    property_type = Column(String)
    bhk = Column(Integer)
    bathrooms = Column(Integer)
    balconies = Column(Integer)
    furnishing = Column(String)
    super_built_up_area_sqft = Column(Float)
    built_up_area_sqft = Column(Float)
    carpet_area_sqft = Column(Float)
    floor = Column(Integer)
    total_floors = Column(Integer)
    parking = Column(String)
    building_type = Column(String)
    year_built = Column(Integer)
    age_years = Column(Float)
    facing = Column(String)
    amenities_count = Column(Integer)
    is_rera_registered = Column(Boolean)
    rera_id = Column(String)
    latitude = Column(Float)
    longitude = Column(Float)

    # Raw submitted attribute values, keyed by whatever names the client sent
    attributes = Column(JSON, nullable=False, default=dict)

    price = Column(Float, nullable=False, default=0)
    is_rented = Column(Boolean, nullable=False, default=False)

    # Written only by the prediction pipeline
    predicted_rent = Column(Float)
    predicted_at = Column(DateTime)
    prediction_model_version = Column(String)

    created_at = Column(DateTime, server_default=func.now(), index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="listings")
    images = relationship(
        "ListingImage",
        back_populates="listing",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ListingImage.id",
    )


class ListingImage(Base):
    __tablename__ = "listing_images"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(String(36), ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String, nullable=False)
    filename = Column(String, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    listing = relationship("Listing", back_populates="images")


# Columns the prediction pipeline reads; an edit to any of them makes the stored prediction stale.
PREDICTION_INPUT_COLUMNS = (
    "city", "property_type", "bhk", "bathrooms", "balconies", "furnishing",
    "carpet_area_sqft", "floor", "total_floors", "parking", "building_type",
    "year_built", "age_years", "facing", "amenities_count",
    "is_rera_registered", "rera_id", "attributes",
)
