"""
Feature Extraction for Rent Prediction

Maps a stored listing onto the flat attribute set the scoring service was
trained on. The output keys and their order are fixed by
``FEATURE_SCHEMA_VERSION``; changing either means retraining upstream.

Each feature has one canonical listing column followed by a fallback chain
of legacy names looked up in the listing's raw ``attributes`` blob. The first
non-null value wins. Anything missing or unparseable becomes ``None`` and is
left for the scoring side to default.

Free text, locality, super/built-up areas, coordinates, images and the
asking price are deliberately not part of the schema.
"""
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

FEATURE_SCHEMA_VERSION = "2024-rent-v1"

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_EXPONENT = re.compile(r"\d[eE][+\-]?\d")
_TRUE_STRINGS = {"true", "1", "yes", "y"}
_FALSE_STRINGS = {"false", "0", "no", "n"}


def _parse_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except (ValueError, OverflowError):
        return None


def to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None

    text = str(value).strip()
    number = _parse_float(text)
    if number is None:
        if _EXPONENT.search(text):
            # "1,2e3": drop separators only, keep the exponent
            number = _parse_float(text.replace(",", "").replace(" ", ""))
        else:
            # Formatted amounts such as "₹25,000" or "1,200 sqft"
            cleaned = _NON_NUMERIC.sub("", text)
            number = _parse_float(cleaned) if cleaned else None
    if number is None:
        return None
    return number if math.isfinite(number) else None


def to_int(value: Any) -> Optional[int]:
    number = to_float(value)
    return int(number) if number is not None else None


def to_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_parking(value: Any) -> Optional[Any]:
    """Counts stay numeric, descriptive values ("Covered", "Open") stay text."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = to_str(value)
    if text is not None and text.isdigit():
        return int(text)
    return text


@dataclass(frozen=True)
class FeatureSpec:
    name: str
    column: str
    legacy_names: Tuple[str, ...]
    coerce: Callable[[Any], Any]


FEATURE_SCHEMA: Tuple[FeatureSpec, ...] = (
    FeatureSpec("City", "city", ("City", "city"), to_str),
    FeatureSpec("PropertyType", "property_type", ("PropertyType", "propertyType", "property_type"), to_str),
    FeatureSpec("BHK", "bhk", ("BHK", "bhk", "Bedrooms", "bedrooms"), to_int),
    FeatureSpec("Bathrooms", "bathrooms", ("Bathrooms", "bathrooms"), to_int),
    FeatureSpec("Balconies", "balconies", ("Balconies", "balconies"), to_int),
    FeatureSpec("Furnishing", "furnishing", ("Furnishing", "furnishing"), to_str),
    FeatureSpec(
        "CarpetArea_sqft",
        "carpet_area_sqft",
        ("CarpetArea_sqft", "CarpetAreaSqft", "carpetAreaSqft", "carpetArea_sqft", "carpetArea"),
        to_float,
    ),
    FeatureSpec("Floor", "floor", ("Floor", "floor"), to_int),
    FeatureSpec("TotalFloors", "total_floors", ("TotalFloors", "totalFloors", "total_floors"), to_int),
    FeatureSpec("Parking", "parking", ("Parking", "parking", "parking_spaces"), to_parking),
    FeatureSpec("BuildingType", "building_type", ("BuildingType", "buildingType", "building_type"), to_str),
    FeatureSpec("YearBuilt", "year_built", ("YearBuilt", "yearBuilt", "year_built"), to_int),
    FeatureSpec("AgeYears", "age_years", ("AgeYears", "ageYears", "age_years"), to_float),
    FeatureSpec("Facing", "facing", ("Facing", "facing"), to_str),
    FeatureSpec("AmenitiesCount", "amenities_count", ("AmenitiesCount", "amenitiesCount", "amenities_count"), to_int),
    FeatureSpec(
        "IsRERARegistered",
        "is_rera_registered",
        ("IsRERARegistered", "isReraRegistered", "isRera", "is_rera_registered"),
        to_bool,
    ),
    FeatureSpec("RERAID", "rera_id", ("RERAID", "reraId", "rera_id"), to_str),
)

FEATURE_NAMES: Tuple[str, ...] = tuple(spec.name for spec in FEATURE_SCHEMA)


def _read(snapshot: Any, key: str) -> Any:
    if isinstance(snapshot, Mapping):
        return snapshot.get(key)
    return getattr(snapshot, key, None)


def _first_present(spec: FeatureSpec, snapshot: Any, raw: Mapping) -> Any:
    value = spec.coerce(_read(snapshot, spec.column))
    if value is not None:
        return value
    for name in spec.legacy_names:
        value = spec.coerce(raw.get(name))
        if value is not None:
            return value
    return None


def extract_features(snapshot: Any) -> Dict[str, Any]:
    """
    Build the scoring payload for a listing.

    Args:
        snapshot: a ``Listing`` row or a mapping with the same column names

    Returns:
        Dict with exactly the keys of ``FEATURE_NAMES``, in that order
    """
    raw = _read(snapshot, "attributes")
    if not isinstance(raw, Mapping):
        raw = {}
    return {spec.name: _first_present(spec, snapshot, raw) for spec in FEATURE_SCHEMA}
