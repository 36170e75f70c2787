"""
coordinates.py - Coordinate validation and repair

Survey spreadsheets carry hand-typed coordinates: some are blank, some have
longitude and latitude transposed, some are nowhere near the city. Every
function here is total: a bad input is resolved to a best-effort point inside
the configured bounding box instead of raising.

Usage:
    from survey_processing.coordinates import normalize_coordinates

    point = normalize_coordinates(11.0, -74.8)   # GeoPoint(longitude=-74.8, latitude=11.0)
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, NamedTuple, Optional

from loguru import logger


class GeoPoint(NamedTuple):
    """A (longitude, latitude) pair inside the configured bounding box."""

    longitude: float
    latitude: float


@dataclass(frozen=True)
class BoundingBox:
    """Geographic bounding box in EPSG:4326 degrees."""

    west: float
    east: float
    south: float
    north: float

    @property
    def centroid(self) -> GeoPoint:
        return GeoPoint(
            self.west + (self.east - self.west) / 2,
            self.south + (self.north - self.south) / 2,
        )

    def contains(self, longitude: float, latitude: float) -> bool:
        return self.west <= longitude <= self.east and self.south <= latitude <= self.north

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoundingBox":
        return cls(
            west=float(data["west"]),
            east=float(data["east"]),
            south=float(data["south"]),
            north=float(data["north"]),
        )


# Barranquilla
DEFAULT_BOUNDING_BOX = BoundingBox(west=-74.9, east=-74.7, south=10.9, north=11.1)


def _to_float(value: Any) -> float:
    """Convert to float, mapping None and unparseable values to NaN."""
    if value is None:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def looks_inverted(a: float, b: float) -> bool:
    """
    Heuristic for latitude/longitude transposition.

    Tuned for a low-latitude, western-hemisphere city: a small first value with
    a large second one, or a positive first value with a negative second one,
    is most likely (latitude, longitude).
    """
    return (abs(a) < 20 and abs(b) > 70) or (a > 0 and b < 0)


def validate_coordinates(
    longitude: Any, latitude: Any, bbox: BoundingBox = DEFAULT_BOUNDING_BOX
) -> GeoPoint:
    """
    Force a (longitude, latitude) pair into the bounding box.

    NaN inputs and values that are not plausible Earth coordinates
    (|lon| > 180 or |lat| > 90) are replaced with the bounding box centroid.
    Anything else is clamped edge by edge.
    """
    lon = _to_float(longitude)
    lat = _to_float(latitude)

    if math.isnan(lon) or math.isnan(lat):
        logger.debug(f"⚠️ Invalid coordinates {longitude!r}, {latitude!r}; using centroid")
        return bbox.centroid

    if abs(lon) > 180 or abs(lat) > 90:
        logger.debug(f"⚠️ Coordinates off the globe ({lon}, {lat}); using centroid")
        return bbox.centroid

    if not bbox.contains(lon, lat):
        logger.debug(f"⚠️ Coordinates outside bounding box ({lon}, {lat}); clamping")

    return GeoPoint(
        max(bbox.west, min(bbox.east, lon)),
        max(bbox.south, min(bbox.north, lat)),
    )


def normalize_coordinates(
    a: Any, b: Any, bbox: Optional[BoundingBox] = None
) -> GeoPoint:
    """
    Repair a raw (longitude, latitude) pair from survey data.

    Args:
        a: Value intended as longitude
        b: Value intended as latitude
        bbox: Bounding box to validate against (defaults to Barranquilla)

    Returns:
        GeoPoint guaranteed to lie inside the bounding box
    """
    bbox = bbox or DEFAULT_BOUNDING_BOX
    first = _to_float(a)
    second = _to_float(b)

    if math.isnan(first) or math.isnan(second):
        return bbox.centroid

    if looks_inverted(first, second):
        logger.debug(f"🔄 Swapping inverted coordinates ({first}, {second})")
        first, second = second, first

    return validate_coordinates(first, second, bbox)
