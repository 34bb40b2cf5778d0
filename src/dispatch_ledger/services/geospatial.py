"""Geospatial helper functions."""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Mapping

from shapely import wkb, wkt
from shapely.errors import ShapelyError
from shapely.geometry import Point, shape

from ..models.domain import Coordinate

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^[0-9A-Fa-f]+$")
_SRID_PREFIX_RE = re.compile(r"^SRID=\d+;", re.IGNORECASE)


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    """Return True for finite, in-range coordinates other than the (0, 0) placeholder."""

    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        return False
    return not (latitude == 0.0 and longitude == 0.0)


def _point_from_mapping(value: Mapping[str, Any]) -> Point | None:
    if "type" in value and "coordinates" in value:
        geometry = shape(value)
        return geometry if isinstance(geometry, Point) else None
    for lat_key, lng_key in (("lat", "lng"), ("latitude", "longitude"), ("lat", "lon")):
        if lat_key in value and lng_key in value:
            return Point(float(value[lng_key]), float(value[lat_key]))
    return None


def _point_from_string(value: str) -> Point | None:
    text = _SRID_PREFIX_RE.sub("", value.strip())
    if not text:
        return None
    if _HEX_RE.match(text):
        geometry = wkb.loads(text, hex=True)
    else:
        geometry = wkt.loads(text)
    return geometry if isinstance(geometry, Point) else None


def parse_location(value: Any) -> Coordinate | None:
    """Parse a stored location into a coordinate.

    Accepts PostGIS EWKB hex, WKT (``POINT(lng lat)``), GeoJSON points and
    ``{lat, lng}`` style mappings. Returns None when the value is missing,
    unparseable or not a valid coordinate.
    """

    if value is None:
        return None
    if isinstance(value, Coordinate):
        point = Point(value.longitude, value.latitude)
    else:
        try:
            if isinstance(value, Mapping):
                point = _point_from_mapping(value)
            elif isinstance(value, str):
                point = _point_from_string(value)
            else:
                return None
        except (ShapelyError, ValueError, TypeError, KeyError) as exc:
            logger.debug(f"Unparseable location {value!r}: {exc}")
            return None

    if point is None or point.is_empty:
        return None
    if not is_valid_coordinate(point.y, point.x):
        return None
    return Coordinate(latitude=point.y, longitude=point.x)
