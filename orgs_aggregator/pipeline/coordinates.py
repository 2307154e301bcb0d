"""Coordinate extraction and transformation to WGS84."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from orgs_aggregator.common.models import Coordinates, RawRecord

WGS84_EPSG = 4326
BRITISH_NATIONAL_GRID_EPSG = 27700

# Generous envelope around the UK, Channel Islands and Isle of Man.
UK_BBOX_WGS84 = {
    "min_lat": 49.0,
    "max_lat": 61.5,
    "min_lon": -9.0,
    "max_lon": 2.5,
}


def _safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _within_bbox(lat: float, lon: float, bbox: dict) -> bool:
    return (
        bbox["min_lat"] <= lat <= bbox["max_lat"]
        and bbox["min_lon"] <= lon <= bbox["max_lon"]
    )


@lru_cache(maxsize=16)
def _transformer(source_epsg: int) -> Transformer:
    return Transformer.from_crs(CRS.from_epsg(source_epsg), CRS.from_epsg(WGS84_EPSG), always_xy=True)


def to_wgs84(x: float, y: float, source_epsg: int) -> tuple[float, float] | None:
    """Return ``(lat, lon)`` for a point given as ``x`` (easting/lon) and ``y`` (northing/lat)."""
    if source_epsg == WGS84_EPSG:
        return y, x
    try:
        lon, lat = _transformer(source_epsg).transform(x, y)
    except (CRSError, ProjError):
        return None
    return lat, lon


def extract_coordinates(record: RawRecord, spec: dict) -> Coordinates | None:
    """Read a point from the configured fields of a raw record.

    ``spec`` carries ``x_field``, ``y_field`` and ``epsg``. Points that cannot
    be transformed or fall outside the UK envelope are discarded.
    """
    x = _safe_float(record.get_path(spec["x_field"]))
    y = _safe_float(record.get_path(spec["y_field"]))
    if x is None or y is None:
        return None

    transformed = to_wgs84(x, y, int(spec.get("epsg", WGS84_EPSG)))
    if transformed is None:
        return None
    lat, lon = transformed
    if not _within_bbox(lat, lon, UK_BBOX_WGS84):
        return None
    return Coordinates(latitude=round(lat, 6), longitude=round(lon, 6))
