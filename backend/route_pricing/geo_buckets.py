from __future__ import annotations

import math

from .models import LatLng

GRID_SIZE_DEGREES: float = 0.0015


def bucket_key(point: LatLng, grid_size: float = GRID_SIZE_DEGREES) -> str:
    """Stable grid-cell id for a point.

    math.floor rounds toward negative infinity, so cells stay contiguous on
    both sides of the equator and the prime meridian.
    """
    lat_cell = math.floor(point.lat / grid_size)
    lng_cell = math.floor(point.lng / grid_size)
    return f"{lat_cell}:{lng_cell}"


def bucket_key_parts(key: str) -> tuple[int, int]:
    lat_part, sep, lng_part = key.partition(":")
    if not sep:
        raise ValueError(f"invalid bucket key: {key!r}")
    return int(lat_part), int(lng_part)


def neighboring_bucket_keys(point: LatLng, grid_size: float = GRID_SIZE_DEGREES) -> list[str]:
    """The point's own cell plus its 8 grid neighbours (row-major, 9 keys)."""
    lat_cell, lng_cell = bucket_key_parts(bucket_key(point, grid_size))
    return [
        f"{lat_cell + lat_offset}:{lng_cell + lng_offset}"
        for lat_offset in (-1, 0, 1)
        for lng_offset in (-1, 0, 1)
    ]


def parse_lat_lng(value: str | None) -> LatLng | None:
    """Parse a "lat,lng" query value; None when malformed or out of range."""
    if not value:
        return None

    parts = [part.strip() for part in value.split(",")]
    if len(parts) != 2:
        return None
    try:
        lat = float(parts[0])
        lng = float(parts[1])
    except ValueError:
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return LatLng(lat=lat, lng=lng)
