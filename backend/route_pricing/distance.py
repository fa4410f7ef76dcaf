from __future__ import annotations

import math

from .models import LatLng, TimeOfDay

EARTH_RADIUS_M: float = 6_371_000.0

PRESET_FLOOR: int = 4_000
PRESET_STEP: int = 500
PRICE_PER_KM: int = 1_500
PRESET_BAND: int = 1_000
PRESET_LOW_FLOOR: int = 1_000

ETA_BASE_SPEED_KMH: float = 28.0
ETA_MIN_S: int = 60
_TIME_OF_DAY_FACTOR: dict[str, float] = {"day": 1.0, "night": 0.85}
# traffic_level: 1 light, 2 medium, 3 heavy
_TRAFFIC_FACTOR: dict[int, float] = {1: 0.85, 2: 1.0, 3: 1.25}


def round_half_up(value: float) -> int:
    """Round .5 upward, unlike Python's banker's rounding."""
    return int(math.floor(value + 0.5))


def haversine_distance_m(start: LatLng, end: LatLng) -> int:
    d_lat = math.radians(end.lat - start.lat)
    d_lng = math.radians(end.lng - start.lng)
    lat1 = math.radians(start.lat)
    lat2 = math.radians(end.lat)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round_half_up(EARTH_RADIUS_M * c)


def derive_preset_prices(distance_m: float) -> tuple[int, int, int]:
    """Distance-only (low, baseline, high) used when no history exists.

    The baseline snaps to the nearest 500 and never drops below 4000.
    """
    distance_km = max(float(distance_m), 0.0) / 1000.0
    baseline = max(PRESET_FLOOR, round_half_up(distance_km * PRICE_PER_KM / PRESET_STEP) * PRESET_STEP)
    low = max(PRESET_LOW_FLOOR, baseline - PRESET_BAND)
    high = baseline + PRESET_BAND
    return low, baseline, high


def estimate_eta_s(
    distance_m: float,
    *,
    time_of_day: TimeOfDay | None = None,
    traffic_level: int | None = None,
) -> int:
    """Crude straight-line travel time, not a routing estimate."""
    speed_mps = ETA_BASE_SPEED_KMH * 1000.0 / 3600.0
    base_s = max(float(distance_m), 0.0) / speed_mps
    tod_factor = _TIME_OF_DAY_FACTOR.get(time_of_day or "day", 1.0)
    traffic_factor = _TRAFFIC_FACTOR.get(int(traffic_level or 2), 1.0)
    return max(ETA_MIN_S, round_half_up(base_s * tod_factor * traffic_factor))
