"""
Geohash encoding and radius-query bounds.

A radius search is approximated by a handful of geohash prefix ranges whose
union covers the circle. Callers must post-filter every hit with
``distance_between`` since a range also covers points outside the radius.
"""

from __future__ import annotations

import math

from geopy.distance import great_circle

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
BITS_PER_CHAR = 5
GEOHASH_PRECISION = 10
MAXIMUM_BITS_PRECISION = 22 * BITS_PER_CHAR

EARTH_RADIUS_KM = 6371.0
EARTH_MERIDIONAL_CIRCUMFERENCE_M = 40007860.0
METERS_PER_DEGREE_LATITUDE = 110574.0
EARTH_EQ_RADIUS_M = 6378137.0
E2 = 0.00669447819799
EPSILON = 1e-12

Coordinate = tuple[float, float]


def valid_coordinate(lat, lng) -> bool:
    if lat is None or lng is None:
        return False
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat_f) or math.isnan(lng_f):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0


def encode_geohash(lat: float, lng: float, precision: int = GEOHASH_PRECISION) -> str:
    if not valid_coordinate(lat, lng):
        raise ValueError(f"invalid coordinate ({lat}, {lng})")
    if precision < 1 or precision > 22:
        raise ValueError("precision must be between 1 and 22")

    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    out = []
    value = 0
    bits = 0
    even = True
    while len(out) < precision:
        rng, coord = (lng_range, lng) if even else (lat_range, lat)
        mid = (rng[0] + rng[1]) / 2
        if coord > mid:
            value = (value << 1) + 1
            rng[0] = mid
        else:
            value = value << 1
            rng[1] = mid
        even = not even
        bits += 1
        if bits == BITS_PER_CHAR:
            out.append(BASE32[value])
            bits = 0
            value = 0
    return "".join(out)


def distance_between(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in km on a 6371 km sphere."""
    return great_circle(a, b, radius=EARTH_RADIUS_KM).km


def round_distance(km: float) -> float:
    return round(km * 10) / 10


def _meters_to_longitude_degrees(distance_m: float, latitude: float) -> float:
    radians = math.radians(latitude)
    num = math.cos(radians) * EARTH_EQ_RADIUS_M * math.pi / 180
    denom = 1 / math.sqrt(1 - E2 * math.sin(radians) * math.sin(radians))
    delta_deg = num * denom
    if delta_deg < EPSILON:
        return 360.0 if distance_m > 0 else 0.0
    return min(360.0, distance_m / delta_deg)


def _wrap_longitude(lng: float) -> float:
    if -180 <= lng <= 180:
        return lng
    adjusted = lng + 180
    if adjusted > 0:
        return (adjusted % 360) - 180
    return 180 - (-adjusted % 360)


def _latitude_bits_for_resolution(resolution_m: float) -> float:
    return min(math.log2(EARTH_MERIDIONAL_CIRCUMFERENCE_M / 2 / resolution_m), MAXIMUM_BITS_PRECISION)


def _longitude_bits_for_resolution(resolution_m: float, latitude: float) -> float:
    degs = _meters_to_longitude_degrees(resolution_m, latitude)
    return max(1.0, math.log2(360 / degs)) if abs(degs) > 0.000001 else 1.0


def _bounding_box_bits(center: Coordinate, size_m: float) -> int:
    lat_delta = size_m / METERS_PER_DEGREE_LATITUDE
    lat_north = min(90.0, center[0] + lat_delta)
    lat_south = max(-90.0, center[0] - lat_delta)
    bits_lat = math.floor(_latitude_bits_for_resolution(size_m)) * 2
    bits_lng_north = math.floor(_longitude_bits_for_resolution(size_m, lat_north)) * 2 - 1
    bits_lng_south = math.floor(_longitude_bits_for_resolution(size_m, lat_south)) * 2 - 1
    return int(min(bits_lat, bits_lng_north, bits_lng_south, MAXIMUM_BITS_PRECISION))


def _bounding_box_coordinates(center: Coordinate, radius_m: float) -> list[Coordinate]:
    lat_degrees = radius_m / METERS_PER_DEGREE_LATITUDE
    lat_north = min(90.0, center[0] + lat_degrees)
    lat_south = max(-90.0, center[0] - lat_degrees)
    lng_degs = max(
        _meters_to_longitude_degrees(radius_m, lat_north),
        _meters_to_longitude_degrees(radius_m, lat_south),
    )
    west = _wrap_longitude(center[1] - lng_degs)
    east = _wrap_longitude(center[1] + lng_degs)
    return [
        (center[0], center[1]),
        (center[0], west),
        (center[0], east),
        (lat_north, center[1]),
        (lat_north, west),
        (lat_north, east),
        (lat_south, center[1]),
        (lat_south, west),
        (lat_south, east),
    ]


def _prefix_range(geohash: str, bits: int) -> tuple[str, str]:
    precision = math.ceil(bits / BITS_PER_CHAR)
    if len(geohash) < precision:
        return geohash, geohash + "~"
    ghash = geohash[:precision]
    base = ghash[:-1]
    last_value = BASE32.index(ghash[-1])
    significant_bits = bits - len(base) * BITS_PER_CHAR
    unused_bits = BITS_PER_CHAR - significant_bits
    start_value = (last_value >> unused_bits) << unused_bits
    end_value = start_value + (1 << unused_bits)
    if end_value > 31:
        return base + BASE32[start_value], base + "~"
    return base + BASE32[start_value], base + BASE32[end_value]


def geohash_query_bounds(center: Coordinate, radius_m: float) -> list[tuple[str, str]]:
    """Return ``(start, end)`` geohash ranges covering the circle, center bucket first."""
    if not valid_coordinate(center[0], center[1]):
        raise ValueError(f"invalid center {center}")
    if radius_m <= 0:
        raise ValueError("radius must be positive")

    query_bits = max(1, _bounding_box_bits(center, radius_m))
    precision = math.ceil(query_bits / BITS_PER_CHAR)
    out: list[tuple[str, str]] = []
    for lat, lng in _bounding_box_coordinates(center, radius_m):
        bound = _prefix_range(encode_geohash(lat, lng, precision), query_bits)
        if bound not in out:
            out.append(bound)
    return out
