"""Stateless conversions between screen pixels, zoom transforms, and lon/lat."""

from __future__ import annotations

import math
from typing import Sequence

from .models import Coordinates, create_coordinates
from .zoom import ZoomTransform

EARTH_RADIUS_KM = 6371.0


def get_coords(width: float, height: float, transform: ZoomTransform) -> Coordinates:
    """Projected-space point currently at the center of a `width` x `height` viewport."""
    x_offset = (width * transform.k - width) / 2
    y_offset = (height * transform.k - height) / 2
    return create_coordinates(
        width / 2 - (x_offset + transform.x) / transform.k,
        height / 2 - (y_offset + transform.y) / transform.k,
    )


def screen_to_map_coordinates(
    screen_x: float,
    screen_y: float,
    width: float,
    height: float,
    transform: ZoomTransform,
) -> Coordinates:
    """Pixel position to equirectangular degrees over the viewport."""
    map_x = (screen_x - transform.x) / transform.k
    map_y = (screen_y - transform.y) / transform.k
    return create_coordinates(map_x / width * 360 - 180, 90 - map_y / height * 180)


def map_to_screen_coordinates(
    coordinates: Sequence[float],
    width: float,
    height: float,
    transform: ZoomTransform,
) -> tuple[float, float]:
    lon, lat = coordinates[0], coordinates[1]
    map_x = (lon + 180) / 360 * width
    map_y = (90 - lat) / 180 * height
    return (map_x * transform.k + transform.x, map_y * transform.k + transform.y)


def to_radians(degrees: float) -> float:
    return degrees * (math.pi / 180)


def to_degrees(radians: float) -> float:
    return radians * (180 / math.pi)


def calculate_distance(coord1: Sequence[float], coord2: Sequence[float]) -> float:
    """Great-circle (haversine) distance in kilometres."""
    lon1, lat1 = coord1[0], coord1[1]
    lon2, lat2 = coord2[0], coord2[1]
    d_lat = to_radians(lat2 - lat1)
    d_lon = to_radians(lon2 - lon1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(to_radians(lat1)) * math.cos(to_radians(lat2)) * math.sin(d_lon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def normalize_longitude(longitude: float) -> float:
    while longitude > 180:
        longitude -= 360
    while longitude < -180:
        longitude += 360
    return longitude


def normalize_latitude(latitude: float) -> float:
    return max(-90.0, min(90.0, latitude))


def create_normalized_coordinates(lon: float, lat: float) -> Coordinates:
    return create_coordinates(normalize_longitude(lon), normalize_latitude(lat))
