"""
Geographic helpers for GPS traces (WGS84 lat/lon in degrees).
"""

import math

import numpy as np
from numpy.typing import NDArray


EARTH_RADIUS_M = 6371000.0  # mean radius


def is_valid_latitude(value: float) -> bool:
    return not math.isnan(value) and -90.0 <= value <= 90.0


def is_valid_longitude(value: float) -> bool:
    return not math.isnan(value) and -180.0 <= value <= 180.0


def haversine_distance(lat1, lon1, lat2, lon2):
    """
    Great-circle distance between points.

    Args:
        lat1, lon1: First point(s) in degrees
        lat2, lon2: Second point(s) in degrees

    Returns:
        Distance in meters (scalar or array, following the inputs)
    """
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(np.subtract(lat2, lat1))
    dlon = np.radians(np.subtract(lon2, lon1))

    a = np.sin(dlat / 2) ** 2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2) ** 2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def track_length_m(lat: NDArray[np.float64], lon: NDArray[np.float64]) -> float:
    """Total length of a polyline through consecutive points."""
    if len(lat) < 2:
        return 0.0
    segments = haversine_distance(lat[:-1], lon[:-1], lat[1:], lon[1:])
    return float(np.nansum(segments))
