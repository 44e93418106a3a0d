"""
Geographic utility functions.

This module provides core geospatial calculations used throughout the application.
Coordinates follow the GeoJSON convention: longitude first, then latitude.
"""

from math import radians, cos, sin, atan2, sqrt

EARTH_RADIUS_KM = 6371.0


def distance_km(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    """
    Great-circle distance between two points in kilometres (Haversine formula).

    Args:
        lng1: Longitude of first point
        lat1: Latitude of first point
        lng2: Longitude of second point
        lat2: Latitude of second point

    Returns:
        Distance in kilometres
    """
    lng1, lat1, lng2, lat2 = map(float, (lng1, lat1, lng2, lat2))
    dlat = radians(lat2 - lat1)
    dlng = radians(lng2 - lng1)
    a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlng / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c
