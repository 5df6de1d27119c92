import math
from typing import Tuple

EARTH_RADIUS_METERS = 6371000


def calculate_distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates (Haversine)."""
    R = EARTH_RADIUS_METERS
    phi_1, phi_2 = math.radians(lat1), math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)
    a = math.sin(delta_phi / 2.0) ** 2 + math.cos(phi_1) * math.cos(phi_2) * math.sin(delta_lambda / 2.0) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def bounding_box(latitude: float, longitude: float, radius_meters: float) -> Tuple[float, float, float, float]:
    """
    Returns (min_lat, max_lat, min_lon, max_lon) enclosing a circle of `radius_meters`.
    Used to narrow SQL candidates before the precise Haversine check, so it errs on the wide side.
    """
    delta_lat = radius_meters / 111000.0
    avg_lat_rad = math.radians(latitude)
    delta_lon = radius_meters / (111000.0 * max(1e-6, math.cos(avg_lat_rad)))
    return latitude - delta_lat, latitude + delta_lat, longitude - delta_lon, longitude + delta_lon
