"""
geo.py
======
Stateless distance / route helpers used by the enrichment service.

These are deliberately simple: great-circle distance for "how far",
straight-line interpolation for the route drawn on the driver's map.
"""

import math
import random
from typing import List

from .schemas import GeoPoint

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 2 * math.pi * EARTH_RADIUS_KM / 360.0
DEFAULT_SPEED_KMH = 30.0

# cos(latitude) never drops below this, so longitude scaling stays finite at the poles
_MIN_COS_LAT = 1e-6


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in km between two points."""
    if a.latitude == b.latitude and a.longitude == b.longitude:
        return 0.0

    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def offset_near(origin: GeoPoint, max_km: float, rng: random.Random = None) -> GeoPoint:
    """
    Random point no farther than max_km from origin.

    Latitude and longitude get an independent random sign and magnitude.
    Each magnitude is capped at max_km / sqrt(2) so the diagonal stays
    inside the radius; longitude degrees are widened by 1/cos(latitude).
    """
    rng = rng or random
    max_km = max(0.0, max_km)
    axis_km = max_km / math.sqrt(2)
    cos_lat = max(math.cos(math.radians(origin.latitude)), _MIN_COS_LAT)

    lat_sign = -1 if rng.random() < 0.5 else 1
    lng_sign = -1 if rng.random() < 0.5 else 1
    lat_deg = lat_sign * rng.random() * axis_km / KM_PER_DEGREE
    lng_deg = lng_sign * rng.random() * axis_km / (KM_PER_DEGREE * cos_lat)

    scale = 1.0
    point = GeoPoint(latitude=origin.latitude + lat_deg, longitude=origin.longitude + lng_deg)
    distance = haversine_km(origin, point)

    # the flat-earth degree conversion can overshoot (badly, close to a pole); pull it back in
    while distance > max_km:
        scale *= 0.999 * max_km / distance
        point = GeoPoint(
            latitude=origin.latitude + lat_deg * scale,
            longitude=origin.longitude + lng_deg * scale,
        )
        distance = haversine_km(origin, point)
    return point


def compute_route(start: GeoPoint, end: GeoPoint, steps: int = 10) -> List[GeoPoint]:
    """
    steps+1 points from start to end, inclusive, interpolating latitude and
    longitude independently. Not geodesic; good enough for a map polyline.
    """
    if steps < 1:
        raise ValueError(f"route needs at least one step, got {steps}")
    points = [start]
    for i in range(1, steps):
        t = i / steps
        points.append(GeoPoint(
            latitude=start.latitude + (end.latitude - start.latitude) * t,
            longitude=start.longitude + (end.longitude - start.longitude) * t,
        ))
    points.append(end)
    return points


def estimate_eta_minutes(distance_km: float, average_speed_kmh: float = DEFAULT_SPEED_KMH) -> int:
    """Whole minutes to cover distance_km at a constant average speed, halves rounded up."""
    return int(math.floor(distance_km / average_speed_kmh * 60 + 0.5))
