"""
matching.py
===========
Driver-facing request lists, enriched with distance, ETA and route.

Enrichment is best effort: the figures are recomputed and written back
on every poll, so concurrent polls from different drivers simply
overwrite each other (last write wins). Status and driver binding are
never touched here.
"""

import random
from typing import Any, Dict, List, Optional, Tuple

from .config import DispatchPolicy
from .geo import compute_route, estimate_eta_minutes, haversine_km, offset_near
from .schemas import Emergency, EmergencyLocation, EmergencyStatus, GeoPoint, LiveLocation, UserRole
from .store import DispatchStore


def pick_destination(
    origin: GeoPoint,
    location: EmergencyLocation,
    policy: DispatchPolicy,
    rng: random.Random = None,
) -> Tuple[GeoPoint, float]:
    """
    Destination for a driver at origin, and its distance in km.

    Patient coordinates are used when present. Missing coordinates get a
    synthetic point within the policy radius. With clamp_real_coordinates
    on, a destination beyond the radius is replaced by a synthetic one too.
    """
    radius = policy.max_synthetic_radius_km
    dest = location.point()
    if dest is None:
        dest = offset_near(origin, radius, rng)
    distance_km = haversine_km(origin, dest)

    if policy.clamp_real_coordinates and distance_km > radius:
        dest = offset_near(origin, radius, rng)
        distance_km = haversine_km(origin, dest)
    return dest, distance_km


def enrich(
    driver_location: Optional[LiveLocation],
    emergency: Emergency,
    policy: DispatchPolicy,
    rng: random.Random = None,
) -> Tuple[Emergency, Optional[Dict[str, Any]]]:
    """
    Compute the enriched view of one emergency for one driver.

    Returns (view, patch). patch is the set of fields to persist, or None
    when the driver has no known position and nothing can be computed.
    """
    if driver_location is None:
        return emergency, None

    origin = driver_location.point()
    dest, distance_km = pick_destination(origin, emergency.location, policy, rng)

    patch = {
        "location": EmergencyLocation(
            latitude=dest.latitude,
            longitude=dest.longitude,
            address=emergency.location.address or "",
            landmark=emergency.location.landmark,
        ),
        "estimated_distance": round(distance_km, 2),
        "estimated_time": estimate_eta_minutes(distance_km, policy.average_speed_kmh),
        "route": compute_route(origin, dest, policy.route_steps),
    }
    return emergency.model_copy(update=patch), patch


async def enrich_and_persist(
    store: DispatchStore,
    driver_location: Optional[LiveLocation],
    emergency: Emergency,
    policy: DispatchPolicy,
    rng: random.Random = None,
) -> Emergency:
    """Enrich one emergency and write the estimates back in a single update."""
    view, patch = enrich(driver_location, emergency, policy, rng)
    if patch is None:
        return view
    await store.update_emergency(emergency.id, patch)
    return view


async def _enrich_all(store, driver_id, emergencies, policy, rng) -> List[Emergency]:
    driver_location = await store.get_live_location(driver_id)
    if driver_location is None:
        print(f"📍 No live location for driver {driver_id}, returning requests without estimates")

    enriched = []
    for emergency in emergencies:
        enriched.append(await enrich_and_persist(store, driver_location, emergency, policy, rng))
    return enriched


async def get_pending_requests(
    store: DispatchStore,
    driver_id: str,
    policy: DispatchPolicy = DispatchPolicy(),
    rng: random.Random = None,
) -> List[Emergency]:
    """
    Pending emergencies as seen by driver_id. Drivers who are off duty (or
    unknown to the profile store) are not matched and get an empty list.
    """
    driver = await store.get_user(driver_id)
    if driver is None or driver.role != UserRole.driver or not driver.is_on_duty:
        return []

    pending = await store.get_emergencies_by_status(EmergencyStatus.pending)
    return await _enrich_all(store, driver_id, pending, policy, rng)


async def get_assigned_requests(
    store: DispatchStore,
    driver_id: str,
    policy: DispatchPolicy = DispatchPolicy(),
    rng: random.Random = None,
) -> List[Emergency]:
    """Every emergency bound to driver_id, whatever its status."""
    assigned = await store.get_emergencies_by_driver(driver_id)
    return await _enrich_all(store, driver_id, assigned, policy, rng)
