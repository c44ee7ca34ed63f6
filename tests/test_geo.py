"""
test_geo.py
===========
Distance, synthetic point and route helpers.
"""

import random

import pytest

from rapidaid.config import DispatchPolicy
from rapidaid.geo import compute_route, estimate_eta_minutes, haversine_km, offset_near
from rapidaid.schemas import GeoPoint

NYC = GeoPoint(latitude=40.7128, longitude=-74.0060)
DELHI = GeoPoint(latitude=28.6139, longitude=77.2090)


def test_haversine_zero_for_same_point():
    assert haversine_km(NYC, NYC) == 0
    assert haversine_km(NYC, GeoPoint(latitude=40.7128, longitude=-74.0060)) == 0


def test_haversine_symmetric():
    rng = random.Random(7)
    for _ in range(50):
        a = GeoPoint(latitude=rng.uniform(-89, 89), longitude=rng.uniform(-180, 180))
        b = GeoPoint(latitude=rng.uniform(-89, 89), longitude=rng.uniform(-180, 180))
        assert haversine_km(a, b) == pytest.approx(haversine_km(b, a), abs=1e-9)
        assert haversine_km(a, b) >= 0


def test_haversine_known_distance():
    """NYC to Delhi is roughly 11,750 km."""
    assert haversine_km(NYC, DELHI) == pytest.approx(11_750, rel=0.01)


def test_one_degree_of_latitude():
    a = GeoPoint(latitude=0, longitude=0)
    b = GeoPoint(latitude=1, longitude=0)
    assert haversine_km(a, b) == pytest.approx(111.19, abs=0.01)


@pytest.mark.parametrize("origin", [NYC, DELHI, GeoPoint(latitude=-33.86, longitude=151.2), GeoPoint(latitude=89.9, longitude=10)])
@pytest.mark.parametrize("km", [0.5, 2, 10])
def test_offset_near_stays_within_radius(origin, km):
    rng = random.Random(42)
    for _ in range(200):
        point = offset_near(origin, km, rng)
        assert haversine_km(origin, point) <= km * (1 + 1e-9)


def test_offset_near_moves_point():
    rng = random.Random(1)
    points = {(p.latitude, p.longitude) for p in (offset_near(NYC, 2, rng) for _ in range(20))}
    assert len(points) > 1


def test_route_has_steps_plus_one_points_with_exact_ends():
    dest = GeoPoint(latitude=40.7300, longitude=-73.9900)
    route = compute_route(NYC, dest, 12)

    assert len(route) == 13
    assert route[0] == NYC
    assert route[-1] == dest


def test_route_is_linear():
    start = GeoPoint(latitude=0, longitude=0)
    end = GeoPoint(latitude=10, longitude=20)
    route = compute_route(start, end, 10)

    assert route[5].latitude == pytest.approx(5)
    assert route[5].longitude == pytest.approx(10)
    lats = [p.latitude for p in route]
    assert lats == sorted(lats)


def test_route_between_identical_points():
    route = compute_route(NYC, NYC, 4)
    assert len(route) == 5
    assert all(p == NYC for p in route)


@pytest.mark.parametrize("distance, expected", [(0, 0), (1, 2), (2, 4), (0.26, 1), (15, 30), (11.25, 23)])
def test_eta_at_30_kmh(distance, expected):
    assert estimate_eta_minutes(distance) == expected


def test_eta_custom_speed():
    assert estimate_eta_minutes(10, average_speed_kmh=60) == 10


def test_route_rejects_zero_steps():
    with pytest.raises(ValueError):
        compute_route(NYC, DELHI, 0)


def test_policy_rejects_zero_route_steps(monkeypatch):
    """
    ✅ RAPIDAID_ROUTE_STEPS=0 in the environment.
    Expected: ValueError when the policy is built, not a silently short route.
    """
    monkeypatch.setenv("RAPIDAID_ROUTE_STEPS", "0")
    with pytest.raises(ValueError, match="route_steps"):
        DispatchPolicy.from_env()
    assert DispatchPolicy(route_steps=1).route_steps == 1
