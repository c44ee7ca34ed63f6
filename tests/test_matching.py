"""
test_matching.py
================
Enrichment of emergencies with distance / ETA / route, and the driver
pending / assigned views.
"""

import datetime
import random

import pytest

from conftest import make_emergency, run
from rapidaid import assignment, matching
from rapidaid.config import DispatchPolicy
from rapidaid.geo import haversine_km
from rapidaid.schemas import EmergencyLocation, EmergencyStatus, GeoPoint, LiveLocation

DRIVER = LiveLocation(driver_id="d1", latitude=40.7130, longitude=-74.0062, timestamp=datetime.datetime(2025, 1, 6, 12))
DRIVER_POINT = GeoPoint(latitude=40.7130, longitude=-74.0062)
NEARBY = {"latitude": 40.7128, "longitude": -74.0060, "address": "123 Broadway, New York, NY 10007", "landmark": "Near Times Square"}
BROOKLYN = {"latitude": 40.6500, "longitude": -73.9496, "address": "789 Brooklyn Ave"}


# --------------------------------------------------------------------------
# PURE ENRICHMENT
# --------------------------------------------------------------------------

def test_no_driver_location_leaves_emergency_untouched():
    emergency = make_emergency(location=NEARBY)
    view, patch = matching.enrich(None, emergency, DispatchPolicy())

    assert patch is None
    assert view == emergency


def test_nearby_patient_coordinates_are_used_as_is():
    emergency = make_emergency(location=NEARBY)
    view, patch = matching.enrich(DRIVER, emergency, DispatchPolicy())

    assert view.location.latitude == 40.7128
    assert view.location.longitude == -74.0060
    assert view.location.address == NEARBY["address"]
    assert view.location.landmark == NEARBY["landmark"]
    assert patch["estimated_distance"] == round(haversine_km(DRIVER_POINT, GeoPoint(latitude=40.7128, longitude=-74.0060)), 2)


def test_real_coordinates_give_same_destination_every_time():
    emergency = make_emergency(location=NEARBY)
    first, _ = matching.enrich(DRIVER, emergency, DispatchPolicy())
    second, _ = matching.enrich(DRIVER, emergency, DispatchPolicy())
    assert first.location == second.location
    assert first.route == second.route


def test_missing_coordinates_are_synthesized_nearby():
    emergency = make_emergency(location={"address": "somewhere"})
    rng = random.Random(3)
    for _ in range(25):
        view, patch = matching.enrich(DRIVER, emergency, DispatchPolicy(), rng)
        assert view.location.has_coordinates()
        assert view.location.address == "somewhere"
        assert patch["estimated_distance"] <= 2


def test_far_coordinates_are_clamped_in_demo_mode():
    emergency = make_emergency(location=BROOKLYN)
    view, patch = matching.enrich(DRIVER, emergency, DispatchPolicy(clamp_real_coordinates=True), random.Random(5))

    assert patch["estimated_distance"] <= 2
    assert (view.location.latitude, view.location.longitude) != (BROOKLYN["latitude"], BROOKLYN["longitude"])
    assert view.location.address == BROOKLYN["address"]


def test_far_coordinates_kept_when_clamp_disabled():
    emergency = make_emergency(location=BROOKLYN)
    view, patch = matching.enrich(DRIVER, emergency, DispatchPolicy(clamp_real_coordinates=False))

    assert view.location.latitude == BROOKLYN["latitude"]
    assert patch["estimated_distance"] > 2
    assert abs(patch["estimated_time"] - patch["estimated_distance"] / 30 * 60) <= 0.52


def test_route_runs_from_driver_to_destination():
    emergency = make_emergency(location=NEARBY)
    view, _ = matching.enrich(DRIVER, emergency, DispatchPolicy())

    assert len(view.route) == 13
    assert view.route[0] == DRIVER_POINT
    assert view.route[-1] == GeoPoint(latitude=view.location.latitude, longitude=view.location.longitude)


def test_custom_radius_and_steps():
    policy = DispatchPolicy(max_synthetic_radius_km=0.5, route_steps=4)
    emergency = make_emergency(location=BROOKLYN)
    view, patch = matching.enrich(DRIVER, emergency, policy, random.Random(9))

    assert patch["estimated_distance"] <= 0.5
    assert len(view.route) == 5


# --------------------------------------------------------------------------
# STORE-BACKED VIEWS
# --------------------------------------------------------------------------

def test_pending_requests_are_enriched_and_persisted(seeded):
    """
    ✅ Patient at 40.7128,-74.0060; driver at 40.7130,-74.0062 polls pending.
    Expected: distance <= 2 km, ETA consistent, 13-point route ending at the
    destination, and the estimates written back to the record.
    """
    created = run(seeded.create_emergency({"patient_id": "p1", "emergency_type": "Cardiac Arrest", "location": NEARBY}))
    pending = run(matching.get_pending_requests(seeded, "d1"))

    assert [e.id for e in pending] == [created.id]
    enriched = pending[0]
    assert enriched.estimated_distance <= 2
    assert abs(enriched.estimated_time - enriched.estimated_distance / 30 * 60) <= 0.52
    assert len(enriched.route) == 13
    assert enriched.route[0] == DRIVER_POINT
    assert enriched.route[12] == GeoPoint(latitude=enriched.location.latitude, longitude=enriched.location.longitude)

    stored = run(seeded.get_emergency(created.id))
    assert stored.estimated_distance == enriched.estimated_distance
    assert stored.estimated_time == enriched.estimated_time
    assert len(stored.route) == 13
    assert stored.status == EmergencyStatus.pending


def test_pending_excludes_accepted(seeded):
    first = run(seeded.create_emergency({"patient_id": "p1", "location": NEARBY}))
    second = run(seeded.create_emergency({"patient_id": "p1", "location": NEARBY}))
    run(assignment.accept(seeded, first.id, "d1"))

    pending = run(matching.get_pending_requests(seeded, "d2"))
    assert [e.id for e in pending] == [second.id]


def test_off_duty_driver_sees_nothing(seeded):
    run(seeded.create_emergency({"patient_id": "p1", "location": NEARBY}))
    run(seeded.set_duty_status("d1", False))

    assert run(matching.get_pending_requests(seeded, "d1")) == []


def test_driver_without_location_gets_raw_records(seeded):
    run(seeded.create_user("d3", {"email": "new@rapidaid.dev", "role": "driver", "is_on_duty": True}))
    created = run(seeded.create_emergency({"patient_id": "p1"}))

    pending = run(matching.get_pending_requests(seeded, "d3"))
    assert pending[0].id == created.id
    assert pending[0].estimated_distance is None
    assert pending[0].route == []


def test_assigned_requests_include_completed(seeded):
    first = run(seeded.create_emergency({"patient_id": "p1", "location": NEARBY}))
    second = run(seeded.create_emergency({"patient_id": "p1", "location": NEARBY}))
    run(assignment.accept(seeded, first.id, "d1"))
    run(assignment.accept(seeded, second.id, "d1"))
    run(assignment.complete(seeded, second.id, "d1"))

    assigned = run(matching.get_assigned_requests(seeded, "d1"))
    assert sorted(e.id for e in assigned) == sorted([first.id, second.id])
    assert {e.status for e in assigned} == {EmergencyStatus.accepted, EmergencyStatus.completed}
    assert all(e.estimated_distance is not None for e in assigned)
    assert run(matching.get_assigned_requests(seeded, "d2")) == []


def test_enrichment_does_not_undo_a_concurrent_accept(seeded):
    """A poll that read the record as pending must not write the status back."""
    created = run(seeded.create_emergency({"patient_id": "p1", "location": NEARBY}))
    stale = run(seeded.get_emergency(created.id))
    run(assignment.accept(seeded, created.id, "d2"))

    run(matching.enrich_and_persist(seeded, DRIVER, stale, DispatchPolicy()))

    stored = run(seeded.get_emergency(created.id))
    assert stored.status == EmergencyStatus.accepted
    assert stored.driver_id == "d2"
    assert stored.estimated_distance is not None


@pytest.mark.parametrize("location", [NEARBY, BROOKLYN, {}])
def test_enriched_distance_never_exceeds_radius(seeded, location):
    run(seeded.create_emergency({"patient_id": "p1", "location": location}))
    for _ in range(3):
        for e in run(matching.get_pending_requests(seeded, "d1")):
            assert e.estimated_distance <= 2
