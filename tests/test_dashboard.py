"""
test_dashboard.py
=================
Admin dashboard counters.
"""

import datetime

from conftest import make_emergency, run
from rapidaid import assignment
from rapidaid.dashboard import compute_metrics, get_dashboard_metrics
from rapidaid.schemas import EmergencyStatus, LiveLocation, UserProfile, UserRole


def _user(user_id, role, on_duty=False):
    return UserProfile(id=user_id, email=f"{user_id}@rapidaid.dev", role=role, is_on_duty=on_duty)


def test_compute_metrics_counts():
    """
    ✅ 3 drivers (2 on duty), 5 patients, 4 emergencies
    (2 pending, 1 accepted, 1 completed).
    """
    drivers = [_user("d1", UserRole.driver, True), _user("d2", UserRole.driver, True), _user("d3", UserRole.driver)]
    patients = [_user(f"p{i}", UserRole.patient) for i in range(5)]
    emergencies = [
        make_emergency(id="e1"),
        make_emergency(id="e2"),
        make_emergency(id="e3", status=EmergencyStatus.accepted, driver_id="d1"),
        make_emergency(id="e4", status=EmergencyStatus.completed, driver_id="d2"),
    ]
    now = datetime.datetime(2025, 1, 6, 12)
    locations = [LiveLocation(driver_id="d1", latitude=1, longitude=2, timestamp=now)]

    metrics = compute_metrics(drivers, patients, emergencies, locations)

    assert metrics.total_drivers == 3
    assert metrics.on_duty_drivers == 2
    assert metrics.total_patients == 5
    assert metrics.total_emergencies == 4
    assert metrics.active_emergencies == 3
    assert metrics.completed_emergencies == 1
    assert metrics.live_tracking == 1


def test_compute_metrics_empty():
    metrics = compute_metrics([], [], [], [])
    assert metrics.total_emergencies == 0
    assert metrics.active_emergencies == 0


def test_in_progress_and_rejected():
    emergencies = [
        make_emergency(id="e1", status=EmergencyStatus.in_progress, driver_id="d1"),
        make_emergency(id="e2", status=EmergencyStatus.rejected),
    ]
    metrics = compute_metrics([], [], emergencies, [])
    assert metrics.active_emergencies == 1
    assert metrics.completed_emergencies == 0


def test_dashboard_from_store(seeded):
    first = run(seeded.create_emergency({"patient_id": "p1"}))
    run(seeded.create_emergency({"patient_id": "p1"}))
    run(assignment.accept(seeded, first.id, "d1"))
    run(assignment.complete(seeded, first.id, "d1"))
    run(seeded.set_duty_status("d2", False))

    metrics = run(get_dashboard_metrics(seeded))

    assert metrics.total_drivers == 2
    assert metrics.on_duty_drivers == 1
    assert metrics.total_patients == 1
    assert metrics.total_emergencies == 2
    assert metrics.active_emergencies == 1
    assert metrics.completed_emergencies == 1
    assert metrics.live_tracking == 2
