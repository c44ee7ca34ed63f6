"""
dashboard.py
============
Fleet-wide counters for the admin dashboard. Recomputed on every call.
"""

from typing import Sequence

from .schemas import (
    ACTIVE_STATUSES, DashboardMetrics, Emergency, EmergencyStatus, LiveLocation, UserProfile, UserRole,
)
from .store import DispatchStore


def compute_metrics(
    drivers: Sequence[UserProfile],
    patients: Sequence[UserProfile],
    emergencies: Sequence[Emergency],
    live_locations: Sequence[LiveLocation],
) -> DashboardMetrics:
    return DashboardMetrics(
        total_drivers=len(drivers),
        on_duty_drivers=sum(1 for d in drivers if d.is_on_duty),
        total_patients=len(patients),
        total_emergencies=len(emergencies),
        active_emergencies=sum(1 for e in emergencies if e.status in ACTIVE_STATUSES),
        completed_emergencies=sum(1 for e in emergencies if e.status == EmergencyStatus.completed),
        live_tracking=len(live_locations),
    )


async def get_dashboard_metrics(store: DispatchStore) -> DashboardMetrics:
    drivers = await store.get_users_by_role(UserRole.driver)
    patients = await store.get_users_by_role(UserRole.patient)
    emergencies = await store.get_all_emergencies()
    live_locations = await store.get_all_live_locations()
    return compute_metrics(drivers, patients, emergencies, live_locations)
