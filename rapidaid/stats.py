"""
stats.py
========
Per-driver completion counters.

Stats are zeroed when a driver registers and bumped by the store inside
the same transaction that marks an emergency completed.
"""

import datetime
from typing import Any, Dict, List, Optional

from .errors import InvalidStateError
from .schemas import DriverStats, Emergency, EmergencyStatus
from .store import DispatchStore, utcnow


def zeroed_stats(driver_id: str, now: Optional[datetime.datetime] = None) -> DriverStats:
    now = now or utcnow()
    return DriverStats(driver_id=driver_id, created_at=now, updated_at=now)


def _same_week(a: datetime.datetime, b: datetime.datetime) -> bool:
    return a.isocalendar()[:2] == b.isocalendar()[:2]


def apply_completion(
    stats: Optional[DriverStats],
    emergency: Emergency,
    now: datetime.datetime,
) -> DriverStats:
    """
    Return stats with one more completion counted.
    Daily and weekly counters restart when the last completion was on an
    earlier day / ISO week.
    """
    stats = stats or zeroed_stats(emergency.driver_id, now)
    last = stats.last_completed_at

    completed_today = stats.completed_today + 1 if last and last.date() == now.date() else 1
    completed_this_week = stats.completed_this_week + 1 if last and _same_week(last, now) else 1

    emergency_types = dict(stats.emergency_types)
    emergency_types[emergency.emergency_type] = emergency_types.get(emergency.emergency_type, 0) + 1

    return stats.model_copy(update={
        "driver_id": stats.driver_id or emergency.driver_id,
        "total_completed": stats.total_completed + 1,
        "completed_today": completed_today,
        "completed_this_week": completed_this_week,
        "total_distance": round(stats.total_distance + (emergency.estimated_distance or 0), 2),
        "emergency_types": emergency_types,
        "last_completed_at": now,
        "updated_at": now,
    })


def derive_stats(driver_id: str, completed: List[Emergency], now: datetime.datetime) -> DriverStats:
    """Rebuild counters from a driver's completed emergencies."""
    stats = DriverStats(driver_id=driver_id)
    for emergency in sorted(completed, key=lambda e: e.completed_at or e.updated_at):
        stats = apply_completion(stats, emergency, emergency.completed_at or emergency.updated_at)

    return as_of(stats, now)


def as_of(stats: DriverStats, now: datetime.datetime) -> DriverStats:
    """Daily and weekly counters as seen at now, not at the last completion."""
    last = stats.last_completed_at
    update = {}
    if last is None or last.date() != now.date():
        update["completed_today"] = 0
    if last is None or not _same_week(last, now):
        update["completed_this_week"] = 0
    return stats.model_copy(update=update) if update else stats


async def get_stats(store: DispatchStore, driver_id: str) -> DriverStats:
    """
    Stored stats if present, otherwise counters derived from the driver's
    completed emergencies (all zero for a driver with none).
    """
    stats = await store.get_driver_stats(driver_id)
    if stats is not None:
        return as_of(stats, utcnow())

    assigned = await store.get_emergencies_by_driver(driver_id)
    completed = [e for e in assigned if e.status == EmergencyStatus.completed]
    return derive_stats(driver_id, completed, utcnow())


async def create_stats(store: DispatchStore, driver_id: str, fields: Dict[str, Any]) -> DriverStats:
    existing = await store.get_driver_stats(driver_id)
    if existing is not None:
        raise InvalidStateError("Driver stats already exist")
    return await store.create_driver_stats(driver_id, fields)
