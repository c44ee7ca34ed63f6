"""
memory_store.py
===============
In-process DispatchStore for tests and local demos (no database).

Documents are kept as plain dicts and validated into schema models on
every read, same as the SQL store does with its rows.
"""

import asyncio
import copy
import uuid
from typing import Any, Dict, Iterable, List, Optional

from .errors import InvalidStateError, NotFoundError
from .schemas import (
    DriverStats, Emergency, EmergencyStatus, LiveLocation, UserProfile, UserRole,
)
from .stats import apply_completion
from .store import GUARDED_FIELDS, DispatchStore, utcnow


def _plain(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Turn nested pydantic models into dicts so documents stay plain data."""
    out = {}
    for key, value in fields.items():
        if hasattr(value, "model_dump"):
            value = value.model_dump()
        elif isinstance(value, list):
            value = [v.model_dump() if hasattr(v, "model_dump") else v for v in value]
        out[key] = value
    return out


class MemoryStore(DispatchStore):
    """
    Dict-backed store. Conditional writes hold an asyncio.Lock so that the
    check and the write happen as one step.
    """

    def __init__(self):
        self._emergencies: Dict[str, Dict[str, Any]] = {}
        self._locations: Dict[str, Dict[str, Any]] = {}
        self._stats: Dict[str, Dict[str, Any]] = {}
        self._users: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    # ---------------------------------------------------------------- emergencies

    def _emergency(self, doc: Dict[str, Any]) -> Emergency:
        return Emergency.model_validate(copy.deepcopy(doc))

    async def get_emergency(self, emergency_id: str) -> Optional[Emergency]:
        doc = self._emergencies.get(emergency_id)
        return self._emergency(doc) if doc else None

    async def get_emergencies_by_status(self, status: EmergencyStatus) -> List[Emergency]:
        status = EmergencyStatus(status)
        return [self._emergency(d) for d in self._emergencies.values() if d["status"] == status]

    async def get_emergencies_by_driver(self, driver_id: str) -> List[Emergency]:
        return [self._emergency(d) for d in self._emergencies.values() if d.get("driver_id") == driver_id]

    async def get_emergencies_by_patient(self, patient_id: str) -> List[Emergency]:
        return [self._emergency(d) for d in self._emergencies.values() if d["patient_id"] == patient_id]

    async def get_all_emergencies(self) -> List[Emergency]:
        docs = sorted(self._emergencies.values(), key=lambda d: d["created_at"], reverse=True)
        return [self._emergency(d) for d in docs]

    async def create_emergency(self, fields: Dict[str, Any]) -> Emergency:
        now = utcnow()
        doc = _plain(fields)
        doc["id"] = doc.get("id") or uuid.uuid4().hex
        if doc["id"] in self._emergencies:
            raise InvalidStateError(f"Emergency {doc['id']} already exists")
        for key in GUARDED_FIELDS:
            doc.pop(key, None)
        doc.update(status=EmergencyStatus.pending, created_at=now, updated_at=now)

        emergency = self._emergency(doc)
        self._emergencies[emergency.id] = emergency.model_dump()
        return emergency

    async def update_emergency(self, emergency_id: str, fields: Dict[str, Any]) -> Emergency:
        guarded = GUARDED_FIELDS.intersection(fields)
        if guarded:
            raise ValueError(f"update_emergency cannot change {sorted(guarded)}")
        async with self._lock:
            doc = self._emergencies.get(emergency_id)
            if doc is None:
                raise NotFoundError("Emergency not found")
            merged = {**doc, **_plain(fields), "updated_at": utcnow()}
            emergency = self._emergency(merged)
            self._emergencies[emergency_id] = emergency.model_dump()
            return emergency

    def _matches(self, doc, from_statuses, driver_id) -> bool:
        if doc["status"] not in set(EmergencyStatus(s) for s in from_statuses):
            return False
        if driver_id is not None and doc.get("driver_id") not in (None, driver_id):
            return False
        return True

    async def transition_emergency(
        self,
        emergency_id: str,
        from_statuses: Iterable[EmergencyStatus],
        fields: Dict[str, Any],
        driver_id: Optional[str] = None,
    ) -> Optional[Emergency]:
        async with self._lock:
            doc = self._emergencies.get(emergency_id)
            if doc is None or not self._matches(doc, from_statuses, driver_id):
                return None
            merged = {**doc, **_plain(fields), "updated_at": utcnow()}
            emergency = self._emergency(merged)
            self._emergencies[emergency_id] = emergency.model_dump()
            return emergency

    async def complete_emergency(
        self,
        emergency_id: str,
        from_statuses: Iterable[EmergencyStatus],
        fields: Dict[str, Any],
        driver_id: Optional[str] = None,
    ) -> Optional[Emergency]:
        async with self._lock:
            doc = self._emergencies.get(emergency_id)
            if doc is None or not self._matches(doc, from_statuses, driver_id):
                return None
            now = utcnow()
            emergency = self._emergency({**doc, **_plain(fields), "updated_at": now})

            current = self._stats.get(emergency.driver_id)
            stats = apply_completion(
                DriverStats.model_validate(current) if current else None,
                emergency,
                emergency.completed_at or now,
            )

            # both documents are validated before either is written
            self._emergencies[emergency_id] = emergency.model_dump()
            self._stats[emergency.driver_id] = stats.model_dump()
            return emergency

    # ---------------------------------------------------------------- live locations

    async def get_live_location(self, driver_id: str) -> Optional[LiveLocation]:
        doc = self._locations.get(driver_id)
        return LiveLocation.model_validate(doc) if doc else None

    async def set_live_location(self, driver_id: str, latitude: float, longitude: float) -> LiveLocation:
        location = LiveLocation(driver_id=driver_id, latitude=latitude, longitude=longitude, timestamp=utcnow())
        self._locations[driver_id] = location.model_dump()
        return location

    async def get_all_live_locations(self) -> List[LiveLocation]:
        return [LiveLocation.model_validate(d) for d in self._locations.values()]

    # ---------------------------------------------------------------- driver stats

    async def get_driver_stats(self, driver_id: str) -> Optional[DriverStats]:
        doc = self._stats.get(driver_id)
        return DriverStats.model_validate(copy.deepcopy(doc)) if doc else None

    async def create_driver_stats(self, driver_id: str, fields: Dict[str, Any]) -> DriverStats:
        async with self._lock:
            if driver_id in self._stats:
                raise InvalidStateError("Driver stats already exist")
            now = utcnow()
            stats = DriverStats.model_validate({
                **fields, "driver_id": driver_id, "created_at": now, "updated_at": now,
            })
            self._stats[driver_id] = stats.model_dump()
            return stats

    # ---------------------------------------------------------------- users

    async def create_user(self, user_id: str, fields: Dict[str, Any]) -> UserProfile:
        now = utcnow()
        user = UserProfile.model_validate({**fields, "id": user_id, "created_at": now, "updated_at": now})
        self._users[user_id] = user.model_dump()
        return user

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        doc = self._users.get(user_id)
        return UserProfile.model_validate(doc) if doc else None

    async def get_users_by_role(self, role: UserRole) -> List[UserProfile]:
        role = UserRole(role)
        return [UserProfile.model_validate(d) for d in self._users.values() if d["role"] == role]

    async def set_duty_status(self, user_id: str, is_on_duty: bool) -> UserProfile:
        doc = self._users.get(user_id)
        if doc is None:
            raise NotFoundError("User not found")
        doc.update(is_on_duty=is_on_duty, updated_at=utcnow())
        return UserProfile.model_validate(doc)
