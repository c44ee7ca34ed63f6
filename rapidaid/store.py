"""
store.py
========
Storage contract for the dispatch core, plus the factory that picks an
implementation.

Two implementations exist:
 - SqlStore    (sql_store.py)    SQLAlchemy, used by the running service
 - MemoryStore (memory_store.py) in-process dicts, used by tests and demos

Every record leaving a store is a validated pydantic model from schemas.py.
"""

import datetime
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from .schemas import (
    DriverStats, Emergency, EmergencyStatus, LiveLocation, UserProfile, UserRole,
)

# Fields only the state machine may change; update_emergency refuses them
GUARDED_FIELDS = frozenset({"status", "driver_id", "accepted_at", "rejected_at", "completed_at"})


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp (SQLite drops tzinfo anyway)."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class DispatchStore(ABC):
    """
    Async persistence interface.

    Each method is one round trip to the backing store. The conditional
    writes (transition_emergency / complete_emergency) are the only way to
    move an emergency between statuses.
    """

    # ---------------------------------------------------------------- emergencies

    @abstractmethod
    async def get_emergency(self, emergency_id: str) -> Optional[Emergency]:
        ...

    @abstractmethod
    async def get_emergencies_by_status(self, status: EmergencyStatus) -> List[Emergency]:
        ...

    @abstractmethod
    async def get_emergencies_by_driver(self, driver_id: str) -> List[Emergency]:
        ...

    @abstractmethod
    async def get_emergencies_by_patient(self, patient_id: str) -> List[Emergency]:
        ...

    @abstractmethod
    async def get_all_emergencies(self) -> List[Emergency]:
        """All emergencies, newest first."""

    @abstractmethod
    async def create_emergency(self, fields: Dict[str, Any]) -> Emergency:
        """Insert a new emergency. Status is forced to pending."""

    @abstractmethod
    async def update_emergency(self, emergency_id: str, fields: Dict[str, Any]) -> Emergency:
        """
        Merge fields into an existing emergency and stamp updated_at.
        Raises NotFoundError when absent. Status fields are refused.
        """

    @abstractmethod
    async def transition_emergency(
        self,
        emergency_id: str,
        from_statuses: Iterable[EmergencyStatus],
        fields: Dict[str, Any],
        driver_id: Optional[str] = None,
    ) -> Optional[Emergency]:
        """
        Single conditional write: apply fields only if the stored status is
        in from_statuses (and, if driver_id is given, the stored driver is
        empty or equal to it). Returns the fresh record, or None when the
        condition did not hold.
        """

    @abstractmethod
    async def complete_emergency(
        self,
        emergency_id: str,
        from_statuses: Iterable[EmergencyStatus],
        fields: Dict[str, Any],
        driver_id: Optional[str] = None,
    ) -> Optional[Emergency]:
        """
        Same as transition_emergency, and in the same transaction bump the
        assigned driver's stats (see stats.apply_completion).
        """

    # ---------------------------------------------------------------- live locations

    @abstractmethod
    async def get_live_location(self, driver_id: str) -> Optional[LiveLocation]:
        ...

    @abstractmethod
    async def set_live_location(self, driver_id: str, latitude: float, longitude: float) -> LiveLocation:
        ...

    @abstractmethod
    async def get_all_live_locations(self) -> List[LiveLocation]:
        ...

    # ---------------------------------------------------------------- driver stats

    @abstractmethod
    async def get_driver_stats(self, driver_id: str) -> Optional[DriverStats]:
        ...

    @abstractmethod
    async def create_driver_stats(self, driver_id: str, fields: Dict[str, Any]) -> DriverStats:
        """Raises InvalidStateError if the driver already has stats."""

    # ---------------------------------------------------------------- users

    @abstractmethod
    async def create_user(self, user_id: str, fields: Dict[str, Any]) -> UserProfile:
        ...

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        ...

    @abstractmethod
    async def get_users_by_role(self, role: UserRole) -> List[UserProfile]:
        ...

    @abstractmethod
    async def set_duty_status(self, user_id: str, is_on_duty: bool) -> UserProfile:
        ...


def make_store(kind: str, db_path: Optional[str] = None) -> DispatchStore:
    """
    Factory for store implementations.
    Example: make_store("memory"), make_store("sql", "data/rapidaid.db")
    """
    kind = (kind or "sql").lower()
    if kind == "memory":
        from .memory_store import MemoryStore
        return MemoryStore()
    if kind == "sql":
        from .db import make_session_factory
        from .sql_store import SqlStore
        return SqlStore(make_session_factory(db_path))
    raise ValueError(f"Unknown store backend: {kind!r}")
