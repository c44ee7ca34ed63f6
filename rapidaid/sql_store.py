"""
sql_store.py
============
SQLAlchemy implementation of DispatchStore.

Sessions are synchronous; every public method runs its session work in
the threadpool so request handlers stay non-blocking. Status changes are
single conditional UPDATE statements, so two drivers racing to accept
the same emergency cannot both succeed.
"""

import enum
import uuid
from typing import Any, Dict, Iterable, List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import sessionmaker

from . import models
from .errors import InvalidStateError, NotFoundError, UpstreamUnavailableError
from .schemas import (
    DriverStats, Emergency, EmergencyStatus, LiveLocation, UserProfile, UserRole,
)
from .stats import apply_completion
from .store import GUARDED_FIELDS, DispatchStore, utcnow


def _plain(value):
    """Pydantic models / enums -> JSON-friendly column values."""
    if hasattr(value, "model_dump"):
        return _plain(value.model_dump())
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def _columns(row) -> Dict[str, Any]:
    return {c.name: getattr(row, c.name) for c in row.__table__.columns}


def _emergency_values(emergency: Emergency) -> Dict[str, Any]:
    values = {k: _plain(v) for k, v in emergency.model_dump().items()}
    values["status"] = emergency.status
    return values


class SqlStore(DispatchStore):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> sessionmaker:
        return self._session_factory

    async def _run(self, fn, *args):
        try:
            return await run_in_threadpool(fn, *args)
        except IntegrityError:
            raise
        except DBAPIError as exc:
            raise UpstreamUnavailableError("Record store unavailable") from exc

    # ---------------------------------------------------------------- emergencies

    def _query_emergencies(self, *criteria, newest_first=False) -> List[Emergency]:
        stmt = select(models.Emergency)
        if criteria:
            stmt = stmt.where(*criteria)
        if newest_first:
            stmt = stmt.order_by(models.Emergency.created_at.desc())
        with self._session_factory() as db:
            rows = db.scalars(stmt).all()
            return [Emergency.model_validate(_columns(r)) for r in rows]

    def _get_emergency(self, emergency_id: str) -> Optional[Emergency]:
        with self._session_factory() as db:
            row = db.get(models.Emergency, emergency_id)
            return Emergency.model_validate(_columns(row)) if row else None

    async def get_emergency(self, emergency_id: str) -> Optional[Emergency]:
        return await self._run(self._get_emergency, emergency_id)

    async def get_emergencies_by_status(self, status: EmergencyStatus) -> List[Emergency]:
        return await self._run(self._query_emergencies, models.Emergency.status == EmergencyStatus(status))

    async def get_emergencies_by_driver(self, driver_id: str) -> List[Emergency]:
        return await self._run(self._query_emergencies, models.Emergency.driver_id == driver_id)

    async def get_emergencies_by_patient(self, patient_id: str) -> List[Emergency]:
        return await self._run(self._query_emergencies, models.Emergency.patient_id == patient_id)

    async def get_all_emergencies(self) -> List[Emergency]:
        return await self._run(lambda: self._query_emergencies(newest_first=True))

    def _create_emergency(self, fields: Dict[str, Any]) -> Emergency:
        now = utcnow()
        doc = {k: v for k, v in fields.items() if k not in GUARDED_FIELDS}
        doc["id"] = doc.get("id") or uuid.uuid4().hex
        doc.update(status=EmergencyStatus.pending, created_at=now, updated_at=now)
        emergency = Emergency.model_validate(doc)

        with self._session_factory() as db:
            db.add(models.Emergency(**_emergency_values(emergency)))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise InvalidStateError(f"Emergency {emergency.id} already exists")
        return emergency

    async def create_emergency(self, fields: Dict[str, Any]) -> Emergency:
        return await self._run(self._create_emergency, fields)

    def _update_emergency(self, emergency_id: str, fields: Dict[str, Any]) -> Emergency:
        guarded = GUARDED_FIELDS.intersection(fields)
        if guarded:
            raise ValueError(f"update_emergency cannot change {sorted(guarded)}")
        values = {k: _plain(v) for k, v in fields.items()}
        values["updated_at"] = utcnow()

        with self._session_factory() as db:
            # only the given columns are written; status set concurrently is left alone
            result = db.execute(
                update(models.Emergency)
                .where(models.Emergency.id == emergency_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                db.rollback()
                raise NotFoundError("Emergency not found")
            row = db.get(models.Emergency, emergency_id, populate_existing=True)
            emergency = Emergency.model_validate(_columns(row))
            db.commit()
            return emergency

    async def update_emergency(self, emergency_id: str, fields: Dict[str, Any]) -> Emergency:
        return await self._run(self._update_emergency, emergency_id, fields)

    def _conditional_update(self, db, emergency_id, from_statuses, fields, driver_id) -> bool:
        criteria = [
            models.Emergency.id == emergency_id,
            models.Emergency.status.in_([EmergencyStatus(s) for s in from_statuses]),
        ]
        if driver_id is not None:
            criteria.append(or_(models.Emergency.driver_id.is_(None), models.Emergency.driver_id == driver_id))

        values = {k: (v if k == "status" else _plain(v)) for k, v in fields.items()}
        values["updated_at"] = utcnow()
        result = db.execute(
            update(models.Emergency)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _transition(self, emergency_id, from_statuses, fields, driver_id) -> Optional[Emergency]:
        with self._session_factory() as db:
            if not self._conditional_update(db, emergency_id, from_statuses, fields, driver_id):
                db.rollback()
                return None
            row = db.get(models.Emergency, emergency_id, populate_existing=True)
            emergency = Emergency.model_validate(_columns(row))
            db.commit()
            return emergency

    async def transition_emergency(
        self,
        emergency_id: str,
        from_statuses: Iterable[EmergencyStatus],
        fields: Dict[str, Any],
        driver_id: Optional[str] = None,
    ) -> Optional[Emergency]:
        return await self._run(self._transition, emergency_id, list(from_statuses), fields, driver_id)

    def _complete(self, emergency_id, from_statuses, fields, driver_id) -> Optional[Emergency]:
        with self._session_factory() as db:
            if not self._conditional_update(db, emergency_id, from_statuses, fields, driver_id):
                db.rollback()
                return None
            row = db.get(models.Emergency, emergency_id, populate_existing=True)
            emergency = Emergency.model_validate(_columns(row))

            stats_row = db.get(models.DriverStats, emergency.driver_id)
            current = DriverStats.model_validate(_columns(stats_row)) if stats_row else None
            stats = apply_completion(current, emergency, emergency.completed_at or utcnow())

            if stats_row is None:
                stats_row = models.DriverStats(driver_id=emergency.driver_id)
                db.add(stats_row)
            for key, value in stats.model_dump().items():
                setattr(stats_row, key, value)

            db.commit()
            return emergency

    async def complete_emergency(
        self,
        emergency_id: str,
        from_statuses: Iterable[EmergencyStatus],
        fields: Dict[str, Any],
        driver_id: Optional[str] = None,
    ) -> Optional[Emergency]:
        return await self._run(self._complete, emergency_id, list(from_statuses), fields, driver_id)

    # ---------------------------------------------------------------- live locations

    def _get_live_location(self, driver_id: str) -> Optional[LiveLocation]:
        with self._session_factory() as db:
            row = db.get(models.LiveLocation, driver_id)
            return LiveLocation.model_validate(_columns(row)) if row else None

    async def get_live_location(self, driver_id: str) -> Optional[LiveLocation]:
        return await self._run(self._get_live_location, driver_id)

    def _set_live_location(self, driver_id: str, latitude: float, longitude: float) -> LiveLocation:
        location = LiveLocation(driver_id=driver_id, latitude=latitude, longitude=longitude, timestamp=utcnow())
        with self._session_factory() as db:
            db.merge(models.LiveLocation(**location.model_dump()))
            db.commit()
        return location

    async def set_live_location(self, driver_id: str, latitude: float, longitude: float) -> LiveLocation:
        return await self._run(self._set_live_location, driver_id, latitude, longitude)

    def _get_all_live_locations(self) -> List[LiveLocation]:
        with self._session_factory() as db:
            rows = db.scalars(select(models.LiveLocation)).all()
            return [LiveLocation.model_validate(_columns(r)) for r in rows]

    async def get_all_live_locations(self) -> List[LiveLocation]:
        return await self._run(self._get_all_live_locations)

    # ---------------------------------------------------------------- driver stats

    def _get_driver_stats(self, driver_id: str) -> Optional[DriverStats]:
        with self._session_factory() as db:
            row = db.get(models.DriverStats, driver_id)
            return DriverStats.model_validate(_columns(row)) if row else None

    async def get_driver_stats(self, driver_id: str) -> Optional[DriverStats]:
        return await self._run(self._get_driver_stats, driver_id)

    def _create_driver_stats(self, driver_id: str, fields: Dict[str, Any]) -> DriverStats:
        now = utcnow()
        stats = DriverStats.model_validate({**fields, "driver_id": driver_id, "created_at": now, "updated_at": now})
        with self._session_factory() as db:
            if db.get(models.DriverStats, driver_id) is not None:
                raise InvalidStateError("Driver stats already exist")
            db.add(models.DriverStats(**stats.model_dump()))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise InvalidStateError("Driver stats already exist")
        return stats

    async def create_driver_stats(self, driver_id: str, fields: Dict[str, Any]) -> DriverStats:
        return await self._run(self._create_driver_stats, driver_id, fields)

    # ---------------------------------------------------------------- users

    def _create_user(self, user_id: str, fields: Dict[str, Any]) -> UserProfile:
        now = utcnow()
        user = UserProfile.model_validate({**fields, "id": user_id, "created_at": now, "updated_at": now})
        with self._session_factory() as db:
            db.merge(models.User(**user.model_dump()))
            db.commit()
        return user

    async def create_user(self, user_id: str, fields: Dict[str, Any]) -> UserProfile:
        return await self._run(self._create_user, user_id, fields)

    def _get_user(self, user_id: str) -> Optional[UserProfile]:
        with self._session_factory() as db:
            row = db.get(models.User, user_id)
            return UserProfile.model_validate(_columns(row)) if row else None

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        return await self._run(self._get_user, user_id)

    def _get_users_by_role(self, role: UserRole) -> List[UserProfile]:
        with self._session_factory() as db:
            rows = db.scalars(select(models.User).where(models.User.role == UserRole(role))).all()
            return [UserProfile.model_validate(_columns(r)) for r in rows]

    async def get_users_by_role(self, role: UserRole) -> List[UserProfile]:
        return await self._run(self._get_users_by_role, role)

    def _set_duty_status(self, user_id: str, is_on_duty: bool) -> UserProfile:
        with self._session_factory() as db:
            row = db.get(models.User, user_id)
            if row is None:
                raise NotFoundError("User not found")
            row.is_on_duty = is_on_duty
            row.updated_at = utcnow()
            db.commit()
            return UserProfile.model_validate(_columns(row))

    async def set_duty_status(self, user_id: str, is_on_duty: bool) -> UserProfile:
        return await self._run(self._set_duty_status, user_id, is_on_duty)
