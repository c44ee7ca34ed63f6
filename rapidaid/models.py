"""
models.py
=========
SQLAlchemy ORM models for the dispatch backend.
Contains tables for:
 - User          (profile store: identity, role, duty flag)
 - Emergency     (one row per patient request)
 - LiveLocation  (last known position per driver)
 - DriverStats   (completion counters per driver)
"""

import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, Float, Integer, JSON, String, Text
from sqlalchemy.orm import declarative_base

from .schemas import EmergencyStatus, UserRole

# SQLAlchemy Base class
Base = declarative_base()


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# TABLE DEFINITIONS
# ---------------------------------------------------------------------------

class User(Base):
    """Stores identity, role and on-duty flag."""
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.patient, index=True)
    is_on_duty = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    phone = Column(String, nullable=True)
    license = Column(String, nullable=True)
    vehicle_number = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class Emergency(Base):
    """Tracks a patient request, its assigned driver and live estimates."""
    __tablename__ = "emergencies"

    id = Column(String, primary_key=True)
    patient_id = Column(String, nullable=False, index=True)
    patient_name = Column(String, nullable=True)
    patient_age = Column(Integer, nullable=True)
    patient_contact = Column(String, nullable=True)
    emergency_type = Column(String, nullable=False, default="Other")
    severity = Column(String, nullable=True)
    priority = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    location = Column(JSON, nullable=False, default=dict)  # {latitude, longitude, address, landmark}

    status = Column(Enum(EmergencyStatus), nullable=False, default=EmergencyStatus.pending, index=True)
    driver_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow)
    accepted_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    estimated_distance = Column(Float, nullable=True)
    estimated_time = Column(Integer, nullable=True)
    route = Column(JSON, nullable=False, default=list)  # [{latitude, longitude}, ...]


class LiveLocation(Base):
    """Last reported driver position; overwritten on every update."""
    __tablename__ = "live_locations"

    driver_id = Column(String, primary_key=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    timestamp = Column(DateTime, default=_utcnow)


class DriverStats(Base):
    """Completion counters, bumped together with each completion."""
    __tablename__ = "driver_stats"

    driver_id = Column(String, primary_key=True)
    total_completed = Column(Integer, default=0)
    completed_today = Column(Integer, default=0)
    completed_this_week = Column(Integer, default=0)
    average_rating = Column(Float, default=0)
    total_distance = Column(Float, default=0)
    total_hours = Column(Float, default=0)
    emergency_types = Column(JSON, nullable=False, default=dict)
    last_completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow)
