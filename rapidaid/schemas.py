"""
schemas.py
==========
Pydantic models for the dispatch backend.

They serve two purposes:
 - the shape every store returns (rows/documents are validated into these
   on the way out, so a malformed record is rejected at the boundary)
 - request bodies and responses of the REST API

JSON uses camelCase names (estimatedDistance, driverId, ...) to match the
mobile clients; Python code uses the snake_case attribute names.
"""

import enum
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# ENUM DEFINITIONS
# ---------------------------------------------------------------------------

class EmergencyStatus(str, enum.Enum):
    """Lifecycle of an emergency request. in_progress is reserved."""
    pending = "pending"
    accepted = "accepted"
    in_progress = "in_progress"
    rejected = "rejected"
    completed = "completed"


ACTIVE_STATUSES = (EmergencyStatus.pending, EmergencyStatus.accepted, EmergencyStatus.in_progress)
TERMINAL_STATUSES = (EmergencyStatus.rejected, EmergencyStatus.completed)


class Severity(str, enum.Enum):
    Critical = "Critical"
    Severe = "Severe"
    Moderate = "Moderate"
    Low = "Low"


class Priority(str, enum.Enum):
    critical = "critical"
    high = "high"
    moderate = "moderate"
    low = "low"


class UserRole(str, enum.Enum):
    patient = "patient"
    driver = "driver"
    admin = "admin"


# ---------------------------------------------------------------------------
# GEO
# ---------------------------------------------------------------------------

class GeoPoint(CamelModel):
    latitude: float
    longitude: float


class EmergencyLocation(CamelModel):
    """Where the patient is. Coordinates may be missing."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: str = ""
    landmark: Optional[str] = None

    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def point(self) -> Optional[GeoPoint]:
        if not self.has_coordinates():
            return None
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)


# ---------------------------------------------------------------------------
# EMERGENCY
# ---------------------------------------------------------------------------

class Emergency(CamelModel):
    """One patient request and its assignment state."""
    id: str
    patient_id: str
    patient_name: Optional[str] = None
    patient_age: Optional[int] = None
    patient_contact: Optional[str] = None
    emergency_type: str = "Other"
    severity: Optional[Severity] = None
    priority: Optional[Priority] = None
    description: Optional[str] = None
    location: EmergencyLocation = Field(default_factory=EmergencyLocation)

    status: EmergencyStatus = EmergencyStatus.pending
    driver_id: Optional[str] = None

    created_at: datetime
    updated_at: datetime
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # live estimates, rewritten on every driver poll
    estimated_distance: Optional[float] = None
    estimated_time: Optional[int] = None
    route: List[GeoPoint] = Field(default_factory=list)

    @model_validator(mode="after")
    def _driver_matches_status(self):
        if self.status in (EmergencyStatus.accepted, EmergencyStatus.completed) and not self.driver_id:
            raise ValueError(f"emergency {self.id} is {self.status.value} but has no driverId")
        if self.status == EmergencyStatus.pending and self.driver_id:
            raise ValueError(f"emergency {self.id} is pending but bound to driver {self.driver_id}")
        return self


class EmergencyCreate(CamelModel):
    """Request body for a patient raising an emergency."""
    id: Optional[str] = None
    emergency_type: str = "Other"
    severity: Optional[Severity] = None
    priority: Optional[Priority] = None
    description: Optional[str] = None
    patient_age: Optional[int] = Field(default=None, ge=0, le=150)
    patient_contact: Optional[str] = None
    location: Optional[EmergencyLocation] = None


# ---------------------------------------------------------------------------
# USERS / DRIVERS
# ---------------------------------------------------------------------------

class UserProfile(CamelModel):
    """Identity, role and duty flag, as supplied by the profile store."""
    id: str
    email: str
    name: Optional[str] = None
    role: UserRole = UserRole.patient
    is_on_duty: bool = False
    is_active: bool = True
    phone: Optional[str] = None
    license: Optional[str] = None
    vehicle_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RegisterRequest(CamelModel):
    id: Optional[str] = None
    email: str
    name: Optional[str] = None
    role: UserRole = UserRole.patient
    phone: Optional[str] = None
    license: Optional[str] = None
    vehicle_number: Optional[str] = None


class DutyToggleRequest(CamelModel):
    is_on_duty: bool


class LocationUpdate(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class LiveLocation(CamelModel):
    """Last reported position of a driver. No history is kept."""
    driver_id: str
    latitude: float
    longitude: float
    timestamp: datetime

    def point(self) -> GeoPoint:
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)


class DriverStats(CamelModel):
    driver_id: Optional[str] = None
    total_completed: int = 0
    completed_today: int = 0
    completed_this_week: int = 0
    average_rating: float = 0
    total_distance: float = 0
    total_hours: float = 0
    emergency_types: Dict[str, int] = Field(default_factory=dict)
    last_completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DriverStatsCreate(CamelModel):
    driver_id: Optional[str] = None
    total_completed: int = 0
    completed_today: int = 0
    completed_this_week: int = 0
    average_rating: float = 0
    total_distance: float = 0
    total_hours: float = 0
    emergency_types: Dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# ADMIN
# ---------------------------------------------------------------------------

class DashboardMetrics(CamelModel):
    total_drivers: int
    on_duty_drivers: int
    total_patients: int
    total_emergencies: int
    active_emergencies: int
    completed_emergencies: int
    live_tracking: int
