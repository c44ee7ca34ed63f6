"""
config.py
=========
Environment-driven settings for the dispatch backend.

Nothing here is read at import time by the core modules; the app factory
builds a DispatchPolicy once and passes it down explicitly.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Which store implementation the app uses ("sql" or "memory")
STORE_BACKEND = os.getenv("RAPIDAID_STORE", "sql").lower()

# SQLite file used by the sql store
DB_PATH = os.getenv("RAPIDAID_DB", "data/rapidaid.db")

# Origins of the patient / driver / admin Expo clients
CORS_ORIGINS = [
    "http://localhost:8081",
    "http://127.0.0.1:8081",
    "http://localhost:8082",
    "http://127.0.0.1:8082",
    "http://localhost:8083",
    "http://127.0.0.1:8083",
]


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Tunables for enrichment and the assignment state machine.

    max_synthetic_radius_km:  radius used for synthetic destinations and
                              for the distance clamp.
    clamp_real_coordinates:   when True (demo mode) even genuine patient
                              coordinates farther than the radius are
                              replaced by a synthetic nearby point.
    enforce_driver_ownership: when True, reject/complete are limited to
                              the driver bound to the emergency.
    """
    max_synthetic_radius_km: float = 2.0
    clamp_real_coordinates: bool = True
    enforce_driver_ownership: bool = False
    average_speed_kmh: float = 30.0
    route_steps: int = 12

    def __post_init__(self):
        if self.route_steps < 1:
            raise ValueError(f"route_steps must be at least 1, got {self.route_steps}")

    @classmethod
    def from_env(cls) -> "DispatchPolicy":
        return cls(
            max_synthetic_radius_km=float(os.getenv("RAPIDAID_MAX_RADIUS_KM", "2")),
            clamp_real_coordinates=_env_bool("RAPIDAID_CLAMP_REAL_COORDS", True),
            enforce_driver_ownership=_env_bool("RAPIDAID_ENFORCE_OWNERSHIP", False),
            average_speed_kmh=float(os.getenv("RAPIDAID_AVG_SPEED_KMH", "30")),
            route_steps=int(os.getenv("RAPIDAID_ROUTE_STEPS", "12")),
        )
