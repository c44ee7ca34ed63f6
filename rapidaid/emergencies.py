"""
emergencies.py
==============
Patient-side operations: raise an emergency, see the active one, and
look up the driver assigned to it.
"""

from typing import Optional

from .errors import NotFoundError
from .schemas import ACTIVE_STATUSES, Emergency, EmergencyCreate, UserProfile
from .store import DispatchStore


async def create_emergency(store: DispatchStore, patient_id: str, payload: EmergencyCreate) -> Emergency:
    """
    Create a pending emergency for patient_id.
    patientName is a snapshot of the profile at creation time.
    """
    patient = await store.get_user(patient_id)
    if patient is None:
        raise NotFoundError("Patient not found")

    fields = payload.model_dump(exclude_none=True)
    fields["patient_id"] = patient_id
    fields["patient_name"] = patient.name or patient.email

    emergency = await store.create_emergency(fields)
    print(f"🚑 Emergency {emergency.id} ({emergency.emergency_type}) raised by {fields['patient_name']}")
    return emergency


async def get_patient_emergency(store: DispatchStore, patient_id: str) -> Optional[Emergency]:
    """The patient's active (pending / accepted / in progress) emergency, newest first."""
    emergencies = await store.get_emergencies_by_patient(patient_id)
    active = [e for e in emergencies if e.status in ACTIVE_STATUSES]
    if not active:
        return None
    return max(active, key=lambda e: e.created_at)


async def get_assigned_driver(store: DispatchStore, emergency_id: str) -> Optional[UserProfile]:
    emergency = await store.get_emergency(emergency_id)
    if emergency is None or not emergency.driver_id:
        return None
    return await store.get_user(emergency.driver_id)
