"""
assignment.py
=============
Emergency lifecycle state machine.

    pending  --accept-->   accepted
    pending  --reject-->   rejected
    accepted --reject-->   rejected
    accepted --complete--> completed

rejected and completed are terminal. Every transition is one conditional
write at the store; the follow-up read on failure only decides which
error to report.
"""

from typing import Dict, FrozenSet, Optional

from .config import DispatchPolicy
from .errors import InvalidStateError, NotFoundError, UnauthorizedError
from .schemas import Emergency, EmergencyStatus
from .store import DispatchStore, utcnow

# target status -> statuses it may be reached from
TRANSITIONS: Dict[EmergencyStatus, FrozenSet[EmergencyStatus]] = {
    EmergencyStatus.accepted: frozenset({EmergencyStatus.pending}),
    EmergencyStatus.rejected: frozenset({EmergencyStatus.pending, EmergencyStatus.accepted}),
    EmergencyStatus.completed: frozenset({EmergencyStatus.accepted}),
}


def can_transition(current: EmergencyStatus, target: EmergencyStatus) -> bool:
    return EmergencyStatus(current) in TRANSITIONS.get(EmergencyStatus(target), frozenset())


async def _explain_failure(
    store: DispatchStore,
    emergency_id: str,
    target: EmergencyStatus,
    driver_id: Optional[str],
):
    """Raise the error matching why a conditional write did not apply."""
    current = await store.get_emergency(emergency_id)
    if current is None:
        raise NotFoundError("Emergency not found")
    if target == EmergencyStatus.accepted:
        raise InvalidStateError("Emergency already assigned")
    if not can_transition(current.status, target):
        raise InvalidStateError(
            f"Cannot mark emergency {target.value}: it is already {current.status.value}"
        )
    if driver_id is not None and current.driver_id not in (None, driver_id):
        raise UnauthorizedError("Emergency is assigned to another driver")
    # condition held on re-read: another writer changed it in between
    raise InvalidStateError("Emergency was modified concurrently, refresh and retry")


async def accept(store: DispatchStore, emergency_id: str, driver_id: str) -> Emergency:
    """
    Bind a pending emergency to driver_id.
    Exactly one of several concurrent callers wins; the rest get
    InvalidStateError("Emergency already assigned").
    """
    now = utcnow()
    updated = await store.transition_emergency(
        emergency_id,
        TRANSITIONS[EmergencyStatus.accepted],
        {"status": EmergencyStatus.accepted, "driver_id": driver_id, "accepted_at": now},
    )
    if updated is None:
        print(f"⚔️ Driver {driver_id} lost the race for emergency {emergency_id}")
        await _explain_failure(store, emergency_id, EmergencyStatus.accepted, None)
    print(f"✅ Emergency {emergency_id} accepted by driver {driver_id}")
    return updated


async def reject(
    store: DispatchStore,
    emergency_id: str,
    driver_id: Optional[str] = None,
    policy: DispatchPolicy = DispatchPolicy(),
) -> Emergency:
    """
    Mark a pending or accepted emergency rejected.
    Any driver may do this unless policy.enforce_driver_ownership is set.
    """
    owner = driver_id if policy.enforce_driver_ownership else None
    updated = await store.transition_emergency(
        emergency_id,
        TRANSITIONS[EmergencyStatus.rejected],
        {"status": EmergencyStatus.rejected, "rejected_at": utcnow()},
        driver_id=owner,
    )
    if updated is None:
        await _explain_failure(store, emergency_id, EmergencyStatus.rejected, owner)
    print(f"🚫 Emergency {emergency_id} rejected")
    return updated


async def complete(
    store: DispatchStore,
    emergency_id: str,
    driver_id: Optional[str] = None,
    policy: DispatchPolicy = DispatchPolicy(),
) -> Emergency:
    """
    Mark an accepted emergency completed and credit the assigned driver's
    stats in the same write.
    """
    owner = driver_id if policy.enforce_driver_ownership else None
    updated = await store.complete_emergency(
        emergency_id,
        TRANSITIONS[EmergencyStatus.completed],
        {"status": EmergencyStatus.completed, "completed_at": utcnow()},
        driver_id=owner,
    )
    if updated is None:
        await _explain_failure(store, emergency_id, EmergencyStatus.completed, owner)
    print(f"🏁 Emergency {emergency_id} completed by driver {updated.driver_id}")
    return updated
