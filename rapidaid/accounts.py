"""
accounts.py
===========
Minimal profile registration. Credentials and tokens live outside this
service; here a user is just an id, a role and contact details.
"""

import uuid

from .schemas import RegisterRequest, UserProfile, UserRole
from .stats import zeroed_stats
from .store import DispatchStore


async def register_user(store: DispatchStore, payload: RegisterRequest) -> UserProfile:
    """
    Create (or overwrite) a profile. Drivers also get a zeroed stats
    record, unless one already exists.
    """
    user_id = payload.id or uuid.uuid4().hex
    fields = payload.model_dump(exclude={"id"}, exclude_none=True)
    if not fields.get("name"):
        fields["name"] = payload.email.split("@")[0]

    user = await store.create_user(user_id, fields)
    print(f"📝 Registered {user.role.value} {user.email} ({user.id})")

    if user.role == UserRole.driver and await store.get_driver_stats(user.id) is None:
        stats = zeroed_stats(user.id)
        await store.create_driver_stats(user.id, stats.model_dump(exclude={"driver_id", "created_at", "updated_at"}))
    return user
