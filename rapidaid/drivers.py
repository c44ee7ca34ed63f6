"""
drivers.py
==========
Driver-side housekeeping: duty flag and live location.
"""

from typing import Optional

from .schemas import LiveLocation, UserProfile
from .store import DispatchStore


async def toggle_duty(store: DispatchStore, driver_id: str, is_on_duty: bool) -> UserProfile:
    driver = await store.set_duty_status(driver_id, is_on_duty)
    print(f"🔄 Driver {driver_id} is now {'on' if is_on_duty else 'off'} duty")
    return driver


async def update_location(store: DispatchStore, driver_id: str, latitude: float, longitude: float) -> LiveLocation:
    """Overwrite the driver's live position."""
    return await store.set_live_location(driver_id, latitude, longitude)


async def get_current_location(store: DispatchStore, driver_id: str) -> Optional[LiveLocation]:
    return await store.get_live_location(driver_id)

