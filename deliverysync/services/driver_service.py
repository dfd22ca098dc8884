import logging
from tortoise import timezone
from tortoise.transactions import in_transaction
from typing import Any, Dict, Optional
from deliverysync.models.delivery import DeliveryDriver
from deliverysync.events.outbox_utility import create_change_event
from deliverysync.schemas.events import EventType
from deliverysync.schemas.records import row_payload
from uuid import UUID

log = logging.getLogger("deliverysync.driver_service")


async def get_driver_by_user_id(user_id: str) -> Optional[DeliveryDriver]:
    return await DeliveryDriver.get_or_none(user_id=user_id)


async def _update_driver(driver_id: UUID, changes: Dict[str, Any]) -> bool:
    async with in_transaction() as conn:
        updated = await DeliveryDriver.filter(id=driver_id).using_db(conn).update(**changes)
        if not updated:
            log.warning(f"Driver {driver_id} not found.")
            return False
        driver = await DeliveryDriver.get(id=driver_id).using_db(conn)
        await create_change_event("delivery_drivers", EventType.UPDATE, new=row_payload(driver), old={"id": str(driver_id)}, conn=conn)
    return True


async def set_driver_online(driver_id: UUID, is_online: bool) -> bool:
    """Toggles whether the driver is taking deliveries."""
    now = timezone.now()
    try:
        return await _update_driver(driver_id, {"is_online": is_online, "last_location_update": now, "updated_at": now})
    except Exception as e:
        log.error(f"Error updating driver {driver_id} online status: {e}")
        return False


async def update_driver_location(driver_id: UUID, latitude: float, longitude: float) -> bool:
    """Records a location ping from the driver."""
    now = timezone.now()
    try:
        return await _update_driver(
            driver_id,
            {"current_latitude": latitude, "current_longitude": longitude, "last_location_update": now, "updated_at": now},
        )
    except Exception as e:
        log.error(f"Error updating driver {driver_id} location: {e}")
        return False
