import pytest
import uuid

from deliverysync.models.change_log import ChangeLogEntry
from deliverysync.models.delivery import DeliveryDriver
from deliverysync.services.driver_service import get_driver_by_user_id, set_driver_online, update_driver_location


@pytest.mark.asyncio
async def test_lookup_by_user(drivers):
    first, _ = drivers
    assert (await get_driver_by_user_id("driver-user-1")).id == first.id
    assert await get_driver_by_user_id("nobody") is None


@pytest.mark.asyncio
async def test_going_offline_is_logged(drivers):
    driver, _ = drivers

    assert await set_driver_online(driver.id, False) is True

    assert (await DeliveryDriver.get(id=driver.id)).is_online is False
    logged = await ChangeLogEntry.get(table_name="delivery_drivers")
    assert logged.event_type == "UPDATE"
    assert logged.new_record["is_online"] is False


@pytest.mark.asyncio
async def test_location_ping(drivers):
    driver, _ = drivers

    assert await update_driver_location(driver.id, 40.7128, -74.006) is True

    stored = await DeliveryDriver.get(id=driver.id)
    assert stored.current_latitude == pytest.approx(40.7128)
    assert stored.current_longitude == pytest.approx(-74.006)
    assert stored.last_location_update is not None


@pytest.mark.asyncio
async def test_unknown_driver_is_reported(db):
    assert await update_driver_location(uuid.uuid4(), 1.0, 2.0) is False
    assert await ChangeLogEntry.all().count() == 0
