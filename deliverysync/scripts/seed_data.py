# scripts/seed_data.py
import asyncio
from decimal import Decimal
from tortoise import Tortoise
from deliverysync.core.db import init_db
from deliverysync.models.order import Restaurant, MenuItem
from deliverysync.models.delivery import DeliveryDriver, VehicleType


async def seed():
    # Create one restaurant
    rest, _ = await Restaurant.get_or_create(name="Demo Restaurant", defaults={"address": "456 Restaurant St"})
    print("Restaurant:", rest.id)

    # Create menu items
    m1, _ = await MenuItem.get_or_create(restaurant=rest, name="Margherita Pizza", defaults={"price": Decimal("12.99")})
    m2, _ = await MenuItem.get_or_create(restaurant=rest, name="Caesar Salad", defaults={"price": Decimal("8.50")})
    m3, _ = await MenuItem.get_or_create(restaurant=rest, name="Lemonade", defaults={"price": Decimal("2.75")})

    print("Menu items:", str(m1.id), str(m2.id), str(m3.id))

    # Two drivers so the accept race can be tried by hand
    d1, _ = await DeliveryDriver.get_or_create(user_id="driver-user-1", defaults={"vehicle_type": VehicleType.SCOOTER, "is_online": True})
    d2, _ = await DeliveryDriver.get_or_create(user_id="driver-user-2", defaults={"vehicle_type": VehicleType.CAR, "is_online": True})

    print("Drivers:", str(d1.id), str(d2.id))

async def main():
    await init_db()
    await seed()
    await Tortoise.close_connections()

if __name__ == "__main__":
    asyncio.run(main())
