import pytest
import pytest_asyncio
from decimal import Decimal
from tortoise import Tortoise

from deliverysync.core.db import init_db
from deliverysync.models.delivery import Delivery, DeliveryDriver, DeliveryStatus
from deliverysync.models.order import MenuItem, Order, OrderItem, OrderStatus, Restaurant
from deliverysync.realtime.feed import ChangeFeed


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory SQLite schema per test."""
    await init_db(db_url="sqlite://:memory:")
    yield
    await Tortoise._drop_databases()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest_asyncio.fixture
async def restaurant(db):
    return await Restaurant.create(name="Mario's Pizza Palace", address="456 Restaurant St")


@pytest_asyncio.fixture
async def drivers(db):
    first = await DeliveryDriver.create(user_id="driver-user-1", is_online=True)
    second = await DeliveryDriver.create(user_id="driver-user-2", is_online=True)
    return first, second


async def create_order(restaurant, user_id="user-1", status=OrderStatus.PENDING) -> Order:
    """Order with one line item, written straight to the tables (no change log)."""
    item = await MenuItem.create(restaurant=restaurant, name="Margherita", price=Decimal("12.50"))
    order = await Order.create(
        user_id=user_id,
        restaurant=restaurant,
        status=status,
        subtotal=Decimal("25.00"),
        delivery_fee=Decimal("3.00"),
        total=Decimal("28.00"),
        delivery_address="1 Main St",
    )
    await OrderItem.create(order=order, menu_item=item, quantity=2, unit_price=item.price, total_price=Decimal("25.00"))
    return order


async def create_delivery(order, driver=None, status=DeliveryStatus.AVAILABLE) -> Delivery:
    return await Delivery.create(
        order=order,
        driver=driver,
        pickup_address="456 Restaurant St",
        delivery_address=order.delivery_address,
        status=status,
        driver_earnings=Decimal("3.00"),
    )
