import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch, MagicMock
from uuid import UUID, uuid4

from conftest import create_delivery, create_order
from deliverysync.models.change_log import ChangeLogEntry
from deliverysync.models.delivery import Delivery, DeliveryStatus
from deliverysync.models.order import MenuItem, Order, OrderItem, OrderStatus
from deliverysync.schemas.events import EventType
from deliverysync.services.order_service import order_number_for, place_order, update_order_status

# --- CORE MOCKING UTILITIES ---

class AsyncContextManagerMock:
    """Mocks 'async with in_transaction() as conn:' to fulfill the async context manager protocol."""
    def __init__(self):
        self.conn = object()
    async def __aenter__(self):
        return self.conn
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


class QuerysetMock:
    """Stands in for a chained Tortoise query: `.using_db()` returns itself and awaiting yields `result`."""
    def __init__(self, result):
        self.result = result
    def using_db(self, conn):
        return self
    def __await__(self):
        async def fetch():
            return self.result
        return fetch().__await__()


ORDER_ID = UUID("d675f4f3-6c36-46b9-abcf-ba0aa3c60a5e")

# --- MOCKED TRANSITIONS ---

@pytest.mark.asyncio
@patch('deliverysync.services.order_service.in_transaction', new_callable=MagicMock)
@patch('deliverysync.services.order_service.compare_and_set', new_callable=AsyncMock)
@patch('deliverysync.services.order_service.create_change_event', new_callable=AsyncMock)
async def test_rejected_transition_emits_nothing(mock_change_event, mock_cas, mock_in_transaction):
    """
    A write whose precondition no longer holds leaves the change log untouched.
    """
    mock_in_transaction.return_value = AsyncContextManagerMock()
    mock_cas.return_value = False

    assert await update_order_status(ORDER_ID, "preparing") is False

    args, kwargs = mock_cas.call_args
    assert args == (Order, ORDER_ID)
    assert kwargs['expected'] == {"status__in": [OrderStatus.PENDING, OrderStatus.CONFIRMED]}
    assert kwargs['changes']['status'] == OrderStatus.PREPARING
    mock_change_event.assert_not_called()


@pytest.mark.asyncio
@patch('deliverysync.services.order_service.in_transaction', new_callable=MagicMock)
@patch('deliverysync.services.order_service.compare_and_set', new_callable=AsyncMock)
@patch('deliverysync.services.order_service.create_change_event', new_callable=AsyncMock)
@patch('deliverysync.services.order_service.row_payload')
async def test_accepted_transition_logs_update(mock_row_payload, mock_change_event, mock_cas, mock_in_transaction):
    transaction = AsyncContextManagerMock()
    mock_in_transaction.return_value = transaction
    mock_cas.return_value = True
    mock_row_payload.return_value = {"id": str(ORDER_ID), "status": "confirmed"}
    mock_order = MagicMock(id=ORDER_ID, status=OrderStatus.CONFIRMED)

    with patch.object(Order, 'get', MagicMock(return_value=QuerysetMock(mock_order))):
        assert await update_order_status(ORDER_ID, OrderStatus.CONFIRMED) is True

    _, kwargs = mock_cas.call_args
    assert 'confirmed_at' in kwargs['changes']
    assert kwargs['conn'] is transaction.conn
    mock_change_event.assert_awaited_once_with(
        "orders",
        EventType.UPDATE,
        new={"id": str(ORDER_ID), "status": "confirmed"},
        old={"id": str(ORDER_ID)},
        conn=transaction.conn,
    )


@pytest.mark.asyncio
@patch('deliverysync.services.order_service.in_transaction', new_callable=MagicMock)
@patch('deliverysync.services.order_service.compare_and_set', new_callable=AsyncMock)
async def test_cancellation_accepts_any_open_status(mock_cas, mock_in_transaction):
    mock_in_transaction.return_value = AsyncContextManagerMock()
    mock_cas.return_value = False

    await update_order_status(ORDER_ID, OrderStatus.CANCELLED, cancellation_reason="Out of dough")

    _, kwargs = mock_cas.call_args
    assert OrderStatus.DELIVERED not in kwargs['expected']['status__in']
    assert OrderStatus.ON_THE_WAY in kwargs['expected']['status__in']
    assert kwargs['changes']['cancellation_reason'] == "Out of dough"


@pytest.mark.asyncio
async def test_unknown_status_is_rejected_before_any_write():
    with patch('deliverysync.services.order_service.in_transaction', new_callable=MagicMock) as mock_in_transaction:
        assert await update_order_status(ORDER_ID, "teleported") is False
        mock_in_transaction.assert_not_called()


def test_order_number_format():
    assert order_number_for(UUID("abcdef01-2345-6789-abcd-ef0123456789")) == "ORD-ABCDEF01"

# --- AGAINST THE DATABASE ---

@pytest.mark.asyncio
async def test_place_order_writes_rows_and_change(restaurant):
    pizza = await MenuItem.create(restaurant=restaurant, name="Pepperoni", price=Decimal("14.00"))
    salad = await MenuItem.create(restaurant=restaurant, name="Caesar", price=Decimal("8.50"))

    order = await place_order(
        user_id="user-1",
        restaurant_id=restaurant.id,
        items=[
            {"menu_item_id": str(pizza.id), "quantity": 2},
            {"menu_item_id": str(salad.id), "quantity": 1, "special_instructions": "No croutons"},
        ],
        delivery_address="1 Main St",
        delivery_fee=Decimal("3.50"),
    )

    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.PENDING
    assert stored.subtotal == Decimal("36.50")
    assert stored.total == Decimal("40.00")
    assert stored.order_number == order_number_for(order.id)
    assert await OrderItem.filter(order_id=order.id).count() == 2

    logged = await ChangeLogEntry.all()
    assert len(logged) == 1
    assert logged[0].table_name == "orders"
    assert logged[0].event_type == "INSERT"
    assert logged[0].new_record["order_number"] == stored.order_number


@pytest.mark.asyncio
async def test_place_order_with_unknown_item_rolls_back(restaurant):
    with pytest.raises(ValueError):
        await place_order(
            user_id="user-1",
            restaurant_id=restaurant.id,
            items=[{"menu_item_id": str(uuid4()), "quantity": 1}],
            delivery_address="1 Main St",
        )

    assert await Order.all().count() == 0
    assert await ChangeLogEntry.all().count() == 0


@pytest.mark.asyncio
async def test_ready_opens_available_delivery(restaurant):
    order = await create_order(restaurant, status=OrderStatus.PREPARING)

    assert await update_order_status(order.id, "ready") is True

    stored = await Order.get(id=order.id)
    assert stored.status == OrderStatus.READY
    assert stored.prepared_at is not None

    delivery = await Delivery.get(order_id=order.id)
    assert delivery.status == DeliveryStatus.AVAILABLE
    assert delivery.driver_id is None
    assert delivery.pickup_address == restaurant.address
    assert delivery.delivery_fee == Decimal("3.00")

    logged = await ChangeLogEntry.all().order_by('seq')
    assert [(e.table_name, e.event_type) for e in logged] == [("orders", "UPDATE"), ("deliveries", "INSERT")]


@pytest.mark.asyncio
async def test_ready_keeps_existing_delivery(restaurant):
    order = await create_order(restaurant, status=OrderStatus.PREPARING)
    existing = await create_delivery(order)

    assert await update_order_status(order.id, "ready") is True

    assert [d.id for d in await Delivery.filter(order_id=order.id)] == [existing.id]


@pytest.mark.asyncio
async def test_status_never_moves_backwards(restaurant):
    order = await create_order(restaurant, status=OrderStatus.READY)

    assert await update_order_status(order.id, "confirmed") is False
    assert (await Order.get(id=order.id)).status == OrderStatus.READY


@pytest.mark.asyncio
@pytest.mark.parametrize("final", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
async def test_final_states_reject_transitions(restaurant, final):
    order = await create_order(restaurant, status=final)

    assert await update_order_status(order.id, "cancelled") is False
    assert await update_order_status(order.id, "preparing") is False
    assert (await Order.get(id=order.id)).status == final
    assert await ChangeLogEntry.all().count() == 0


@pytest.mark.asyncio
async def test_cancellation_records_reason(restaurant):
    order = await create_order(restaurant, status=OrderStatus.CONFIRMED)

    assert await update_order_status(order.id, "cancelled", cancellation_reason="Kitchen closed") is True

    stored = await Order.get(id=order.id)
    assert stored.cancellation_reason == "Kitchen closed"
    assert stored.cancelled_at is not None
