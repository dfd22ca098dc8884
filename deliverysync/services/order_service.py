import logging
from tortoise import timezone
from tortoise.transactions import in_transaction
from typing import List, Dict, Optional, Union
from decimal import Decimal
from deliverysync.core.db import compare_and_set
from deliverysync.models.order import Order, OrderItem, MenuItem, Restaurant, OrderStatus, allowed_predecessors
from deliverysync.models.delivery import Delivery, DeliveryStatus
from deliverysync.events.outbox_utility import create_change_event
from deliverysync.schemas.events import EventType
from deliverysync.schemas.records import row_payload
from uuid import UUID

log = logging.getLogger("deliverysync.order_service")

# Lifecycle timestamp stamped when an order enters the status
ORDER_STATUS_TIMESTAMPS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.READY: "prepared_at",
    OrderStatus.PICKED_UP: "picked_up_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def order_number_for(order_id: UUID) -> str:
    return f"ORD-{order_id.hex[:8].upper()}"


async def place_order(
    user_id: str,
    restaurant_id: UUID,
    items: List[Dict],
    delivery_address: str,
    delivery_instructions: Optional[str] = None,
    delivery_fee: Decimal = Decimal("0"),
) -> Order:
    """
    Creates the Order with its OrderItems and logs the INSERT atomically.
    """
    async with in_transaction() as conn:
        # Input validation and existence check
        menu_item_ids = [UUID(str(it["menu_item_id"])) for it in items]
        menu_items = await MenuItem.filter(id__in=menu_item_ids, restaurant_id=restaurant_id, is_available=True).using_db(conn)
        menu_map = {str(m.id): m for m in menu_items}

        restaurant = await Restaurant.get_or_none(id=restaurant_id).using_db(conn)
        if not restaurant or not restaurant.is_active:
            raise ValueError("Restaurant not found or is inactive.")

        # 1. Create the Order header
        order = await Order.create(
            user_id=user_id,
            restaurant=restaurant,
            status=OrderStatus.PENDING,
            delivery_address=delivery_address,
            delivery_instructions=delivery_instructions,
            delivery_fee=delivery_fee,
            using_db=conn
        )

        subtotal = Decimal("0")
        for it in items:
            mid_str = str(it["menu_item_id"])
            qty = int(it["quantity"])
            menu = menu_map.get(mid_str)

            if not menu:
                raise ValueError(f"Menu item {mid_str} not found or unavailable.")
            if qty <= 0:
                raise ValueError(f"Quantity for menu item {mid_str} must be positive.")

            line_total = menu.price * qty
            subtotal += line_total

            # 2. Create Order Item line
            await OrderItem.create(
                order=order,
                menu_item=menu,
                quantity=qty,
                unit_price=menu.price,
                total_price=line_total,
                special_instructions=it.get("special_instructions"),
                using_db=conn
            )

        order.order_number = order_number_for(order.id)
        order.subtotal = subtotal
        order.total = subtotal + Decimal(delivery_fee)
        await order.save(using_db=conn)

        # 3. ATOMIC CHANGE: the INSERT reaches subscribers once the transaction commits
        await create_change_event("orders", EventType.INSERT, new=row_payload(order), conn=conn)

    log.info(f"Order {order.id} placed for user {user_id}.")
    return order


async def get_order_by_id(order_id: UUID) -> Optional[Order]:
    """Fetches an order with its restaurant and line items."""
    return await Order.get_or_none(id=order_id).prefetch_related('restaurant', 'order_items', 'order_items__menu_item')


async def transition_order(
    order_id: UUID,
    new_status: OrderStatus,
    conn,
    cancellation_reason: Optional[str] = None,
) -> bool:
    """
    Moves an order to `new_status` inside the caller's transaction.

    The write is conditional on the order currently sitting in an allowed
    predecessor status, so statuses only move forward and DELIVERED/CANCELLED
    are final. Returns False when the precondition did not hold.
    """
    now = timezone.now()
    changes = {"status": new_status, "updated_at": now}
    stamp_field = ORDER_STATUS_TIMESTAMPS.get(new_status)
    if stamp_field:
        changes[stamp_field] = now
    if new_status == OrderStatus.CANCELLED and cancellation_reason:
        changes["cancellation_reason"] = cancellation_reason

    written = await compare_and_set(
        Order,
        order_id,
        expected={"status__in": allowed_predecessors(new_status)},
        changes=changes,
        conn=conn,
    )
    if not written:
        log.warning(f"Order {order_id} rejected transition to {new_status.value}.")
        return False

    order = await Order.get(id=order_id).using_db(conn)
    await create_change_event("orders", EventType.UPDATE, new=row_payload(order), old={"id": str(order_id)}, conn=conn)

    if new_status == OrderStatus.READY:
        await open_delivery(order, conn)
    return True


async def open_delivery(order: Order, conn) -> Optional[Delivery]:
    """Creates the AVAILABLE delivery for a ready order, unless one already exists."""
    if await Delivery.filter(order_id=order.id).using_db(conn).exists():
        return None

    restaurant = await Restaurant.get(id=order.restaurant_id).using_db(conn)
    delivery = await Delivery.create(
        order_id=order.id,
        pickup_address=restaurant.address,
        delivery_address=order.delivery_address,
        status=DeliveryStatus.AVAILABLE,
        delivery_fee=order.delivery_fee,
        driver_earnings=order.delivery_fee,
        using_db=conn
    )
    await create_change_event("deliveries", EventType.INSERT, new=row_payload(delivery), conn=conn)
    log.info(f"Delivery {delivery.id} opened for order {order.id}.")
    return delivery


async def update_order_status(
    order_id: UUID,
    new_status: Union[OrderStatus, str],
    cancellation_reason: Optional[str] = None,
) -> bool:
    """
    Sets the order status and its lifecycle timestamp.

    Returns whether the write was accepted. The resulting view state arrives
    separately through the change feed.
    """
    try:
        new_status = OrderStatus(new_status)
        async with in_transaction() as conn:
            return await transition_order(order_id, new_status, conn, cancellation_reason)
    except Exception as e:
        log.error(f"Error updating order {order_id} status to {new_status}: {e}")
        return False
