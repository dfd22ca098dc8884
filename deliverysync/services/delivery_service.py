import logging
from tortoise import timezone
from tortoise.transactions import in_transaction
from typing import Optional, Union
from deliverysync.core.db import compare_and_set
from deliverysync.models.delivery import Delivery, DeliveryStatus
from deliverysync.models.order import OrderStatus
from deliverysync.events.outbox_utility import create_change_event
from deliverysync.schemas.events import EventType
from deliverysync.schemas.records import DRIVER_REQUIRED_STATUSES, row_payload
from deliverysync.services.order_service import transition_order
from uuid import UUID

log = logging.getLogger("deliverysync.delivery_service")

# Delivery statuses mirrored onto the order when propagation is requested
ORDER_MIRRORED_STATUSES = {
    DeliveryStatus.PICKED_UP: OrderStatus.PICKED_UP,
    DeliveryStatus.ON_THE_WAY: OrderStatus.ON_THE_WAY,
    DeliveryStatus.DELIVERED: OrderStatus.DELIVERED,
}


async def _log_delivery_update(delivery_id: UUID, conn) -> Delivery:
    delivery = await Delivery.get(id=delivery_id).using_db(conn)
    await create_change_event("deliveries", EventType.UPDATE, new=row_payload(delivery), old={"id": str(delivery_id)}, conn=conn)
    return delivery


async def accept_delivery(driver_id: UUID, delivery_id: UUID) -> bool:
    """
    Claims an AVAILABLE delivery for `driver_id`.

    The claim is a single conditional write guarded by `status == available`,
    so when several drivers race for the same delivery exactly one write
    matches a row. Losers get False and see the winner's claim through the
    change feed.
    """
    try:
        async with in_transaction() as conn:
            now = timezone.now()
            claimed = await compare_and_set(
                Delivery,
                delivery_id,
                expected={"status": DeliveryStatus.AVAILABLE, "driver_id__isnull": True},
                changes={
                    "driver_id": driver_id,
                    "status": DeliveryStatus.ASSIGNED,
                    "assigned_at": now,
                    "updated_at": now,
                },
                conn=conn,
            )
            if not claimed:
                log.info(f"Driver {driver_id} could not claim delivery {delivery_id}; it is no longer available.")
                return False

            await _log_delivery_update(delivery_id, conn)

        log.info(f"Delivery {delivery_id} assigned to driver {driver_id}.")
        return True
    except Exception as e:
        log.error(f"Error accepting delivery {delivery_id} for driver {driver_id}: {e}")
        return False


async def update_delivery_status(
    delivery_id: UUID,
    new_status: Union[DeliveryStatus, str],
    propagate_to_order: bool = False,
    cancellation_reason: Optional[str] = None,
) -> bool:
    """
    Sets the delivery status plus its lifecycle timestamp.

    Moving back to AVAILABLE releases the driver. Statuses that need a driver
    are refused while none is assigned. With `propagate_to_order`, pickup,
    on-the-way and delivered are also applied to the order itself.
    """
    try:
        new_status = DeliveryStatus(new_status)
        async with in_transaction() as conn:
            delivery = await Delivery.filter(id=delivery_id).using_db(conn).select_for_update().first()
            if not delivery:
                log.warning(f"Delivery {delivery_id} not found.")
                return False
            if new_status in DRIVER_REQUIRED_STATUSES and delivery.driver_id is None:
                log.warning(f"Delivery {delivery_id} has no driver; cannot move to {new_status.value}.")
                return False

            now = timezone.now()
            changes = {"status": new_status, "updated_at": now}
            if new_status == DeliveryStatus.AVAILABLE:
                changes.update(driver_id=None, assigned_at=None)
            elif new_status == DeliveryStatus.PICKED_UP:
                changes["picked_up_at"] = now
            elif new_status == DeliveryStatus.ON_THE_WAY:
                changes["picked_up_at"] = delivery.picked_up_at or now
            elif new_status == DeliveryStatus.DELIVERED:
                changes["delivered_at"] = now
            elif new_status == DeliveryStatus.CANCELLED:
                changes["cancelled_at"] = now
                if cancellation_reason:
                    changes["cancellation_reason"] = cancellation_reason

            await Delivery.filter(id=delivery_id).using_db(conn).update(**changes)
            await _log_delivery_update(delivery_id, conn)

            order_status = ORDER_MIRRORED_STATUSES.get(new_status)
            if propagate_to_order and order_status:
                await transition_order(delivery.order_id, order_status, conn)

        return True
    except Exception as e:
        log.error(f"Error updating delivery {delivery_id} status to {new_status}: {e}")
        return False

