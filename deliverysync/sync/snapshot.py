import asyncio
import logging
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from deliverysync.core.config import ACTIVE_DELIVERY_STATUSES
from deliverysync.models.delivery import Delivery, DeliveryDriver, DeliveryStatus
from deliverysync.models.order import Order
from deliverysync.schemas.records import DeliveryRecord, OrderRecord, delivery_record, order_record
from deliverysync.schemas.scope import DeliveryScope, OrderScope

log = logging.getLogger("deliverysync.snapshot")

ORDER_RELATIONS = ('restaurant', 'order_items', 'order_items__menu_item')


async def _drivers_by_id(driver_ids) -> Dict[UUID, DeliveryDriver]:
    driver_ids = {d for d in driver_ids if d is not None}
    if not driver_ids:
        return {}
    drivers = await DeliveryDriver.filter(id__in=list(driver_ids))
    return {driver.id: driver for driver in drivers}


class TortoiseSnapshotLoader:
    """Bulk reads that seed the realtime views, joined the way the views display them."""

    async def load_orders(self, scope: OrderScope) -> List[OrderRecord]:
        """Orders in scope, newest first, each with restaurant, items and delivery (+ driver)."""
        query = Order.all()
        if scope.user_id is not None:
            query = query.filter(user_id=scope.user_id)
        elif scope.restaurant_id is not None:
            query = query.filter(restaurant_id=scope.restaurant_id)
        else:
            query = query.filter(id__in=list(scope.order_ids))

        orders = await query.order_by('-created_at').prefetch_related(*ORDER_RELATIONS)
        if not orders:
            return []

        deliveries = await Delivery.filter(order_id__in=[o.id for o in orders])
        drivers = await _drivers_by_id(d.driver_id for d in deliveries)
        by_order = {
            d.order_id: delivery_record(d, driver=drivers.get(d.driver_id))
            for d in deliveries
        }
        return [order_record(o, delivery=by_order.get(o.id)) for o in orders]

    async def _delivery_records(self, deliveries: List[Delivery]) -> List[DeliveryRecord]:
        if not deliveries:
            return []
        orders = await Order.filter(id__in=[d.order_id for d in deliveries]).prefetch_related(*ORDER_RELATIONS)
        orders_by_id = {o.id: order_record(o) for o in orders}
        drivers = await _drivers_by_id(d.driver_id for d in deliveries)
        return [
            delivery_record(d, order=orders_by_id.get(d.order_id), driver=drivers.get(d.driver_id))
            for d in deliveries
        ]

    async def load_driver_deliveries(self, driver_id: UUID) -> List[DeliveryRecord]:
        """
        The driver's deliveries that are still in progress. The live stream keeps
        a delivery in place once it is delivered or cancelled, so a `refresh()`
        is what prunes finished ones from a running view.
        """
        deliveries = await Delivery.filter(driver_id=driver_id, status__in=ACTIVE_DELIVERY_STATUSES).order_by('created_at')
        return await self._delivery_records(deliveries)

    async def load_available_deliveries(self) -> List[DeliveryRecord]:
        """The unassigned pool, oldest first."""
        deliveries = await Delivery.filter(status=DeliveryStatus.AVAILABLE).order_by('created_at')
        return await self._delivery_records(deliveries)

    async def load_deliveries(
        self, scope: DeliveryScope
    ) -> Tuple[Optional[List[DeliveryRecord]], Optional[List[DeliveryRecord]]]:
        """
        Runs the driver and available-pool reads concurrently. Either failing
        fails the whole load. A pool the scope does not ask for comes back as None.
        """
        queries = []
        if scope.driver_id is not None:
            queries.append(self.load_driver_deliveries(scope.driver_id))
        if scope.include_available:
            queries.append(self.load_available_deliveries())

        results = list(await asyncio.gather(*queries))
        assigned = results.pop(0) if scope.driver_id is not None else None
        available = results.pop(0) if scope.include_available else None
        return assigned, available
