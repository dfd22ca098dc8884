import asyncio
import uuid
from typing import Any, Dict, List, Optional

from deliverysync.schemas.events import ChangeEvent, EventType
from deliverysync.schemas.records import DeliveryRecord, OrderRecord


def order_row(**overrides) -> Dict[str, Any]:
    """A flat `orders` row shaped like the change feed delivers it."""
    row = {
        "id": str(uuid.uuid4()),
        "user_id": "user-1",
        "restaurant_id": str(uuid.uuid4()),
        "status": "pending",
        "total": "21.50",
        "delivery_address": "1 Main St",
        "created_at": "2025-06-28T18:00:00+00:00",
        "updated_at": "2025-06-28T18:00:00+00:00",
    }
    row.update(overrides)
    return row


def delivery_row(**overrides) -> Dict[str, Any]:
    """A flat `deliveries` row; available and unassigned unless overridden."""
    row = {
        "id": str(uuid.uuid4()),
        "order_id": str(uuid.uuid4()),
        "driver_id": None,
        "pickup_address": "456 Restaurant St",
        "delivery_address": "1 Main St",
        "status": "available",
        "driver_earnings": "4.00",
        "created_at": "2025-06-28T18:00:00+00:00",
        "updated_at": "2025-06-28T18:00:00+00:00",
    }
    row.update(overrides)
    return row


def make_order(**overrides) -> OrderRecord:
    return OrderRecord.model_validate(order_row(**overrides))


def make_delivery(**overrides) -> DeliveryRecord:
    return DeliveryRecord.model_validate(delivery_row(**overrides))


def insert(table: str, row: Dict[str, Any]) -> ChangeEvent:
    return ChangeEvent(table=table, event_type=EventType.INSERT, new=row)


def update(table: str, row: Dict[str, Any]) -> ChangeEvent:
    return ChangeEvent(table=table, event_type=EventType.UPDATE, new=row, old={"id": row["id"]})


def delete(table: str, row_id) -> ChangeEvent:
    return ChangeEvent(table=table, event_type=EventType.DELETE, old={"id": str(row_id)})


class StaticSnapshotLoader:
    """
    Loader double for realtime views. Returns preset records, optionally
    waits on `gate` before answering, or raises `error`.
    """

    def __init__(
        self,
        orders: Optional[List[OrderRecord]] = None,
        assigned: Optional[List[DeliveryRecord]] = None,
        available: Optional[List[DeliveryRecord]] = None,
        error: Optional[Exception] = None,
    ):
        self.orders = orders or []
        self.assigned = assigned or []
        self.available = available or []
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.calls = 0

    async def _wait(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

    async def load_orders(self, scope):
        await self._wait()
        return [o for o in self.orders if scope.includes(o)]

    async def load_deliveries(self, scope):
        await self._wait()
        assigned = list(self.assigned) if scope.driver_id is not None else None
        available = list(self.available) if scope.include_available else None
        return assigned, available
