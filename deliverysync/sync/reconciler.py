"""
Applies change events to in-memory collections.

Every function here is pure: it takes the current collection(s) and one
event and returns new lists, leaving its inputs untouched. Records are
matched by primary key. Merges lay the event's row over the stored record,
so columns missing from the event keep their stored value and nested
relations loaded by the snapshot survive.

Events are assumed to arrive in commit order. Applying the same event twice
leaves the collection as applying it once did.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import ValidationError

from deliverysync.schemas.events import ChangeEvent, EventType
from deliverysync.schemas.records import DeliveryRecord, OrderRecord, Record
from deliverysync.schemas.scope import DeliveryScope, OrderScope

log = logging.getLogger("deliverysync.reconciler")

R = TypeVar("R", bound=Record)


def _find(records: List[R], record_id: str) -> Optional[R]:
    for record in records:
        if str(record.id) == record_id:
            return record
    return None


def _without(records: List[R], record_id: str) -> List[R]:
    return [r for r in records if str(r.id) != record_id]


def _upsert(records: List[R], record: R) -> List[R]:
    """Replaces the record in place when present, otherwise puts it first."""
    record_id = str(record.id)
    if _find(records, record_id) is None:
        return [record, *records]
    return [record if str(r.id) == record_id else r for r in records]


def _build(model: Type[R], row: Dict[str, Any], base: Optional[R] = None) -> Optional[R]:
    """Validates `row` (merged over `base` when given) into a record; None if it does not validate."""
    data = {**base.model_dump(), **row} if base is not None else row
    try:
        return model.model_validate(data)
    except ValidationError as e:
        log.warning(f"Ignoring {model.__name__} change for id={row.get('id')}: {e.error_count()} invalid field(s).")
        return None


# --- Orders ---

def apply_order_event(orders: List[OrderRecord], event: ChangeEvent, scope: OrderScope) -> List[OrderRecord]:
    """Applies an `orders` table change to a scoped, newest-first order list."""
    record_id = event.record_id
    if record_id is None:
        return orders

    if event.event_type == EventType.INSERT:
        existing = _find(orders, record_id)
        record = _build(OrderRecord, event.new, base=existing)
        if record is None or not scope.includes(record):
            return orders
        return _upsert(orders, record)

    if event.event_type == EventType.UPDATE:
        # Owner and restaurant never change, so an update cannot move an order out of scope
        existing = _find(orders, record_id)
        if existing is None:
            return orders
        record = _build(OrderRecord, event.new, base=existing)
        if record is None:
            return orders
        return _upsert(orders, record)

    if event.event_type == EventType.DELETE:
        return _without(orders, record_id)

    return orders


def apply_delivery_to_orders(orders: List[OrderRecord], event: ChangeEvent) -> List[OrderRecord]:
    """
    Patches the nested delivery of the order a `deliveries` UPDATE points at.
    The order's own status is left alone.
    """
    if event.event_type != EventType.UPDATE or not event.new.get("order_id"):
        return orders

    order = _find(orders, str(event.new["order_id"]))
    if order is None:
        return orders

    current = order.delivery
    delivery = _build(DeliveryRecord, event.new, base=current)
    if delivery is None:
        return orders
    if current is not None and current.driver_id != delivery.driver_id:
        # The joined driver belongs to the previous assignment
        delivery = delivery.model_copy(update={"driver": None})

    patched = order.model_copy(update={"delivery": delivery})
    return _upsert(orders, patched)


# --- Deliveries ---

def apply_delivery_event(
    assigned: List[DeliveryRecord],
    available: List[DeliveryRecord],
    event: ChangeEvent,
    scope: DeliveryScope,
) -> Tuple[List[DeliveryRecord], List[DeliveryRecord]]:
    """
    Applies a `deliveries` table change to a driver's assigned list and the
    available pool. Returns the new (assigned, available) pair.

    A delivery sits in the assigned list exactly while it belongs to the
    scoped driver, and in the available pool exactly while its status is
    AVAILABLE (when the scope asks for the pool).
    """
    record_id = event.record_id
    if record_id is None:
        return assigned, available

    if event.event_type == EventType.DELETE:
        return _without(assigned, record_id), _without(available, record_id)

    if event.event_type not in (EventType.INSERT, EventType.UPDATE):
        return assigned, available

    # Prefer the copy that carries the joined order when merging
    existing = _find(assigned, record_id) or _find(available, record_id)
    record = _build(DeliveryRecord, event.new, base=existing)
    if record is None:
        return assigned, available

    if scope.driver_id is not None:
        if scope.is_assigned_to_me(record):
            assigned = _upsert(assigned, record)
        elif event.event_type == EventType.UPDATE:
            # Reassigned elsewhere or released back to the pool
            assigned = _without(assigned, record_id)

    if scope.include_available:
        if scope.wants_available(record):
            available = _upsert(available, record)
        elif event.event_type == EventType.UPDATE:
            available = _without(available, record_id)

    return assigned, available
