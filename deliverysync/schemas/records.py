"""
Domain records for the realtime views.

Rows reach the views from two directions: bulk reads through the ORM and
change events carrying plain JSON rows. Both are validated into these
models before they are stored, so the reconciler never works on loose
dictionaries.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_core import to_jsonable_python

from deliverysync.models.delivery import DeliveryStatus, VehicleType
from deliverysync.models.order import OrderStatus

# A delivery in one of these statuses must carry a driver
DRIVER_REQUIRED_STATUSES = {
    DeliveryStatus.ASSIGNED,
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.ON_THE_WAY,
    DeliveryStatus.DELIVERED,
    DeliveryStatus.CANCELLED,
}


class Record(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: uuid.UUID


class RestaurantRecord(Record):
    name: str
    address: str = ""
    is_active: bool = True


class MenuItemRecord(Record):
    restaurant_id: uuid.UUID
    name: str
    price: Decimal
    is_available: bool = True


class OrderItemRecord(Record):
    order_id: uuid.UUID
    menu_item_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    special_instructions: Optional[str] = None
    menu_item: Optional[MenuItemRecord] = None


class DriverRecord(Record):
    user_id: str
    vehicle_type: VehicleType = VehicleType.BICYCLE
    is_online: bool = False
    is_available: bool = True
    current_latitude: Optional[float] = None
    current_longitude: Optional[float] = None
    last_location_update: Optional[datetime] = None
    rating: Decimal = Decimal("5")
    total_deliveries: int = 0
    total_earnings: Decimal = Decimal("0")


class DeliveryRecord(Record):
    order_id: uuid.UUID
    driver_id: Optional[uuid.UUID] = None
    pickup_address: str = ""
    delivery_address: str = ""
    status: DeliveryStatus
    delivery_fee: Decimal = Decimal("0")
    driver_earnings: Decimal = Decimal("0")
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    order: Optional["OrderRecord"] = None
    driver: Optional[DriverRecord] = None

    @model_validator(mode="after")
    def _driver_matches_status(self):
        if self.status == DeliveryStatus.AVAILABLE and self.driver_id is not None:
            raise ValueError("an available delivery cannot have a driver")
        if self.status in DRIVER_REQUIRED_STATUSES and self.driver_id is None:
            raise ValueError(f"a {self.status.value} delivery must have a driver")
        return self


class OrderRecord(Record):
    order_number: Optional[str] = None
    user_id: str
    restaurant_id: uuid.UUID
    status: OrderStatus
    subtotal: Decimal = Decimal("0")
    delivery_fee: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    delivery_address: str = ""
    delivery_instructions: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    prepared_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    restaurant: Optional[RestaurantRecord] = None
    order_items: List[OrderItemRecord] = Field(default_factory=list)
    delivery: Optional[DeliveryRecord] = None


DeliveryRecord.model_rebuild()


# --- ORM row mapping ---

def row_fields(instance) -> Dict[str, Any]:
    """Column values of a Tortoise model instance, keyed by field name (FKs as `<name>_id`)."""
    return {name: getattr(instance, name) for name in instance._meta.fields_db_projection}


def row_payload(instance) -> Dict[str, Any]:
    """JSON-safe column values, as carried in a change event."""
    return to_jsonable_python(row_fields(instance))


def order_record(order, delivery: Optional[DeliveryRecord] = None) -> OrderRecord:
    """Maps an Order prefetched with `restaurant` and `order_items__menu_item`."""
    data = row_fields(order)
    data["restaurant"] = row_fields(order.restaurant)
    data["order_items"] = [
        {**row_fields(item), "menu_item": row_fields(item.menu_item)}
        for item in order.order_items
    ]
    data["delivery"] = delivery
    return OrderRecord.model_validate(data)


def delivery_record(delivery, order: Optional[OrderRecord] = None, driver=None) -> DeliveryRecord:
    data = row_fields(delivery)
    data["order"] = order
    data["driver"] = row_fields(driver) if driver is not None else None
    return DeliveryRecord.model_validate(data)
