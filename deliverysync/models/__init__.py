# deliverysync/models/__init__.py
from .order import Order, OrderItem, OrderStatus, Restaurant, MenuItem
from .delivery import Delivery, DeliveryDriver, DeliveryStatus, VehicleType
from .change_log import ChangeLogEntry

# Export all models
__all__ = [
    "ChangeLogEntry",
    "Delivery",
    "DeliveryDriver",
    "DeliveryStatus",
    "MenuItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Restaurant",
    "VehicleType",
]
