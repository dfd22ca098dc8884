from enum import Enum
from tortoise import fields, models
import uuid


class DeliveryStatus(str, Enum):
    AVAILABLE = "available"  # No driver yet; visible in every driver's pool
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class VehicleType(str, Enum):
    BICYCLE = "bicycle"
    MOTORCYCLE = "motorcycle"
    CAR = "car"
    SCOOTER = "scooter"


class DeliveryDriver(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    user_id = fields.CharField(max_length=64, unique=True)
    vehicle_type = fields.CharEnumField(VehicleType, default=VehicleType.BICYCLE)
    is_online = fields.BooleanField(default=False)
    is_available = fields.BooleanField(default=True)
    current_latitude = fields.FloatField(null=True)
    current_longitude = fields.FloatField(null=True)
    last_location_update = fields.DatetimeField(null=True)
    rating = fields.DecimalField(max_digits=3, decimal_places=2, default=5)
    total_deliveries = fields.IntField(default=0)
    total_earnings = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "delivery_drivers"


class Delivery(models.Model):
    """
    Fulfillment leg of one order. `driver` is null exactly while the
    delivery is AVAILABLE.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.OneToOneField("models.Order", related_name="delivery")
    driver = fields.ForeignKeyField("models.DeliveryDriver", related_name="deliveries", null=True)
    pickup_address = fields.CharField(max_length=512)
    delivery_address = fields.CharField(max_length=512)
    status = fields.CharEnumField(DeliveryStatus, default=DeliveryStatus.AVAILABLE)
    delivery_fee = fields.DecimalField(max_digits=10, decimal_places=2, default=0)
    driver_earnings = fields.DecimalField(max_digits=10, decimal_places=2, default=0)
    assigned_at = fields.DatetimeField(null=True)
    picked_up_at = fields.DatetimeField(null=True)
    delivered_at = fields.DatetimeField(null=True)
    cancelled_at = fields.DatetimeField(null=True)
    cancellation_reason = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "deliveries"
        indexes = [
            ("status", "created_at"),    # Available pool, oldest first
            ("driver_id", "status"),     # A driver's active deliveries
        ]
