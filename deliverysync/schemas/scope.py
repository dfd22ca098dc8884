import uuid
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from deliverysync.models.delivery import DeliveryStatus
from deliverysync.schemas.records import DeliveryRecord, OrderRecord


class OrderScope(BaseModel):
    """Which orders a view holds: one customer's, one restaurant's, or an explicit id set."""
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    restaurant_id: Optional[uuid.UUID] = None
    order_ids: Optional[FrozenSet[uuid.UUID]] = None

    @model_validator(mode="after")
    def _exactly_one_filter(self):
        chosen = [
            self.user_id is not None,
            self.restaurant_id is not None,
            self.order_ids is not None,
        ]
        if sum(chosen) != 1:
            raise ValueError("exactly one of user_id, restaurant_id or order_ids is required")
        if self.order_ids is not None and not self.order_ids:
            raise ValueError("order_ids must not be empty")
        return self

    def includes(self, order: OrderRecord) -> bool:
        if self.user_id is not None:
            return order.user_id == self.user_id
        if self.restaurant_id is not None:
            return order.restaurant_id == self.restaurant_id
        return order.id in self.order_ids


class DeliveryScope(BaseModel):
    """A driver's own deliveries, the available pool, or both."""
    model_config = ConfigDict(frozen=True)

    driver_id: Optional[uuid.UUID] = None
    include_available: bool = False

    @model_validator(mode="after")
    def _something_to_watch(self):
        if self.driver_id is None and not self.include_available:
            raise ValueError("driver_id or include_available is required")
        return self

    def is_assigned_to_me(self, delivery: DeliveryRecord) -> bool:
        return self.driver_id is not None and delivery.driver_id == self.driver_id

    def wants_available(self, delivery: DeliveryRecord) -> bool:
        return self.include_available and delivery.status == DeliveryStatus.AVAILABLE
