import uuid
from typing import Optional
from pydantic import BaseModel, Field
from deliverysync.models.delivery import DeliveryStatus


class AcceptDeliveryRequest(BaseModel):
    driver_id: uuid.UUID

class DeliveryStatusUpdate(BaseModel):
    status: DeliveryStatus
    propagate_to_order: bool = Field(False, description="Mirror pickup/on-the-way/delivered onto the order.")
    cancellation_reason: Optional[str] = None

class DriverOnlineUpdate(BaseModel):
    is_online: bool

class DriverLocationUpdate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
