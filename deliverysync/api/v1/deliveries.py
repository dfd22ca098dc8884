import logging
from fastapi import APIRouter, HTTPException, WebSocket, status
from pydantic import ValidationError
from deliverysync.schemas.delivery import AcceptDeliveryRequest, DeliveryStatusUpdate
from deliverysync.realtime.streaming import stream_view
from deliverysync.schemas.response import SuccessResponse
from deliverysync.schemas.scope import DeliveryScope
from deliverysync.services.delivery_service import accept_delivery, update_delivery_status
from deliverysync.sync.snapshot import TortoiseSnapshotLoader
from deliverysync.sync.subscriber import RealtimeDeliveries
from typing import Optional
from uuid import UUID

router = APIRouter()
log = logging.getLogger("deliverysync.api.deliveries")


@router.get("/", response_model=SuccessResponse)
async def list_deliveries_endpoint(driver_id: Optional[UUID] = None, include_available: bool = False):
    """Snapshot of a driver's active deliveries and/or the available pool."""
    try:
        scope = DeliveryScope(driver_id=driver_id, include_available=include_available)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Provide driver_id and/or include_available=true.")

    try:
        assigned, available = await TortoiseSnapshotLoader().load_deliveries(scope)
    except Exception as e:
        log.error(f"Error loading deliveries for {scope}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load deliveries")

    return SuccessResponse(data={
        "deliveries": [d.model_dump(mode="json") for d in assigned or []],
        "available_deliveries": [d.model_dump(mode="json") for d in available or []],
    })


@router.post("/{delivery_id}/accept", response_model=SuccessResponse)
async def accept_delivery_endpoint(delivery_id: UUID, payload: AcceptDeliveryRequest):
    """
    Claims an available delivery. 409 means another driver got there first.
    """
    accepted = await accept_delivery(payload.driver_id, delivery_id)
    if not accepted:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Delivery is no longer available.")
    return SuccessResponse(data={"delivery_id": str(delivery_id), "driver_id": str(payload.driver_id)})


@router.patch("/{delivery_id}/status", response_model=SuccessResponse)
async def update_delivery_status_endpoint(delivery_id: UUID, payload: DeliveryStatusUpdate):
    accepted = await update_delivery_status(
        delivery_id,
        payload.status,
        propagate_to_order=payload.propagate_to_order,
        cancellation_reason=payload.cancellation_reason,
    )
    if not accepted:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Delivery {delivery_id} cannot move to {payload.status.value}.",
        )
    return SuccessResponse(data={"delivery_id": str(delivery_id), "status": payload.status.value})


@router.websocket("/ws")
async def deliveries_stream(websocket: WebSocket, driver_id: Optional[UUID] = None, include_available: bool = False):
    """Pushes the driver's lists on connect and after every change."""
    try:
        scope = DeliveryScope(driver_id=driver_id, include_available=include_available)
    except ValidationError:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    view = RealtimeDeliveries(websocket.app.state.feed, TortoiseSnapshotLoader(), scope)
    await stream_view(websocket, view)
    log.info(f"Deliveries stream for {scope} ended.")
