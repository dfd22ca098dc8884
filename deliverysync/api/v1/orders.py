import logging
from fastapi import APIRouter, HTTPException, Query, WebSocket, status
from pydantic import ValidationError
from deliverysync.realtime.streaming import stream_view
from deliverysync.schemas.response import SuccessResponse
from deliverysync.schemas.order import OrderRequest, OrderPlacementResponse, OrderStatusUpdate
from deliverysync.schemas.scope import OrderScope
from deliverysync.schemas.records import order_record
from deliverysync.services.order_service import place_order, get_order_by_id, update_order_status
from deliverysync.sync.snapshot import TortoiseSnapshotLoader
from deliverysync.sync.subscriber import RealtimeOrders
from typing import List, Optional
from uuid import UUID

router = APIRouter()
log = logging.getLogger("deliverysync.api.orders")


def _order_scope(user_id: Optional[str], restaurant_id: Optional[UUID], order_ids: Optional[List[UUID]]) -> OrderScope:
    return OrderScope(
        user_id=user_id,
        restaurant_id=restaurant_id,
        order_ids=frozenset(order_ids) if order_ids else None,
    )


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_order_endpoint(request_data: OrderRequest, user_id: str = "user-12345"):
    """Places a new order. Subscribed views pick it up from the change feed."""
    try:
        items_data = [
            {
                "menu_item_id": str(item.menu_item_id),
                "quantity": item.quantity,
                "special_instructions": item.special_instructions,
            }
            for item in request_data.items
        ]

        if not items_data:
            raise HTTPException(status_code=400, detail="Order must contain items.")

        order = await place_order(
            user_id=user_id,
            restaurant_id=request_data.restaurant_id,
            items=items_data,
            delivery_address=request_data.delivery_address,
            delivery_instructions=request_data.delivery_instructions,
            delivery_fee=request_data.delivery_fee,
        )
        data = OrderPlacementResponse(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            total=order.total,
            message="Order placed."
        ).model_dump(mode="json")
        return SuccessResponse(data=data)
    except ValueError as e:
        log.error(f"Value error placing order: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException as he:
        log.error(f"HTTP error placing order: {he.detail}")
        raise he
    except Exception as e:
        log.error(f"Error placing order: {e}")
        raise HTTPException(status_code=500, detail="Server failed to place order.")


@router.get("/", response_model=SuccessResponse)
async def list_orders_endpoint(
    user_id: Optional[str] = None,
    restaurant_id: Optional[UUID] = None,
    order_ids: Optional[List[UUID]] = Query(None),
):
    """Snapshot of the orders one customer, one restaurant, or an id list can see."""
    try:
        scope = _order_scope(user_id, restaurant_id, order_ids)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Provide exactly one of user_id, restaurant_id or order_ids.")

    try:
        orders = await TortoiseSnapshotLoader().load_orders(scope)
    except Exception as e:
        log.error(f"Error loading orders for {scope}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load orders")
    return SuccessResponse(data=[o.model_dump(mode="json") for o in orders])


@router.get("/{order_id}", response_model=SuccessResponse)
async def get_order_endpoint(order_id: UUID):
    """Fetches one order with its restaurant and line items."""
    try:
        order = await get_order_by_id(order_id)
    except Exception as e:
        log.error(f"Error fetching order {order_id}: {e}")
        raise HTTPException(status_code=500, detail="Server failed to fetch order details.")

    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return SuccessResponse(data=order_record(order).model_dump(mode="json"))


@router.patch("/{order_id}/status", response_model=SuccessResponse)
async def update_status_endpoint(order_id: UUID, payload: OrderStatusUpdate):
    """
    Moves the order forward (e.g. 'confirmed', 'ready') or cancels it.
    """
    accepted = await update_order_status(order_id, payload.status, payload.cancellation_reason)
    if not accepted:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Order {order_id} cannot move to {payload.status.value}.",
        )
    return SuccessResponse(data={"order_id": str(order_id), "status": payload.status.value})


@router.websocket("/ws")
async def orders_stream(
    websocket: WebSocket,
    user_id: Optional[str] = None,
    restaurant_id: Optional[UUID] = None,
    order_ids: Optional[List[UUID]] = Query(None),
):
    """Pushes the scoped order list on connect and after every change."""
    try:
        scope = _order_scope(user_id, restaurant_id, order_ids)
    except ValidationError:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    view = RealtimeOrders(websocket.app.state.feed, TortoiseSnapshotLoader(), scope)
    await stream_view(websocket, view)
    log.info(f"Orders stream for {scope} ended.")
