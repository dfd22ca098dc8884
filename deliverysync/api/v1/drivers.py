import logging
from fastapi import APIRouter, HTTPException, status
from deliverysync.schemas.delivery import DriverLocationUpdate, DriverOnlineUpdate
from deliverysync.schemas.records import DriverRecord, row_fields
from deliverysync.schemas.response import SuccessResponse
from deliverysync.services.driver_service import get_driver_by_user_id, set_driver_online, update_driver_location
from uuid import UUID

router = APIRouter()
log = logging.getLogger("deliverysync.api.drivers")


@router.get("/by-user/{user_id}", response_model=SuccessResponse)
async def get_driver_endpoint(user_id: str):
    """Fetches the driver profile linked to a user account."""
    driver = await get_driver_by_user_id(user_id)
    if not driver:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Driver not found")
    return SuccessResponse(data=DriverRecord.model_validate(row_fields(driver)).model_dump(mode="json"))


@router.patch("/{driver_id}/online", response_model=SuccessResponse)
async def set_online_endpoint(driver_id: UUID, payload: DriverOnlineUpdate):
    if not await set_driver_online(driver_id, payload.is_online):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Driver could not be updated.")
    return SuccessResponse(data={"driver_id": str(driver_id), "is_online": payload.is_online})


@router.patch("/{driver_id}/location", response_model=SuccessResponse)
async def update_location_endpoint(driver_id: UUID, payload: DriverLocationUpdate):
    if not await update_driver_location(driver_id, payload.latitude, payload.longitude):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Driver could not be updated.")
    return SuccessResponse(data={"driver_id": str(driver_id), "latitude": payload.latitude, "longitude": payload.longitude})
