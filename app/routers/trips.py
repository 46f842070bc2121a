from typing import List, Optional

from fastapi import APIRouter, Depends

from auth.dependencies import get_trip_collection
from exceptions import result_or_raise
from models.enums import TripStatus
from schemas.driver import DriverOut
from schemas.trip import CreateTripRequest, TripOut, TripStatusRequest, UpdateTripRequest
from services.collections import TripCollection

router = APIRouter(prefix="/trips", tags=["trips"])


@router.get("", response_model=List[TripOut])
async def list_trips(
    status: Optional[TripStatus] = None,
    refresh: bool = False,
    trips: TripCollection = Depends(get_trip_collection),
):
    listed = result_or_raise(await trips.list(refresh=refresh))
    if status is not None:
        listed = [trip for trip in listed if trip.status == status]
    return listed


@router.get("/suggested-driver", response_model=Optional[DriverOut])
async def suggested_driver(vehicle_id: str, trips: TripCollection = Depends(get_trip_collection)):
    return result_or_raise(await trips.suggest_driver(vehicle_id))


@router.get("/available-drivers", response_model=List[DriverOut])
async def available_drivers(vehicle_id: str, trips: TripCollection = Depends(get_trip_collection)):
    return result_or_raise(await trips.available_drivers(vehicle_id))


@router.post("", response_model=TripOut, status_code=201)
async def create_trip(body: CreateTripRequest, trips: TripCollection = Depends(get_trip_collection)):
    return result_or_raise(await trips.add(body))


@router.patch("/{trip_id}", response_model=TripOut)
async def update_trip(trip_id: str, body: UpdateTripRequest, trips: TripCollection = Depends(get_trip_collection)):
    return result_or_raise(await trips.update(trip_id, body))


@router.post("/{trip_id}/status", response_model=TripOut)
async def change_trip_status(
    trip_id: str,
    body: TripStatusRequest,
    trips: TripCollection = Depends(get_trip_collection),
):
    return result_or_raise(await trips.set_status(trip_id, body.status))


@router.delete("/{trip_id}")
async def remove_trip(trip_id: str, trips: TripCollection = Depends(get_trip_collection)):
    return result_or_raise(await trips.remove(trip_id))
