from typing import List

from fastapi import APIRouter, Depends

from auth.dependencies import get_vehicle_collection
from exceptions import result_or_raise
from models.enums import DocumentKind
from schemas.vehicle import (
    AddVehicleRequest,
    AssignDriverRequest,
    BalanceTopUpRequest,
    DocumentUpdateRequest,
    UpdateVehicleRequest,
    VehicleOut,
)
from services.collections import VehicleCollection

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.get("", response_model=List[VehicleOut])
async def list_vehicles(refresh: bool = False, vehicles: VehicleCollection = Depends(get_vehicle_collection)):
    return result_or_raise(await vehicles.list(refresh=refresh))


@router.post("", response_model=VehicleOut, status_code=201)
async def add_vehicle(body: AddVehicleRequest, vehicles: VehicleCollection = Depends(get_vehicle_collection)):
    return result_or_raise(await vehicles.add(body))


@router.patch("/{vehicle_id}", response_model=VehicleOut)
async def update_vehicle(
    vehicle_id: str,
    body: UpdateVehicleRequest,
    vehicles: VehicleCollection = Depends(get_vehicle_collection),
):
    return result_or_raise(await vehicles.update(vehicle_id, body))


@router.delete("/{vehicle_id}")
async def remove_vehicle(vehicle_id: str, vehicles: VehicleCollection = Depends(get_vehicle_collection)):
    return result_or_raise(await vehicles.remove(vehicle_id))


@router.put("/{vehicle_id}/documents/{kind}", response_model=VehicleOut)
async def update_document(
    vehicle_id: str,
    kind: DocumentKind,
    body: DocumentUpdateRequest,
    vehicles: VehicleCollection = Depends(get_vehicle_collection),
):
    return result_or_raise(await vehicles.update_document(vehicle_id, kind, body.status, body.expiry_date))


@router.post("/{vehicle_id}/balance")
async def top_up_balance(
    vehicle_id: str,
    body: BalanceTopUpRequest,
    vehicles: VehicleCollection = Depends(get_vehicle_collection),
):
    """Adds money to the prepaid balance and records it as an add_money transaction."""
    return result_or_raise(await vehicles.top_up_balance(vehicle_id, body))


@router.post("/{vehicle_id}/driver")
async def assign_driver(
    vehicle_id: str,
    body: AssignDriverRequest,
    vehicles: VehicleCollection = Depends(get_vehicle_collection),
):
    return result_or_raise(await vehicles.assign_driver_to_vehicle(vehicle_id, body.driver_id))


@router.delete("/{vehicle_id}/driver/{driver_id}")
async def unassign_driver(
    vehicle_id: str,
    driver_id: str,
    vehicles: VehicleCollection = Depends(get_vehicle_collection),
):
    return result_or_raise(await vehicles.unassign_driver_from_vehicle(vehicle_id, driver_id))
