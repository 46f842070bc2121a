from typing import List

from fastapi import APIRouter, Depends

from auth.dependencies import get_driver_collection
from exceptions import result_or_raise
from schemas.driver import AddDriverRequest, DriverOut, UpdateDriverRequest
from services.collections import DriverCollection

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.get("", response_model=List[DriverOut])
async def list_drivers(refresh: bool = False, drivers: DriverCollection = Depends(get_driver_collection)):
    return result_or_raise(await drivers.list(refresh=refresh))


@router.post("", response_model=DriverOut, status_code=201)
async def add_driver(body: AddDriverRequest, drivers: DriverCollection = Depends(get_driver_collection)):
    return result_or_raise(await drivers.add(body))


@router.patch("/{driver_id}", response_model=DriverOut)
async def update_driver(
    driver_id: str,
    body: UpdateDriverRequest,
    drivers: DriverCollection = Depends(get_driver_collection),
):
    return result_or_raise(await drivers.update(driver_id, body))


@router.delete("/{driver_id}")
async def remove_driver(driver_id: str, drivers: DriverCollection = Depends(get_driver_collection)):
    return result_or_raise(await drivers.remove(driver_id))
