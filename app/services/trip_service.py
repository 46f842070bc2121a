from typing import Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utc_now
from core.metrics import track_performance
from models.driver import Driver
from models.enums import TripStatus
from models.trip import Trip
from models.vehicle import Vehicle
from schemas.trip import CreateTripRequest, TripStatusRequest, UpdateTripRequest
from services.driver_service import DriverService
from services.exceptions import (
    CrewBusyError,
    DatabaseQueryError,
    DriverNotFoundError,
    DriverUnavailableError,
    FleetValidationError,
    InvalidTripTransitionError,
    TripInProgressError,
    TripNotEditableError,
    TripNotFoundError,
)
from services.vehicle_service import VehicleService

# Allowed status moves; completed and cancelled are final
TRIP_TRANSITIONS: Dict[TripStatus, FrozenSet[TripStatus]] = {
    TripStatus.SCHEDULED: frozenset({TripStatus.IN_PROGRESS, TripStatus.CANCELLED}),
    TripStatus.IN_PROGRESS: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}


def driver_is_available(driver: Driver, vehicle_id: str) -> bool:
    """A driver is free for a vehicle when unassigned or already assigned to that vehicle."""
    assigned = driver.assigned_vehicle_ids or []
    return not assigned or vehicle_id in assigned


class TripService:
    """
    Owner-scoped trip bookings and their status lifecycle.

    Trips point at a vehicle and a driver by id and keep a snapshot of the
    registration number and driver name, so removing either keeps the history.
    """

    def __init__(self, db: AsyncSession, owner_id: str):
        self.db = db
        self.owner_id = owner_id
        self.vehicles = VehicleService(db, owner_id)
        self.drivers = DriverService(db, owner_id)

    @track_performance(service_name="TripService")
    async def list_trips_core(self) -> List[Trip]:
        try:
            result = await self.db.execute(
                select(Trip)
                .where(Trip.owner_id == self.owner_id)
                .order_by(Trip.scheduled_start_time.desc(), Trip.created_at.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

    async def get_trip_core(self, trip_id: str, for_update: bool = False) -> Trip:
        stmt = select(Trip).where(Trip.id == trip_id, Trip.owner_id == self.owner_id)
        if for_update:
            stmt = stmt.with_for_update()
        try:
            trip = (await self.db.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))

        if not trip:
            raise TripNotFoundError()
        return trip

    async def suggest_driver_core(self, vehicle_id: str) -> Optional[Driver]:
        """The vehicle's own driver, else the first driver whose assignments include it."""
        vehicle = await self.vehicles.get_vehicle_core(vehicle_id)
        return await self._suggested_driver(vehicle)

    async def available_drivers_core(self, vehicle_id: str) -> List[Driver]:
        vehicle = await self.vehicles.get_vehicle_core(vehicle_id)
        drivers = await self.drivers.list_drivers_core()
        return [d for d in drivers if driver_is_available(d, vehicle.id)]

    @track_performance(service_name="TripService")
    async def add_trip_core(self, data: CreateTripRequest) -> Trip:
        if data.scheduled_start_time < utc_now():
            raise FleetValidationError("Scheduled start time cannot be in the past", field="scheduled_start_time")

        vehicle, driver = await self._resolve_crew(data.vehicle_id, data.driver_id)
        trip = Trip(
            owner_id=self.owner_id,
            type=data.type.value,
            status=TripStatus.SCHEDULED.value,
            scheduled_start_time=data.scheduled_start_time,
            base_fare=data.base_fare,
            corporate_account_id=data.corporate_account_id,
            notes=data.notes,
            created_at=utc_now(),
        )
        self._set_stop(trip, "pickup", data.pickup)
        self._set_stop(trip, "destination", data.destination)
        self._set_passenger(trip, data.passenger)
        self._set_crew(trip, vehicle, driver)

        self.db.add(trip)
        await self._commit()
        return trip

    @track_performance(service_name="TripService")
    async def update_trip_core(self, trip_id: str, data: UpdateTripRequest) -> Trip:
        trip = await self.get_trip_core(trip_id, for_update=True)
        if trip.status != TripStatus.SCHEDULED.value:
            raise TripNotEditableError(field="status")

        changes = data.model_dump(exclude_unset=True)
        for key in ("pickup", "destination", "scheduled_start_time", "type", "vehicle_id", "passenger", "base_fare"):
            if key in changes and changes[key] is None:
                raise FleetValidationError(f"{key} cannot be empty", field=key)

        if "scheduled_start_time" in changes and data.scheduled_start_time < utc_now():
            raise FleetValidationError("Scheduled start time cannot be in the past", field="scheduled_start_time")

        if "vehicle_id" in changes or "driver_id" in changes:
            vehicle_id = data.vehicle_id if "vehicle_id" in changes else trip.vehicle_id
            if "driver_id" in changes:
                driver_id = data.driver_id or None
            elif "vehicle_id" in changes:
                # A different vehicle gets its own suggested driver
                driver_id = None
            else:
                driver_id = trip.driver_id
            vehicle, driver = await self._resolve_crew(vehicle_id, driver_id)
            self._set_crew(trip, vehicle, driver)

        for name in ("pickup", "destination"):
            if name in changes:
                self._set_stop(trip, name, getattr(data, name))
        if "passenger" in changes:
            self._set_passenger(trip, data.passenger)
        if "scheduled_start_time" in changes:
            trip.scheduled_start_time = data.scheduled_start_time
        if "type" in changes:
            trip.type = data.type.value
        if "base_fare" in changes:
            trip.base_fare = data.base_fare
        for key in ("corporate_account_id", "notes"):
            if key in changes:
                setattr(trip, key, (changes[key] or "").strip() or None)

        trip.updated_at = utc_now()
        await self._commit()
        return trip

    @track_performance(service_name="TripService")
    async def change_status_core(self, trip_id: str, data: TripStatusRequest) -> Trip:
        """
        Moves a trip along scheduled -> in_progress -> completed, or to cancelled.

        Starting a trip needs its vehicle and driver to still exist and
        neither may already be on another trip in progress.
        """
        trip = await self.get_trip_core(trip_id, for_update=True)
        current = TripStatus(trip.status)
        target = data.status
        if target not in TRIP_TRANSITIONS[current]:
            raise InvalidTripTransitionError(
                f"A {current.value} trip cannot become {target.value}", field="status"
            )

        now = utc_now()
        if target == TripStatus.IN_PROGRESS:
            await self._ensure_crew_free(trip)
            trip.started_at = now
        elif target == TripStatus.COMPLETED:
            trip.completed_at = now

        trip.status = target.value
        trip.updated_at = now
        await self._commit()
        return trip

    @track_performance(service_name="TripService")
    async def remove_trip_core(self, trip_id: str) -> None:
        trip = await self.get_trip_core(trip_id, for_update=True)
        if trip.status == TripStatus.IN_PROGRESS.value:
            raise TripInProgressError(field="status")
        await self.db.delete(trip)
        await self._commit()

    async def _resolve_crew(self, vehicle_id: Optional[str], driver_id: Optional[str]) -> Tuple[Vehicle, Driver]:
        if not vehicle_id:
            raise FleetValidationError("Vehicle selection is required", field="vehicle_id")
        vehicle = await self.vehicles.get_vehicle_core(vehicle_id)

        if driver_id:
            driver = await self.drivers.get_driver_core(driver_id)
            if not driver_is_available(driver, vehicle.id):
                raise DriverUnavailableError(field="driver_id")
        else:
            driver = await self._suggested_driver(vehicle)
            if driver is None:
                raise FleetValidationError("Driver selection is required", field="driver_id")
        return vehicle, driver

    async def _suggested_driver(self, vehicle: Vehicle) -> Optional[Driver]:
        if vehicle.driver_id:
            try:
                return await self.drivers.get_driver_core(vehicle.driver_id)
            except DriverNotFoundError:
                pass
        for driver in await self.drivers.list_drivers_core():
            if vehicle.id in (driver.assigned_vehicle_ids or []):
                return driver
        return None

    async def _ensure_crew_free(self, trip: Trip):
        if not trip.driver_id:
            raise FleetValidationError("Driver selection is required", field="driver_id")
        # Both raise NotFound when the vehicle or driver was removed after booking
        await self.vehicles.get_vehicle_core(trip.vehicle_id)
        await self.drivers.get_driver_core(trip.driver_id)

        try:
            busy = (
                await self.db.execute(
                    select(Trip.id).where(
                        Trip.owner_id == self.owner_id,
                        Trip.id != trip.id,
                        Trip.status == TripStatus.IN_PROGRESS.value,
                        or_(Trip.vehicle_id == trip.vehicle_id, Trip.driver_id == trip.driver_id),
                    )
                )
            ).first()
        except SQLAlchemyError as e:
            raise DatabaseQueryError(str(e))
        if busy is not None:
            raise CrewBusyError(field="status")

    @staticmethod
    def _set_stop(trip: Trip, name: str, stop):
        setattr(trip, f"{name}_address", stop.address)
        setattr(trip, f"{name}_landmark", stop.landmark)

    @staticmethod
    def _set_passenger(trip: Trip, passenger):
        trip.passenger_name = passenger.name
        trip.passenger_phone = passenger.phone
        trip.passenger_email = str(passenger.email) if passenger.email else None

    @staticmethod
    def _set_crew(trip: Trip, vehicle: Vehicle, driver: Driver):
        trip.vehicle_id = vehicle.id
        trip.vehicle_number = vehicle.registration_number
        trip.driver_id = driver.id
        trip.driver_name = driver.name

    async def _commit(self):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))
