"""
Domain collections: the owner-scoped vehicle, driver, transaction and trip
sets of one signed-in session.

A collection validates input locally, delegates persistence to its service,
keeps the session's cache in step with successful writes and reports every
outcome as an OperationResult. Callers never see an exception from here.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.prometheus_metrics import prometheus_collector
from core.session import SessionStore
from models.enums import DocumentKind
from schemas.driver import AddDriverRequest, DriverOut, UpdateDriverRequest
from schemas.transaction import TransactionCreate, TransactionOut, TransactionUpdate
from schemas.trip import CreateTripRequest, TripOut, TripStatusRequest, UpdateTripRequest
from schemas.vehicle import (
    AddVehicleRequest,
    AssignDriverRequest,
    BalanceTopUpRequest,
    DocumentUpdateRequest,
    UpdateVehicleRequest,
    VehicleOut,
)
from services.driver_service import DriverService
from services.exceptions import (
    CollaboratorError,
    FleetDomainError,
    FleetValidationError,
    NotAuthenticatedError,
)
from services.results import OperationResult
from services.transaction_service import TransactionService
from services.trip_service import TripService
from services.vehicle_service import VehicleService

logger = logging.getLogger(__name__)


def validate_input(schema: Type[BaseModel], data: Any) -> BaseModel:
    """Parses request data with a pydantic schema, reporting the first bad field."""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        message = first.get("msg", "Invalid input")
        # pydantic prefixes errors raised from validators
        message = message.removeprefix("Value error, ")
        raise FleetValidationError(message, field=field)


class DomainCollection:
    name: str = ""

    def __init__(self, db: AsyncSession, store: SessionStore):
        self.db = db
        self.store = store

    @property
    def owner_id(self) -> Optional[str]:
        return self.store.user_id

    @property
    def cache(self):
        return self.store.cache(self.name)

    async def _execute(
        self,
        operation: str,
        work: Callable[[], Awaitable[Any]],
        apply: Optional[Callable[[Any], None]] = None,
    ) -> OperationResult:
        """
        Runs one collection operation.

        Mutations on a collection are serialized by the session's lock for that
        collection. `apply` updates the cache and only runs on success and only
        if the session identity did not change while `work` was in flight.
        """
        if not self.store.is_authenticated:
            return OperationResult.fail(NotAuthenticatedError())

        generation = self.store.generation
        async with self.store.lock(self.name):
            try:
                value = await work()
            except FleetDomainError as e:
                await self.db.rollback()
                logger.info(
                    f"{self.name}.{operation} rejected: {e.__class__.__name__}",
                    extra={'owner_id': self.owner_id, 'field': e.field},
                )
                return OperationResult.fail(e)
            except Exception as e:
                await self.db.rollback()
                logger.exception(f"Unexpected error in {self.name}.{operation}: {e}")
                return OperationResult.fail(CollaboratorError())

            if apply is not None:
                if self.store.generation == generation:
                    apply(value)
                else:
                    logger.info(
                        f"Discarding cache update for {self.name}.{operation}: session changed",
                        extra={'session_id': self.store.session_id},
                    )
            return OperationResult.ok(value)


class VehicleCollection(DomainCollection):
    name = "vehicles"

    def __init__(self, db: AsyncSession, store: SessionStore):
        super().__init__(db, store)
        self.service = VehicleService(db, store.user_id)
        self.drivers = DriverService(db, store.user_id)

    def _sorted(self) -> List[VehicleOut]:
        return self.cache.values(sort_key=lambda v: v.created_at, reverse=True)

    async def list(self, refresh: bool = False) -> OperationResult:
        if self.store.is_authenticated and self.cache.loaded and not refresh:
            prometheus_collector.record_collection_read(self.name, from_cache=True)
            return OperationResult.ok(self._sorted())
        prometheus_collector.record_collection_read(self.name, from_cache=False)

        async def work():
            return [VehicleOut.from_model(v) for v in await self.service.list_vehicles_core()]

        result = await self._execute("list", work, self.cache.replace)
        if result.success:
            result.data = sorted(result.data, key=lambda v: v.created_at, reverse=True)
        return result

    async def add(self, data: Any) -> OperationResult:
        async def work():
            request = validate_input(AddVehicleRequest, data)
            return VehicleOut.from_model(await self.service.add_vehicle_core(request))

        return await self._execute("add", work, self.cache.upsert)

    async def update(self, vehicle_id: str, partial_data: Any) -> OperationResult:
        async def work():
            request = validate_input(UpdateVehicleRequest, partial_data)
            return VehicleOut.from_model(await self.service.update_vehicle_core(vehicle_id, request))

        return await self._execute("update", work, self.cache.upsert)

    async def remove(self, vehicle_id: str) -> OperationResult:
        async def work():
            driver = await self.service.remove_vehicle_core(vehicle_id)
            return {"id": vehicle_id, "driver": DriverOut.model_validate(driver) if driver else None}

        def apply(value):
            self.cache.discard(value["id"])
            if value["driver"] is not None:
                self.store.cache("drivers").upsert(value["driver"])

        result = await self._execute("remove", work, apply)
        if result.success:
            result.data = {"id": vehicle_id}
        return result

    async def update_document(self, vehicle_id: str, kind: Any, status: Any, expiry_date: Any = None) -> OperationResult:
        async def work():
            try:
                document_kind = DocumentKind(kind)
            except ValueError:
                raise FleetValidationError("Unknown document type", field="kind")
            request = validate_input(DocumentUpdateRequest, {"status": status, "expiry_date": expiry_date})
            vehicle = await self.service.update_document_core(vehicle_id, document_kind, request)
            return VehicleOut.from_model(vehicle)

        return await self._execute("update_document", work, self.cache.upsert)

    async def top_up_balance(self, vehicle_id: str, data: Any) -> OperationResult:
        async def work():
            request = validate_input(BalanceTopUpRequest, data)
            vehicle, tx = await self.service.top_up_balance_core(vehicle_id, request)
            return {"vehicle": VehicleOut.from_model(vehicle), "transaction": TransactionOut.model_validate(tx)}

        def apply(value):
            self.cache.upsert(value["vehicle"])
            self.store.cache("transactions").upsert(value["transaction"])

        return await self._execute("top_up_balance", work, apply)

    async def assign_driver_to_vehicle(self, vehicle_id: str, driver_id: str) -> OperationResult:
        async def work():
            request = validate_input(AssignDriverRequest, {"driver_id": driver_id})
            vehicle, drivers = await self.drivers.assign_driver_core(vehicle_id, request.driver_id)
            return {
                "vehicle": VehicleOut.from_model(vehicle),
                "drivers": [DriverOut.model_validate(d) for d in drivers],
            }

        return await self._execute("assign_driver", work, self._apply_assignment)

    async def unassign_driver_from_vehicle(self, vehicle_id: str, driver_id: str) -> OperationResult:
        async def work():
            vehicle, driver = await self.drivers.unassign_driver_core(vehicle_id, driver_id)
            return {
                "vehicle": VehicleOut.from_model(vehicle),
                "drivers": [DriverOut.model_validate(driver)],
            }

        return await self._execute("unassign_driver", work, self._apply_assignment)

    def _apply_assignment(self, value: Dict[str, Any]):
        self.cache.upsert(value["vehicle"])
        driver_cache = self.store.cache("drivers")
        for driver in value["drivers"]:
            driver_cache.upsert(driver)


class DriverCollection(DomainCollection):
    name = "drivers"

    def __init__(self, db: AsyncSession, store: SessionStore):
        super().__init__(db, store)
        self.service = DriverService(db, store.user_id)

    async def list(self, refresh: bool = False) -> OperationResult:
        if self.store.is_authenticated and self.cache.loaded and not refresh:
            prometheus_collector.record_collection_read(self.name, from_cache=True)
            return OperationResult.ok(self.cache.values(sort_key=lambda d: d.created_at))
        prometheus_collector.record_collection_read(self.name, from_cache=False)

        async def work():
            return [DriverOut.model_validate(d) for d in await self.service.list_drivers_core()]

        return await self._execute("list", work, self.cache.replace)

    async def add(self, data: Any) -> OperationResult:
        async def work():
            request = validate_input(AddDriverRequest, data)
            return DriverOut.model_validate(await self.service.add_driver_core(request))

        return await self._execute("add", work, self.cache.upsert)

    async def update(self, driver_id: str, partial_data: Any) -> OperationResult:
        async def work():
            request = validate_input(UpdateDriverRequest, partial_data)
            return DriverOut.model_validate(await self.service.update_driver_core(driver_id, request))

        return await self._execute("update", work, self.cache.upsert)

    async def remove(self, driver_id: str) -> OperationResult:
        async def work():
            vehicles = await self.service.remove_driver_core(driver_id)
            return {"id": driver_id, "vehicles": [VehicleOut.from_model(v) for v in vehicles]}

        def apply(value):
            self.cache.discard(value["id"])
            vehicle_cache = self.store.cache("vehicles")
            for vehicle in value["vehicles"]:
                vehicle_cache.upsert(vehicle)

        result = await self._execute("remove", work, apply)
        if result.success:
            result.data = {"id": driver_id}
        return result


class TransactionCollection(DomainCollection):
    name = "transactions"

    def __init__(self, db: AsyncSession, store: SessionStore):
        super().__init__(db, store)
        self.service = TransactionService(db, store.user_id)

    @staticmethod
    def _order(tx: TransactionOut):
        return (tx.date, tx.created_at)

    async def list(self, refresh: bool = False) -> OperationResult:
        if self.store.is_authenticated and self.cache.loaded and not refresh:
            prometheus_collector.record_collection_read(self.name, from_cache=True)
            return OperationResult.ok(self.cache.values(sort_key=self._order, reverse=True))
        prometheus_collector.record_collection_read(self.name, from_cache=False)

        async def work():
            return [TransactionOut.model_validate(t) for t in await self.service.list_transactions_core()]

        return await self._execute("list", work, self.cache.replace)

    async def add(self, data: Any) -> OperationResult:
        async def work():
            request = validate_input(TransactionCreate, data)
            return TransactionOut.model_validate(await self.service.add_transaction_core(request))

        return await self._execute("add", work, self.cache.upsert)

    async def update(self, transaction_id: str, partial_data: Any) -> OperationResult:
        async def work():
            request = validate_input(TransactionUpdate, partial_data)
            return TransactionOut.model_validate(
                await self.service.update_transaction_core(transaction_id, request)
            )

        return await self._execute("update", work, self.cache.upsert)

    async def remove(self, transaction_id: str) -> OperationResult:
        async def work():
            await self.service.remove_transaction_core(transaction_id)
            return {"id": transaction_id}

        return await self._execute("remove", work, lambda value: self.cache.discard(value["id"]))


class TripCollection(DomainCollection):
    name = "trips"

    def __init__(self, db: AsyncSession, store: SessionStore):
        super().__init__(db, store)
        self.service = TripService(db, store.user_id)

    @staticmethod
    def _order(trip: TripOut):
        return (trip.scheduled_start_time, trip.created_at)

    async def list(self, refresh: bool = False) -> OperationResult:
        if self.store.is_authenticated and self.cache.loaded and not refresh:
            prometheus_collector.record_collection_read(self.name, from_cache=True)
            return OperationResult.ok(self.cache.values(sort_key=self._order, reverse=True))
        prometheus_collector.record_collection_read(self.name, from_cache=False)

        async def work():
            return [TripOut.from_model(t) for t in await self.service.list_trips_core()]

        return await self._execute("list", work, self.cache.replace)

    async def add(self, data: Any) -> OperationResult:
        async def work():
            request = validate_input(CreateTripRequest, data)
            return TripOut.from_model(await self.service.add_trip_core(request))

        return await self._execute("add", work, self.cache.upsert)

    async def update(self, trip_id: str, partial_data: Any) -> OperationResult:
        async def work():
            request = validate_input(UpdateTripRequest, partial_data)
            return TripOut.from_model(await self.service.update_trip_core(trip_id, request))

        return await self._execute("update", work, self.cache.upsert)

    async def set_status(self, trip_id: str, status: Any) -> OperationResult:
        async def work():
            request = validate_input(TripStatusRequest, {"status": status})
            return TripOut.from_model(await self.service.change_status_core(trip_id, request))

        return await self._execute("set_status", work, self.cache.upsert)

    async def remove(self, trip_id: str) -> OperationResult:
        async def work():
            await self.service.remove_trip_core(trip_id)
            return {"id": trip_id}

        return await self._execute("remove", work, lambda value: self.cache.discard(value["id"]))

    async def suggest_driver(self, vehicle_id: str) -> OperationResult:
        """Driver to preselect for a vehicle; data is None when nobody drives it."""
        async def work():
            driver = await self.service.suggest_driver_core(vehicle_id)
            return DriverOut.model_validate(driver) if driver else None

        return await self._execute("suggest_driver", work)

    async def available_drivers(self, vehicle_id: str) -> OperationResult:
        async def work():
            return [DriverOut.model_validate(d) for d in await self.service.available_drivers_core(vehicle_id)]

        return await self._execute("available_drivers", work)
