import pytest
from sqlalchemy import select

from models.driver import Driver
from models.vehicle import Vehicle
from services.collections import DriverCollection, VehicleCollection


@pytest.fixture
def vehicles(async_db_session, session_store) -> VehicleCollection:
    return VehicleCollection(async_db_session, session_store)


@pytest.fixture
def drivers(async_db_session, session_store) -> DriverCollection:
    return DriverCollection(async_db_session, session_store)


async def add_driver(drivers, name="Ravi Kumar", license_number="KA0120230001", phone="9123456780"):
    result = await drivers.add({"name": name, "license_number": license_number, "phone": phone})
    assert result.success, result.message
    return result.data


async def stored(db, model, record_id):
    db.expire_all()
    return (await db.execute(select(model).where(model.id == record_id))).scalar_one()


async def test_add_driver_normalizes_phone(drivers):
    driver = await add_driver(drivers, phone="+91 91234-56780")
    assert driver.phone == "9123456780"
    assert driver.assigned_vehicle_ids == []


async def test_add_driver_requires_valid_phone(drivers):
    result = await drivers.add({"name": "Ravi", "license_number": "KA0120230001", "phone": "123"})
    assert result.error_type == "FleetValidationError"
    assert result.field == "phone"


async def test_assignment_updates_both_sides(vehicles, drivers, async_db_session, session_store):
    vehicle = (await vehicles.add({"registration_number": "KA01AB1234"})).data
    driver = await add_driver(drivers)

    result = await vehicles.assign_driver_to_vehicle(vehicle.id, driver.id)

    assert result.success, result.message
    assert result.data["vehicle"].driver_id == driver.id
    assert (await stored(async_db_session, Vehicle, vehicle.id)).driver_id == driver.id
    assert (await stored(async_db_session, Driver, driver.id)).assigned_vehicle_ids == [vehicle.id]
    assert session_store.cache("drivers").get(driver.id).assigned_vehicle_ids == [vehicle.id]
    assert session_store.cache("vehicles").get(vehicle.id).driver_id == driver.id


async def test_reassignment_takes_vehicle_off_previous_driver(vehicles, drivers, async_db_session, session_store):
    vehicle = (await vehicles.add({"registration_number": "KA01AB1234"})).data
    first = await add_driver(drivers, name="Ravi")
    second = await add_driver(drivers, name="Suresh", license_number="KA0520190042", phone="9988776655")

    await vehicles.assign_driver_to_vehicle(vehicle.id, first.id)
    result = await vehicles.assign_driver_to_vehicle(vehicle.id, second.id)

    assert result.success
    assert {d.id for d in result.data["drivers"]} == {first.id, second.id}
    assert (await stored(async_db_session, Driver, first.id)).assigned_vehicle_ids == []
    assert (await stored(async_db_session, Driver, second.id)).assigned_vehicle_ids == [vehicle.id]
    assert (await stored(async_db_session, Vehicle, vehicle.id)).driver_id == second.id
    assert session_store.cache("drivers").get(first.id).assigned_vehicle_ids == []


async def test_assigning_twice_does_not_duplicate(vehicles, drivers, async_db_session):
    vehicle = (await vehicles.add({"registration_number": "KA01AB1234"})).data
    driver = await add_driver(drivers)

    await vehicles.assign_driver_to_vehicle(vehicle.id, driver.id)
    await vehicles.assign_driver_to_vehicle(vehicle.id, driver.id)

    assert (await stored(async_db_session, Driver, driver.id)).assigned_vehicle_ids == [vehicle.id]


async def test_one_driver_can_drive_several_vehicles(vehicles, drivers, async_db_session):
    first = (await vehicles.add({"registration_number": "KA01AB1234"})).data
    second = (await vehicles.add({"registration_number": "KA05MN4321"})).data
    driver = await add_driver(drivers)

    await vehicles.assign_driver_to_vehicle(first.id, driver.id)
    await vehicles.assign_driver_to_vehicle(second.id, driver.id)

    assert (await stored(async_db_session, Driver, driver.id)).assigned_vehicle_ids == [first.id, second.id]


async def test_unassign_clears_both_sides(vehicles, drivers, async_db_session):
    vehicle = (await vehicles.add({"registration_number": "KA01AB1234"})).data
    driver = await add_driver(drivers)
    await vehicles.assign_driver_to_vehicle(vehicle.id, driver.id)

    result = await vehicles.unassign_driver_from_vehicle(vehicle.id, driver.id)

    assert result.success
    assert (await stored(async_db_session, Vehicle, vehicle.id)).driver_id is None
    assert (await stored(async_db_session, Driver, driver.id)).assigned_vehicle_ids == []


async def test_unassign_of_unlinked_driver_is_rejected(vehicles, drivers):
    vehicle = (await vehicles.add({"registration_number": "KA01AB1234"})).data
    driver = await add_driver(drivers)

    result = await vehicles.unassign_driver_from_vehicle(vehicle.id, driver.id)

    assert result.error_type == "DriverNotAssignedError"
    assert result.status_code == 409


async def test_assign_unknown_driver_leaves_vehicle_unchanged(vehicles, async_db_session):
    vehicle = (await vehicles.add({"registration_number": "KA01AB1234"})).data

    result = await vehicles.assign_driver_to_vehicle(vehicle.id, "missing-driver")

    assert result.error_type == "DriverNotFoundError"
    assert (await stored(async_db_session, Vehicle, vehicle.id)).driver_id is None


async def test_removing_vehicle_strips_it_from_driver(vehicles, drivers, async_db_session, session_store):
    vehicle = (await vehicles.add({"registration_number": "KA01AB1234"})).data
    driver = await add_driver(drivers)
    await vehicles.assign_driver_to_vehicle(vehicle.id, driver.id)

    result = await vehicles.remove(vehicle.id)

    assert result.success
    assert result.data == {"id": vehicle.id}
    assert (await stored(async_db_session, Driver, driver.id)).assigned_vehicle_ids == []
    assert session_store.cache("drivers").get(driver.id).assigned_vehicle_ids == []
    assert session_store.cache("vehicles").get(vehicle.id) is None


async def test_removing_driver_clears_vehicle_link(vehicles, drivers, async_db_session, session_store):
    vehicle = (await vehicles.add({"registration_number": "KA01AB1234"})).data
    driver = await add_driver(drivers)
    await vehicles.assign_driver_to_vehicle(vehicle.id, driver.id)

    result = await drivers.remove(driver.id)

    assert result.success
    assert (await stored(async_db_session, Vehicle, vehicle.id)).driver_id is None
    assert session_store.cache("vehicles").get(vehicle.id).driver_id is None
    assert session_store.cache("drivers").get(driver.id) is None


async def test_update_driver_rejects_blank_name(drivers):
    driver = await add_driver(drivers)
    result = await drivers.update(driver.id, {"name": "   "})
    assert result.error_type == "FleetValidationError"
    assert result.field == "name"


async def test_drivers_listed_oldest_first(drivers):
    first = await add_driver(drivers, name="A")
    second = await add_driver(drivers, name="B", license_number="KA0520190042")

    listed = await drivers.list(refresh=True)

    assert [d.id for d in listed.data] == [first.id, second.id]
