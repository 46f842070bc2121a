import uuid
from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey
from core.db import Base
from models.enums import TripStatus, TripType

class Trip(Base):
    __tablename__ = "trips"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    type = Column(String, nullable=False, default=TripType.LOCAL.value)
    status = Column(String, index=True, nullable=False, default=TripStatus.SCHEDULED.value)

    pickup_address = Column(String, nullable=False)
    pickup_landmark = Column(String, nullable=True)
    destination_address = Column(String, nullable=False)
    destination_landmark = Column(String, nullable=True)
    scheduled_start_time = Column(DateTime, index=True, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Weak references with snapshots, so trip history outlives a removed vehicle or driver
    vehicle_id = Column(String(36), nullable=True)
    vehicle_number = Column(String(20), nullable=True)
    driver_id = Column(String(36), nullable=True)
    driver_name = Column(String, nullable=True)

    passenger_name = Column(String, nullable=False)
    passenger_phone = Column(String(10), nullable=False)
    passenger_email = Column(String, nullable=True)
    base_fare = Column(Numeric(12, 2), nullable=False)
    corporate_account_id = Column(String, nullable=True)
    notes = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)
