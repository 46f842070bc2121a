import uuid
from sqlalchemy import Column, String, Date, DateTime, ForeignKey, JSON
from core.db import Base

class Driver(Base):
    __tablename__ = "drivers"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    license_number = Column(String(20), nullable=False)
    phone = Column(String(10), nullable=False)
    date_of_birth = Column(Date, nullable=True)
    # Mirror of vehicles.driver_id; always assign a new list so the JSON column is flagged dirty
    assigned_vehicle_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)
