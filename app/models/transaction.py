import uuid
from sqlalchemy import Column, String, Date, DateTime, Boolean, Numeric, ForeignKey
from core.db import Base

class FleetTransaction(Base):
    __tablename__ = "transactions"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)
    vehicle_id = Column(String(36), nullable=True)
    vehicle_number = Column(String(20), nullable=True)
    type = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String, nullable=False, default="")
    reference = Column(String, nullable=True)
    location = Column(String, nullable=True)
    category = Column(String, nullable=False)  # income | expense
    payment_method = Column(String, nullable=False, default="cash")
    is_manual = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False)
