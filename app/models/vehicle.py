import uuid
from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Boolean, Numeric, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from core.db import Base
from models.enums import DocumentKind, DocumentStatus

class Vehicle(Base):
    __tablename__ = "vehicles"
    __table_args__ = (
        UniqueConstraint("owner_id", "registration_number", name="uq_vehicle_owner_registration"),
    )
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    registration_number = Column(String(20), nullable=False)
    model = Column(String, nullable=False, default="Not specified")
    prepaid_balance = Column(Numeric(12, 2), nullable=False, default=0)
    fastag_linked = Column(Boolean, nullable=False, default=False)
    driver_id = Column(String(36), nullable=True)  # weak reference, kept in sync by the assignment operations
    last_service_date = Column(Date, nullable=True)
    gps_linked = Column(Boolean, nullable=False, default=False)
    fine_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    documents = relationship(
        "VehicleDocument",
        back_populates="vehicle",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @staticmethod
    def blank_documents():
        """The four compliance slots every vehicle starts with."""
        return [
            VehicleDocument(kind=kind.value, status=DocumentStatus.MISSING.value)
            for kind in DocumentKind
        ]


class VehicleDocument(Base):
    __tablename__ = "vehicle_documents"
    __table_args__ = (
        UniqueConstraint("vehicle_id", "kind", name="uq_vehicle_document_kind"),
    )
    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String, nullable=False)  # pollution | registration | insurance | license
    status = Column(String, nullable=False, default=DocumentStatus.MISSING.value)  # uploaded | missing | expired
    expiry_date = Column(Date, nullable=True)

    vehicle = relationship("Vehicle", back_populates="documents")
