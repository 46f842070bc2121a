from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey
from core.db import Base

class PaymentOrder(Base):
    __tablename__ = "payment_orders"
    id = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    plan = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="created")
    created_at = Column(DateTime, nullable=False)
    paid_at = Column(DateTime, nullable=True)
