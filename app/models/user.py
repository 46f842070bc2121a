import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, Boolean, DateTime, func

from core.clock import utc_now
from core.db import Base
from models.enums import UserRole, Language


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    phone = Column(String(10), unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    company_name = Column(String, nullable=True)
    pan_number = Column(String(10), nullable=True)
    is_onboarded = Column(Boolean, nullable=False, default=False)
    role = Column(String, nullable=False, default=UserRole.OWNER.value)

    subscription_active = Column(Boolean, nullable=False, default=False)
    subscription_tier = Column(String, nullable=True)
    subscription_expires_at = Column(DateTime, nullable=True)
    trial_used = Column(Boolean, nullable=False, default=False)

    preferred_language = Column(String(2), nullable=False, default=Language.ENGLISH.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def has_active_subscription(self, now: Optional[datetime] = None) -> bool:
        # The stored flag is never trusted past its expiry
        if not self.subscription_active or self.subscription_expires_at is None:
            return False
        return (now or utc_now()) < self.subscription_expires_at
