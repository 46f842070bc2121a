import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey
from core.db import Base

class AuthSession(Base):
    __tablename__ = "auth_sessions"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    created_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)  # set on logout; tokens naming a revoked session are rejected
