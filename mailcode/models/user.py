"""User model for authentication and authorization."""

from sqlalchemy import Column, String, DateTime, Integer, JSON, Index
from sqlalchemy.sql import func
from mailcode.database import Base


class User(Base):
    """User model for system users."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)  # Canonical (normalized) form only
    roles = Column(JSON, nullable=False, default=list)

    # Registration-time attributes (see settings.REGISTRATION_FIELDS)
    name = Column(String(255), nullable=True)
    handle = Column(String(100), nullable=True)

    # Audit
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_users_email", "email"),
    )
