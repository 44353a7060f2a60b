"""Pending login code model: one live record per email address."""

from sqlalchemy import Column, String, DateTime, Boolean, JSON
from sqlalchemy.sql import func
from mailcode.database import Base


class PendingLoginCode(Base):
    """Login code awaiting verification. Upserts replace, never append."""

    __tablename__ = "login_codes"

    email = Column(String(255), primary_key=True)
    code = Column(String(16), nullable=False)
    expires_at = Column(DateTime, nullable=False)  # Naive UTC
    allow_registration = Column(Boolean, nullable=False, default=False)
    extra_fields = Column(JSON, nullable=False, default=list)  # Ordered [key, value] pairs
    consumed_at = Column(DateTime, nullable=True)  # Only stamped when SINGLE_USE_CODES is on

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
