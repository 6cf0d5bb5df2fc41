"""Cached upstream OAuth tokens (KIS issues one per day; reissuing too often is throttled)."""
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from app.db.base import Base


class ProviderToken(Base):
    __tablename__ = "provider_tokens"

    provider = Column(String(32), primary_key=True)  # e.g. "kis"
    token = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
