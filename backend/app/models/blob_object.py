"""Database-backed blob storage (feed.json and friends). One row per key, full overwrite only."""
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from app.db.base import Base


class BlobObject(Base):
    __tablename__ = "blob_objects"

    key = Column(String(255), primary_key=True)
    content = Column(Text, nullable=False)
    content_type = Column(String(128), nullable=False, default="application/json")
    cache_control = Column(String(128), nullable=True)
    # Bumped on every save; conditional writes compare against it
    generation = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
