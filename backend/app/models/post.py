"""Investment report post: the authoritative record behind every feed.json entry."""
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from app.db.base import Base


class Post(Base):
    __tablename__ = "posts"

    id = Column(String(64), primary_key=True)
    title = Column(String(256), nullable=False, default="")
    author_id = Column(String(128), nullable=False, index=True)
    author_name = Column(String(128), nullable=True)
    stock_name = Column(String(256), nullable=True)
    ticker = Column(String(32), nullable=False, index=True)  # stored as entered; feed keys use upper()
    exchange = Column(String(16), nullable=True)  # "KRX" | "NAS" | "NYS" | "CRYPTO" | ...
    opinion = Column(String(8), nullable=False, default="hold")  # buy | sell | hold
    position_type = Column(String(8), nullable=False, default="long")  # long | short
    category = Column(String(64), nullable=True)

    initial_price = Column(Float, nullable=False, default=0.0)
    current_price = Column(Float, nullable=False, default=0.0)
    avg_price = Column(Float, nullable=True)  # weighted basis once averaged down
    return_rate = Column(Float, nullable=False, default=0.0)
    target_price = Column(Float, nullable=True)

    # JSON array of {price, date, timestamp, quantity?}; entry_count is the compare-and-swap guard
    entries_json = Column(Text, nullable=True)
    entry_count = Column(Integer, nullable=False, default=0)

    is_closed = Column(Boolean, nullable=False, default=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closed_return_rate = Column(Float, nullable=True)
    closed_price = Column(Float, nullable=True)

    views = Column(Integer, nullable=False, default=0)
    likes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
