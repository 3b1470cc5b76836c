"""Event ORM model: the event source read by the filter pipeline."""
from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, JSON
from sqlalchemy.sql import func

from fomo.database import Base


class EventRecord(Base):
    __tablename__ = "events"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    venue = Column(JSON, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    organizer_id = Column(String(64), nullable=True, index=True)
    organizer_name = Column(String(150), nullable=True)
    is_public = Column(Boolean, nullable=True)
    is_online = Column(Boolean, nullable=True)
    price = Column(String(50), nullable=True)
    ticket_url = Column(String(500), nullable=True)
    cover_url = Column(String(500), nullable=True)
    capacity = Column(Integer, nullable=True)
    stats = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
