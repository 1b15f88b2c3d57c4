"""Availability model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Time
from telecounsel.database import Base, generate_id, utcnow


class Availability(Base):
    """Recurring weekly open slot for one psychologist (weekday 0 is Sunday)."""
    __tablename__ = "availabilities"

    id = Column(String(36), primary_key=True, default=generate_id)
    psychologist_id = Column(String(36), ForeignKey("psychologists.id"), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
