"""Review records attached to consultations."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from telecounsel.database import Base, generate_id, utcnow


class Review(Base):
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=generate_id)
    consultation_id = Column(String(36), ForeignKey("consultations.id"), nullable=False, unique=True)
    rating = Column(Integer)
    comment = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
