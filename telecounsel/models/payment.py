"""Payment records attached to consultations."""

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from telecounsel.database import Base, generate_id, utcnow


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    consultation_id = Column(String(36), ForeignKey("consultations.id"), nullable=False, index=True)
    method = Column(String)
    amount = Column(Numeric(12, 2))
    status = Column(String, default="pending")  # pending/paid/failed
    external_id = Column(String, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
