"""Consultation model definitions."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from telecounsel.database import Base, generate_id, utcnow
from telecounsel.models.payment import Payment
from telecounsel.models.psychologist import Psychologist
from telecounsel.models.review import Review
from telecounsel.models.stream_channel import StreamChannel
from telecounsel.models.user import User


class ConsultationChannel(str, Enum):
    CHAT = "chat"
    VIDEO = "video"


class ConsultationStatus(str, Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    REFUNDED = "refunded"


class Consultation(Base):
    """Represents one scheduled session between a patient and a psychologist."""
    __tablename__ = "consultations"

    id = Column(String(36), primary_key=True, default=generate_id)
    patient_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    psychologist_id = Column(String(36), ForeignKey("psychologists.id"), nullable=False)
    channel = Column(String, nullable=False)
    status = Column(String, nullable=False, default=ConsultationStatus.SCHEDULED.value)
    scheduled_start_at = Column(DateTime, nullable=False)
    scheduled_end_at = Column(DateTime, nullable=False)
    price = Column(Numeric(12, 2), nullable=True)
    patient_notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    patient = relationship(User, foreign_keys=[patient_id])
    psychologist = relationship(Psychologist, foreign_keys=[psychologist_id])
    payments = relationship(Payment, order_by=Payment.created_at)
    review = relationship(Review, uselist=False)
    stream_channel = relationship(StreamChannel, uselist=False)
