"""External chat/video channel references."""

from sqlalchemy import Column, DateTime, ForeignKey, String
from telecounsel.database import Base, generate_id, utcnow


class StreamChannel(Base):
    """Only the provider's channel identifier is stored; transport lives elsewhere."""
    __tablename__ = "stream_channels"

    id = Column(String(36), primary_key=True, default=generate_id)
    consultation_id = Column(String(36), ForeignKey("consultations.id"), nullable=False, unique=True)
    provider = Column(String)
    channel_ref = Column(String)
    created_at = Column(DateTime, default=utcnow)
