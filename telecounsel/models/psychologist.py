"""Psychologist model definitions."""

from sqlalchemy import Column, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from telecounsel.database import Base
from telecounsel.models.user import User


class Psychologist(Base):
    """Psychologist profile; shares its id with the owning user."""
    __tablename__ = "psychologists"

    id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    price_chat = Column(Numeric(12, 2), nullable=True)
    price_video = Column(Numeric(12, 2), nullable=True)

    user = relationship(User)
