"""User model definitions."""

from sqlalchemy import Column, String
from telecounsel.database import Base, generate_id


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String, unique=True, index=True)
    full_name = Column(String)
    role = Column(String)  # patient/psychologist/admin
