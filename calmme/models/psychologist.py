"""Psychologist model definitions."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, String
from calmme.database import Base


class Psychologist(Base):
    """Public profile of a psychologist offering consultations."""
    __tablename__ = "psychologists"

    id = Column(String, primary_key=True, default=lambda: uuid4().hex)
    user_id = Column(String, index=True)
    name = Column(String, nullable=False)
    specialization = Column(JSON, default=list)
    description = Column(String, default="")
    experience = Column(String, default="")
    education = Column(String, default="")
    license = Column(String, default="")
    is_available = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)
