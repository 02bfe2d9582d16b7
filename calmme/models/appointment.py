"""Appointment model definitions."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, String
from calmme.database import Base


class Appointment(Base):
    """Represents a booked consultation."""
    __tablename__ = "appointments"

    id = Column(String, primary_key=True, default=lambda: uuid4().hex)
    user_id = Column(String, nullable=False)
    psychologist_id = Column(String, nullable=False)
    appointment_date = Column(String, nullable=False)  # YYYY-MM-DD
    appointment_time = Column(String, nullable=False)  # HH:MM-HH:MM
    status = Column(String, default="scheduled")
    payment_status = Column(String, default="pending")
    payment_method = Column(String, default="")
    consultation_method = Column(String)
    chat_room_id = Column(String)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)
