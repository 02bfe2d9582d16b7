"""Schedule model definitions."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, UniqueConstraint
from calmme.database import Base


class Schedule(Base):
    """Weekly recurring time slots of one psychologist for one weekday."""
    __tablename__ = "schedules"
    __table_args__ = (
        UniqueConstraint("psychologist_id", "day_of_week", name="uq_schedules_psychologist_day"),
    )

    id = Column(Integer, primary_key=True)
    psychologist_id = Column(String, nullable=False, index=True)
    day_of_week = Column(String, nullable=False)
    time_slots = Column(JSON, nullable=False, default=list)
    is_recurring = Column(Boolean, default=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)
