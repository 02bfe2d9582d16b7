"""User model definitions."""

from sqlalchemy import Column, String
from calmme.database import Base


class User(Base):
    """Represents an application user known to the auth provider."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    role = Column(String, default="user")  # user/psychologist
    subscription_status = Column(String, default="inactive")  # active/inactive
