"""
Client model (task domain).

Clients log in with their own identity and can receive notifications and
push messages just like staff users.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin


class Client(Base, GuidMixin):
    """Client organisation or person that owns tasks."""

    __tablename__ = "clients"
    GUID_PREFIX = "cli"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name='{self.name}')>"
