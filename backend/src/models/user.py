"""
User model (task domain).

Users are owned by the task/user service; the notification subsystem only
reads them to resolve recipients (assignees, supervisors, mentioned users)
and actor metadata for notification payloads.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, Text, Enum

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin


class UserRole(enum.Enum):
    """
    Application roles.

    CLIENT is the role context used by client logins; client identities live
    in the ``clients`` table, not in ``users``.
    """
    SUPER_USER = "super_user"
    DISTRICT_MANAGER = "district_manager"
    TERRITORY_MANAGER = "territory_manager"
    ACCOUNT_EXECUTIVE = "account_executive"
    TASK_SUPERVISOR = "task_supervisor"
    TASK_AGENT = "task_agent"
    CLIENT = "client"


class User(Base, GuidMixin):
    """
    Staff user who can receive notifications.

    Attributes:
        first_name / last_name: Display names used in notification messages
        username: Handle shown in mention payloads
        avatar_url: Avatar shown next to notifications
        role: Application role (supervisors receive overdue alerts)
    """

    __tablename__ = "users"
    GUID_PREFIX = "usr"

    id = Column(Integer, primary_key=True, autoincrement=True)

    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    username = Column(String(100), nullable=True)
    avatar_url = Column(Text, nullable=True)

    role = Column(
        Enum(
            UserRole,
            name="user_role",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=UserRole.TASK_AGENT,
        nullable=False,
        index=True
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def full_name(self) -> Optional[str]:
        """Combined first and last name, or whichever part is set."""
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) if parts else None

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"
