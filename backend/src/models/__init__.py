"""
SQLAlchemy models for the notification backend.

This module provides the declarative base class and imports all models
to ensure they are registered with SQLAlchemy's metadata.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()


# Import all models here so they are registered with Base.metadata
# (required for Alembic autogenerate and Base.metadata.create_all)

# Task domain, owned by the task/user CRUD service; mapped read-only here
from backend.src.models.user import User, UserRole
from backend.src.models.client import Client
from backend.src.models.task import Task, TaskStatus

# Notification subsystem
from backend.src.models.notification import (
    Notification,
    NotificationType,
    NotificationStatus,
    DeliveryStatus,
    Recipient,
    RecipientKind,
)
from backend.src.models.push_subscription import PushSubscription

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Client",
    "Task",
    "TaskStatus",
    "Notification",
    "NotificationType",
    "NotificationStatus",
    "DeliveryStatus",
    "Recipient",
    "RecipientKind",
    "PushSubscription",
]
