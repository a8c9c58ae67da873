"""
Service layer for business logic.

This module exports all service classes for use in API endpoints.
"""

from backend.src.services.exceptions import (
    ServiceError,
    NotFoundError,
    ConflictError,
    InvalidStatusTransitionError,
    ValidationError,
    PushDeliveryError,
    PushGoneError,
)
from backend.src.services.notification_service import (
    DeliveryReport,
    NotificationService,
)
from backend.src.services.read_state_service import ReadState, ReadStateService
from backend.src.services.push_subscription_service import PushSubscriptionService
from backend.src.services.mention_service import MentionService
# Overdue task scan
from backend.src.services.overdue_scanner import OverdueTaskScanner
from backend.src.services.overdue_scheduler import OverdueTaskScheduler

__all__ = [
    "ServiceError",
    "NotFoundError",
    "ConflictError",
    "InvalidStatusTransitionError",
    "ValidationError",
    "PushDeliveryError",
    "PushGoneError",
    "DeliveryReport",
    "NotificationService",
    "ReadState",
    "ReadStateService",
    "PushSubscriptionService",
    "MentionService",
    # Overdue task scan
    "OverdueTaskScanner",
    "OverdueTaskScheduler",
]
