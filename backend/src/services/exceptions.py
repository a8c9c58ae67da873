"""
Custom exceptions for service layer.

Provides specific exception types for business logic errors
that can be translated to appropriate HTTP responses.
"""

from typing import Any, Optional


class ServiceError(Exception):
    """Base exception for service layer errors."""
    pass


class NotFoundError(ServiceError):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class ConflictError(ServiceError):
    """Raised when an operation conflicts with existing state."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidStatusTransitionError(ConflictError):
    """Raised when a notification read-state change is not allowed."""

    def __init__(self, notification_guid: str, current: str, target: str):
        self.notification_guid = notification_guid
        self.current = current
        self.target = target
        super().__init__(
            f"Notification {notification_guid} cannot move from "
            f"'{current}' to '{target}'"
        )


class ValidationError(ServiceError):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)


class PushDeliveryError(ServiceError):
    """Push delivery failed for a non-terminal reason (logged, not retried)."""

    def __init__(self, endpoint: str, reason: str, status_code: Optional[int] = None):
        self.endpoint = endpoint
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Push delivery failed ({status_code}): {reason}")


class PushGoneError(PushDeliveryError):
    """Push service reported the subscription as gone (404/410)."""
    pass

