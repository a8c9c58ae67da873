"""
Notifications API endpoints.

Provides endpoints for:
- Creating a notification and delivering it (push + real-time)
- A recipient's feed, unread count and read-state changes
- Push subscription management (subscribe, unsubscribe)
- The real-time Server-Sent Events stream
- VAPID public key retrieval
- Triggering an overdue task scan

Recipients are addressed by GUID: ``usr_xxx`` for staff users and
``cli_xxx`` for clients. ``role=client`` on a recipient route selects the
client id space explicitly.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from backend.src.config.settings import get_settings
from backend.src.db.database import get_db
from backend.src.models.client import Client
from backend.src.models.notification import NotificationStatus, Recipient
from backend.src.models.user import User, UserRole
from backend.src.schemas.notifications import (
    AckResponse,
    MarkAllReadResponse,
    NotificationCreate,
    NotificationListResponse,
    NotificationResponse,
    OverdueCheckResponse,
    PushSubscriptionCreate,
    PushSubscriptionRemove,
    PushSubscriptionResponse,
    ReadStateResponse,
    UnreadCountResponse,
    VapidKeyResponse,
)
from backend.src.services.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from backend.src.services.notification_service import NotificationService
from backend.src.services.push_subscription_service import PushSubscriptionService
from backend.src.services.read_state_service import ReadStateService
from backend.src.utils.logging_config import get_logger
from backend.src.utils.realtime import RealtimeHub


logger = get_logger("api")

# Rate limiter for subscription endpoints
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=get_settings().rate_limit_storage_uri,
)

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
)


# ============================================================================
# Dependencies
# ============================================================================


def get_realtime_hub(request: Request) -> Optional[RealtimeHub]:
    return getattr(request.app.state, "realtime_hub", None)


def get_notification_service(
    request: Request,
    db: Session = Depends(get_db),
) -> NotificationService:
    """Create NotificationService with database session, VAPID config and realtime hub."""
    return NotificationService.from_settings(db, get_settings(), get_realtime_hub(request))


def get_read_state_service(db: Session = Depends(get_db)) -> ReadStateService:
    return ReadStateService(db=db)


def get_push_subscription_service(
    db: Session = Depends(get_db),
) -> PushSubscriptionService:
    """Create PushSubscriptionService instance with database session."""
    return PushSubscriptionService(db=db)


def resolve_recipient(
    db: Session,
    recipient_guid: str,
    role: Optional[UserRole] = None,
) -> Recipient:
    """
    Map a recipient GUID to a Recipient.

    ``role=client`` forces the client id space; any other role forces the
    user id space; without a role the GUID prefix decides.

    Raises:
        HTTPException: 400 for a GUID of the wrong kind, 404 if unknown
    """
    if role is None:
        model = Client if recipient_guid.lower().startswith(f"{Client.GUID_PREFIX}_") else User
    else:
        model = Client if role is UserRole.CLIENT else User

    try:
        uuid_value = model.parse_guid(recipient_guid)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid recipient id: {err}",
        ) from err

    row = db.query(model.id).filter(model.uuid == uuid_value).first()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recipient not found",
        )
    if model is Client:
        return Recipient.client(row.id)
    return Recipient.user(row.id)


# ============================================================================
# VAPID Key Endpoint
# ============================================================================


@router.get(
    "/vapid-public-key",
    response_model=VapidKeyResponse,
    summary="Get VAPID public key",
)
async def get_vapid_key():
    """
    Returns the server's VAPID public key for creating push subscriptions.
    """
    settings = get_settings()
    if not settings.vapid_public_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Push notifications not configured",
        )
    return VapidKeyResponse(vapid_public_key=settings.vapid_public_key)


# ============================================================================
# Push Subscription Endpoints
# ============================================================================


@router.post(
    "/push-subscription",
    response_model=PushSubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a push subscription",
)
@limiter.limit("10/minute")
async def create_push_subscription(
    request: Request,
    body: PushSubscriptionCreate,
    db: Session = Depends(get_db),
    service: PushSubscriptionService = Depends(get_push_subscription_service),
):
    """
    Register a Web Push subscription for a user's or client's device.

    If a subscription with the same endpoint already exists, it is replaced.
    """
    recipient = resolve_recipient(db, body.recipient_guid)
    subscription = service.subscribe(
        recipient=recipient,
        endpoint=body.endpoint,
        p256dh_key=body.p256dh_key,
        auth_key=body.auth_key,
        device_name=body.device_name,
    )
    return PushSubscriptionResponse.model_validate(subscription)


@router.delete(
    "/push-subscription",
    response_model=AckResponse,
    summary="Remove a push subscription",
)
@limiter.limit("10/minute")
async def remove_push_subscription(
    request: Request,
    body: PushSubscriptionRemove,
    recipient_guid: str = Query(..., description="Owner of the subscription"),
    db: Session = Depends(get_db),
    service: PushSubscriptionService = Depends(get_push_subscription_service),
):
    """
    Remove the push subscription matching the given endpoint for its owner.
    """
    recipient = resolve_recipient(db, recipient_guid)
    try:
        service.unsubscribe(recipient, body.endpoint)
    except NotFoundError as err:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found",
        ) from err
    return AckResponse(message="Unsubscribed from push notifications")


# ============================================================================
# Overdue Scan Endpoint
# ============================================================================


@router.post(
    "/overdue-check",
    response_model=OverdueCheckResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run the overdue task scan now",
)
async def run_overdue_check(request: Request):
    """
    Start an overdue task scan in the background.

    Returns 409 while a scan is already in progress.
    """
    scheduler = getattr(request.app.state, "overdue_scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Overdue scheduler not available",
        )
    if not scheduler.run_now():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An overdue task scan is already in progress",
        )
    logger.info("Overdue scan triggered via API")
    return OverdueCheckResponse(accepted=True, message="Overdue task scan started")


# ============================================================================
# Real-time Stream Endpoint
# ============================================================================


@router.get(
    "/stream/{recipient_guid}",
    summary="Real-time notification stream (Server-Sent Events)",
)
async def stream_notifications(
    recipient_guid: str,
    role: Optional[UserRole] = Query(default=None),
    db: Session = Depends(get_db),
    hub: Optional[RealtimeHub] = Depends(get_realtime_hub),
):
    """
    Open the recipient's live stream.

    The first event is ``connected``; each new notification follows as a
    ``notification`` event shaped like the create response. Opening a new
    stream for the same recipient closes the previous one.
    """
    if hub is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Real-time notifications not available",
        )
    recipient = resolve_recipient(db, recipient_guid, role)
    connection = hub.connect(recipient)
    return StreamingResponse(
        hub.stream(connection),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ============================================================================
# Notification Endpoints
# ============================================================================


@router.post(
    "",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create and deliver a notification",
)
async def create_notification(
    body: NotificationCreate,
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
):
    """
    Create a notification for one recipient and deliver it over push and
    the real-time stream. Delivery problems never fail the request.
    """
    recipient = resolve_recipient(db, body.recipient_guid)
    try:
        report = await service.create_and_deliver(
            body.type, body.message, recipient, body.data
        )
    except ValidationError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": err.message, "field": err.field},
        ) from err
    return NotificationResponse.from_notification(report.notification)


@router.get(
    "/{recipient_guid}",
    response_model=NotificationListResponse,
    summary="List a recipient's notifications",
)
async def list_notifications(
    recipient_guid: str,
    role: Optional[UserRole] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    status_filter: Optional[NotificationStatus] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
):
    """
    Returns the recipient's notifications, newest first, with the unread count.
    """
    recipient = resolve_recipient(db, recipient_guid, role)
    notifications, total = service.list_notifications(
        recipient, limit=limit, offset=offset, status=status_filter
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.from_notification(n) for n in notifications],
        total=total,
        unread_count=service.get_unread_count(recipient),
    )


@router.get(
    "/{recipient_guid}/unread-count",
    response_model=UnreadCountResponse,
    summary="Get unread notification count",
)
async def get_unread_count(
    recipient_guid: str,
    role: Optional[UserRole] = Query(default=None),
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
):
    """
    Returns the count of unread notifications for the notification bell badge.
    """
    recipient = resolve_recipient(db, recipient_guid, role)
    return UnreadCountResponse(unread_count=service.get_unread_count(recipient))


@router.patch(
    "/{recipient_guid}/readAll",
    response_model=MarkAllReadResponse,
    summary="Mark all notifications as read",
)
async def mark_all_notifications_read(
    recipient_guid: str,
    role: Optional[UserRole] = Query(default=None),
    db: Session = Depends(get_db),
    service: ReadStateService = Depends(get_read_state_service),
):
    """
    Mark all unread notifications of the recipient as read.

    Idempotent: calling when everything is already read returns 0.
    """
    recipient = resolve_recipient(db, recipient_guid, role)
    updated_count = service.mark_all_as_read(recipient)
    return MarkAllReadResponse(
        updated_count=updated_count,
        message=f"{updated_count} notifications marked as read",
    )


@router.patch(
    "/{guid}/read",
    response_model=ReadStateResponse,
    summary="Mark notification as read",
)
async def mark_notification_read(
    guid: str,
    service: ReadStateService = Depends(get_read_state_service),
):
    """
    Mark a single notification as read. Idempotent: marking an already-read
    notification returns it unchanged.
    """
    try:
        state = service.mark_as_read(guid)
    except NotFoundError as err:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        ) from err
    return ReadStateResponse(id=state.id, status=state.status)


@router.patch(
    "/{guid}/archive",
    response_model=ReadStateResponse,
    summary="Archive a read notification",
)
async def archive_notification(
    guid: str,
    service: ReadStateService = Depends(get_read_state_service),
):
    try:
        state = service.archive(guid)
    except NotFoundError as err:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        ) from err
    except ConflictError as err:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=err.message,
        ) from err
    return ReadStateResponse(id=state.id, status=state.status)
