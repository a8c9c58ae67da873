"""
Notification templates.

Pure functions that turn domain events (a comment mention, an overdue task,
a task update) into the ``(type, message, data)`` triple handed to
NotificationService.create_and_deliver. Nothing here touches the database.

The overdue templates are used by the overdue scanner. The mention template
is used by MentionService. The task lifecycle templates (created, assigned,
updated) are meant to be called by the task service of the host
application when a task changes.
"""

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional, Sequence

from backend.src.config.task_config import TASK_RESOURCE_PATH
from backend.src.models.notification import NotificationType
from backend.src.utils.logging_config import get_logger


logger = get_logger("services")

DEFAULT_PREVIEW_LENGTH = 100
FALLBACK_PREVIEW = "New comment"
DEFAULT_PUSH_TITLE = "What's Next Please"
ELLIPSIS = "..."

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class Actor:
    """Who caused a notification (shown next to it in the feed)."""

    name: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(
            name=user.full_name or user.username or user.email,
            username=user.username,
            avatar_url=user.avatar_url,
        )


@dataclass(frozen=True)
class NotificationContent:
    """Rendered notification ready to be created."""

    type: NotificationType
    message: str
    data: Dict[str, Any] = field(default_factory=dict)


def task_url(task_id: str) -> str:
    return f"{TASK_RESOURCE_PATH}/{task_id}"


# ============================================================================
# Comment mentions
# ============================================================================


class _TextExtractor(HTMLParser):
    """Collects text nodes; every tag boundary becomes a space."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.parts: List[str] = []

    def handle_starttag(self, tag, attrs):
        self.parts.append(" ")

    def handle_endtag(self, tag):
        self.parts.append(" ")

    def handle_data(self, data):
        self.parts.append(data)


def strip_markup(html_content: str) -> str:
    """Plain text of ``html_content`` with whitespace collapsed."""
    extractor = _TextExtractor()
    extractor.feed(html_content)
    extractor.close()
    return _WHITESPACE.sub(" ", "".join(extractor.parts)).strip()


def create_comment_preview(
    html_content: str,
    max_length: int = DEFAULT_PREVIEW_LENGTH,
) -> str:
    """
    Build a short plain-text preview of a rich-text comment.

    Markup is stripped and whitespace collapsed. Text longer than
    ``max_length`` is cut, backing up to the previous word boundary when one
    exists in the second half of the window, and ``...`` is appended so the
    result never exceeds ``max_length``. A window too small for the
    ellipsis gets a bare cut.

    Never raises: on any failure the generic ``"New comment"`` is returned.
    """
    try:
        text = strip_markup(html_content)
        if len(text) <= max_length:
            return text

        limit = max_length - len(ELLIPSIS)
        if limit <= 0:
            return text[:max(max_length, 0)]
        cut = text[:limit]
        if text[limit] != " ":
            boundary = cut.rfind(" ")
            if boundary >= limit // 2:
                cut = cut[:boundary]
        return cut.rstrip() + ELLIPSIS
    except Exception as e:
        logger.warning(
            "Failed to create comment preview",
            extra={"error": str(e)}
        )
        return FALLBACK_PREVIEW


def create_mention_notification(
    task_id: str,
    task_title: str,
    comment_id: str,
    comment_html: str,
    actor: Actor,
    max_length: int = DEFAULT_PREVIEW_LENGTH,
    push_title: str = DEFAULT_PUSH_TITLE,
) -> NotificationContent:
    """
    Render a comment mention notification.

    Args:
        task_id: GUID of the task the comment belongs to
        task_title: Task title used in message and push body
        comment_id: Comment identifier, used as the deep-link anchor
        comment_html: Rich-text comment body
        actor: Author of the comment
        max_length: Preview length
        push_title: Title of the push message

    Returns:
        NotificationContent of type COMMENT_MENTION
    """
    preview = create_comment_preview(comment_html, max_length)
    message = f'{actor.name} mentioned you in a comment on "{task_title}"'

    data = {
        "task_id": task_id,
        "comment_id": comment_id,
        "details": {
            "task_title": task_title,
            "comment_preview": preview,
            "mentioner_name": actor.name,
            "mentioner_username": actor.username,
        },
        "name": actor.name,
        "username": actor.username,
        "avatar_url": actor.avatar_url,
        "url": f"{task_url(task_id)}#comment-{comment_id}",
        "push_notification": {
            "title": push_title,
            "body": f'{actor.name} mentioned you in "{task_title}": {preview}',
        },
    }
    return NotificationContent(NotificationType.COMMENT_MENTION, message, data)


# ============================================================================
# Overdue tasks
# ============================================================================


def _overdue_data(task) -> Dict[str, Any]:
    return {
        "task_id": task.guid,
        "status": "overdue",
        "priority": task.priority,
        "url": task_url(task.guid),
    }


def create_overdue_assignee_notification(task) -> NotificationContent:
    return NotificationContent(
        NotificationType.TASK_MODIFIED,
        f'Task "{task.title}" is now overdue',
        _overdue_data(task),
    )


def create_overdue_supervisor_notification(task) -> NotificationContent:
    assignee = task.assigned_to
    assignee_name = (assignee.first_name if assignee is not None else None) or "someone"
    return NotificationContent(
        NotificationType.TASK_MODIFIED,
        f'Task "{task.title}" assigned to {assignee_name} is now overdue',
        _overdue_data(task),
    )


# ============================================================================
# Task lifecycle
# ============================================================================


@dataclass(frozen=True)
class TaskChange:
    """One changed task field, with optional display values."""

    field: str
    old_value: Any
    new_value: Any
    display_old_value: Optional[str] = None
    display_new_value: Optional[str] = None

    @property
    def old_display(self) -> Any:
        return self.display_old_value or self.old_value

    @property
    def new_display(self) -> Any:
        return self.display_new_value or self.new_value


CRITICAL_FIELDS = ("status", "priority", "assigned_to")

_FIELD_LABELS = {
    "time_for_task": "time estimate",
    "task_category": "category",
    "due_date": "due date",
    "assigned_to": "assignee",
    "over_time": "overtime",
}


def humanize_enum(value: Optional[str]) -> Optional[str]:
    """``IN_PROGRESS`` -> ``In Progress``."""
    if not value:
        return value
    return " ".join(word.capitalize() for word in str(value).split("_"))


def describe_change(change: TaskChange) -> str:
    old, new = change.old_display, change.new_display
    if change.field == "title":
        return f'Title: "{old}" → "{new}"'
    if change.field == "associated_client":
        return f"Client: {new}"
    if change.field in ("description", "skills"):
        return f"{change.field.capitalize()} updated"

    labels = {
        "status": "Status",
        "priority": "Priority",
        "task_category": "Category",
        "assigned_to": "Assignee",
        "due_date": "Due date",
        "time_for_task": "Time estimate",
        "over_time": "Overtime",
    }
    label = labels.get(change.field)
    if label is None:
        return f"{change.field} updated"
    return f"{label}: {old} → {new}"


def summarize_changes(changes: Sequence[TaskChange]) -> str:
    """
    One-line summary of a batch of task changes.

    Critical changes (status, priority, assignee) are spelled out; other
    changes are listed by name unless there is only one of them.
    """
    if len(changes) == 1:
        return describe_change(changes[0])

    critical = [c for c in changes if c.field in CRITICAL_FIELDS]
    other = [c for c in changes if c.field not in CRITICAL_FIELDS]

    parts = []
    if critical:
        parts.append(", ".join(describe_change(c) for c in critical))
    if len(other) == 1:
        parts.append(describe_change(other[0]))
    elif other:
        names = [_FIELD_LABELS.get(c.field, c.field) for c in other]
        parts.append(f"{', '.join(names)} updated")

    return " • ".join(parts)


def _actor_data(actor: Actor) -> Dict[str, Any]:
    return {
        "name": actor.name,
        "username": actor.username,
        "avatar_url": actor.avatar_url,
    }


def create_task_update_notification(
    task_id: str,
    task_title: str,
    changes: Sequence[TaskChange],
    actor: Actor,
) -> NotificationContent:
    """
    Render a batched task update notification.

    Raises:
        ValueError: If no changes are given
    """
    if not changes:
        raise ValueError("No changes provided for notification")

    summary = summarize_changes(changes)
    data = {
        "task_id": task_id,
        "details": {
            "changes_count": len(changes),
            "changes_summary": summary,
            "changes": [
                {"field": c.field, "old_value": c.old_display, "new_value": c.new_display}
                for c in changes
            ],
        },
        "url": task_url(task_id),
        **_actor_data(actor),
    }
    return NotificationContent(
        NotificationType.TASK_MODIFIED,
        f'Task "{task_title}" was updated by {actor.name}: {summary}',
        data,
    )


def _task_details(status: str, priority: Optional[str], category: Optional[str]) -> Dict[str, Any]:
    return {
        "status": humanize_enum(status),
        "priority": humanize_enum(priority),
        "category": category,
    }


def create_task_created_notification(
    task_id: str,
    task_title: str,
    status: str,
    priority: Optional[str],
    category: Optional[str],
    actor: Actor,
) -> NotificationContent:
    data = {
        "task_id": task_id,
        "details": _task_details(status, priority, category),
        "url": task_url(task_id),
        **_actor_data(actor),
    }
    return NotificationContent(
        NotificationType.TASK_CREATED,
        f'New task "{task_title}" has been created by {actor.name}',
        data,
    )


def create_task_assigned_notification(
    task_id: str,
    task_title: str,
    status: str,
    priority: Optional[str],
    category: Optional[str],
    actor: Actor,
) -> NotificationContent:
    data = {
        "task_id": task_id,
        "details": _task_details(status, priority, category),
        "url": task_url(task_id),
        **_actor_data(actor),
    }
    return NotificationContent(
        NotificationType.TASK_ASSIGNED,
        f'Task "{task_title}" has been assigned to you by {actor.name}',
        data,
    )
