"""
Comment mention fan-out.

Finds the users and clients mentioned in a rich-text comment and sends each
of them a comment-mention notification. Every recipient gets an independent
create_and_deliver call; a failure for one does not affect the others.

Mentions are encoded by the editor as
``<span data-type="mention" data-id="usr_...">@name</span>``.

The comment service of the host application calls notify_mentions after a
comment is saved. Build the service with MentionService.from_settings.
"""

import asyncio
from html.parser import HTMLParser
from typing import List, Optional

from sqlalchemy.orm import Session

from backend.src.config.settings import AppSettings
from backend.src.models.client import Client
from backend.src.models.notification import Recipient
from backend.src.models.task import Task
from backend.src.models.user import User
from backend.src.services.notification_service import DeliveryReport, NotificationService
from backend.src.services.notification_templates import (
    Actor,
    DEFAULT_PREVIEW_LENGTH,
    DEFAULT_PUSH_TITLE,
    create_mention_notification,
)
from backend.src.utils.logging_config import get_logger
from backend.src.utils.realtime import RealtimeHub


logger = get_logger("services")


class _MentionCollector(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.ids: List[str] = []

    def handle_starttag(self, tag, attrs):
        if tag != "span":
            return
        attributes = dict(attrs)
        mention_id = attributes.get("data-id")
        if attributes.get("data-type") == "mention" and mention_id and mention_id not in self.ids:
            self.ids.append(mention_id)


def extract_mention_ids(html_content: str) -> List[str]:
    """
    Ids of mentioned users/clients, de-duplicated, in document order.

    Returns an empty list for content that cannot be parsed.
    """
    try:
        collector = _MentionCollector()
        collector.feed(html_content)
        collector.close()
        return collector.ids
    except Exception as e:
        logger.warning("Failed to extract mentions", extra={"error": str(e)})
        return []


class MentionService:
    """Resolves mentions in a comment and notifies each mentioned recipient."""

    def __init__(
        self,
        notification_service: NotificationService,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
        push_title: str = DEFAULT_PUSH_TITLE,
    ):
        self.notification_service = notification_service
        self.db = notification_service.db
        self.preview_length = preview_length
        self.push_title = push_title

    @classmethod
    def from_settings(
        cls,
        db: Session,
        settings: AppSettings,
        realtime_hub: Optional[RealtimeHub] = None,
    ) -> "MentionService":
        return cls(
            NotificationService.from_settings(db, settings, realtime_hub),
            preview_length=settings.mention_preview_length,
            push_title=settings.push_title,
        )

    def resolve_recipients(self, mention_ids: List[str]) -> List[Recipient]:
        """Map mention ids (usr_/cli_ GUIDs) to existing recipients, keeping order."""
        recipients: List[Recipient] = []
        for mention_id in mention_ids:
            user_uuid = User.try_parse_guid(mention_id)
            if user_uuid is not None:
                row = self.db.query(User.id).filter(User.uuid == user_uuid).first()
                if row is not None:
                    recipients.append(Recipient.user(row.id))
                    continue
            client_uuid = Client.try_parse_guid(mention_id)
            if client_uuid is not None:
                row = self.db.query(Client.id).filter(Client.uuid == client_uuid).first()
                if row is not None:
                    recipients.append(Recipient.client(row.id))
                    continue
            logger.warning("Ignoring unknown mention", extra={"mention_id": mention_id})
        return recipients

    async def notify_mentions(
        self,
        task: Task,
        comment_id: str,
        comment_html: str,
        actor: Actor,
        author: Optional[Recipient] = None,
    ) -> List[DeliveryReport]:
        """
        Notify everyone mentioned in a comment.

        Args:
            task: Task the comment was posted on
            comment_id: Comment identifier (deep-link anchor)
            comment_html: Rich-text comment body
            actor: Comment author as shown in the notification
            author: Author as a recipient; never notified about their own mention

        Returns:
            Delivery reports of the notifications that were created
        """
        recipients = [
            recipient
            for recipient in self.resolve_recipients(extract_mention_ids(comment_html))
            if recipient != author
        ]
        if not recipients:
            return []

        content = create_mention_notification(
            task_id=task.guid,
            task_title=task.title,
            comment_id=comment_id,
            comment_html=comment_html,
            actor=actor,
            max_length=self.preview_length,
            push_title=self.push_title,
        )

        outcomes = await asyncio.gather(
            *(
                self.notification_service.create_and_deliver(
                    content.type, content.message, recipient, content.data
                )
                for recipient in recipients
            ),
            return_exceptions=True,
        )

        reports = []
        for recipient, outcome in zip(recipients, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    f"Failed to notify mentioned recipient: {outcome}",
                    extra={"recipient": recipient.key, "task_guid": task.guid},
                )
            else:
                reports.append(outcome)

        logger.info(
            "Mention notifications sent",
            extra={
                "task_guid": task.guid,
                "mentioned": len(recipients),
                "notified": len(reports),
            },
        )
        return reports
