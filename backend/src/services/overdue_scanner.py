"""
Overdue task scanner.

One scan pass finds every task whose due date has passed and whose status
is not excluded, and notifies the assignee (if any) and every supervisor
through NotificationService.create_and_deliver. The scanner never changes
task status.

Candidates are processed in fixed-size pages ordered by task id. After each
page a ScanProgress event is emitted; the pass ends with a ScanSummary, or
with a ScanFailed event followed by the original exception.

A pass does not checkpoint: re-running a pass that failed part-way creates
duplicate notifications for the pages it had already processed.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from backend.src.config.task_config import (
    OVERDUE_CHECK_BATCH_SIZE,
    OVERDUE_EXCLUDED_STATUSES,
    OVERDUE_NOTIFY_ROLES,
)
from backend.src.models.notification import Recipient
from backend.src.models.task import Task, TaskStatus
from backend.src.models.user import UserRole
from backend.src.services.notification_service import NotificationService
from backend.src.services.notification_templates import (
    NotificationContent,
    create_overdue_assignee_notification,
    create_overdue_supervisor_notification,
)
from backend.src.services.task_directory import TaskDirectory
from backend.src.utils.logging_config import get_logger


logger = get_logger("scheduler")


# ============================================================================
# Scan events
# ============================================================================


@dataclass(frozen=True)
class ScanEvent:
    scan_id: str

    terminal = False

    def to_message(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class ScanProgress(ScanEvent):
    """Cumulative counters after one page."""

    processed: int
    total: int
    notifications_created: int

    def to_message(self) -> Dict[str, Any]:
        return {
            "progress": f"{self.processed}/{self.total}",
            "tasksProcessed": self.processed,
            "notificationsCreated": self.notifications_created,
        }


@dataclass(frozen=True)
class ScanSummary(ScanEvent):
    """Final counters of a completed pass."""

    tasks_processed: int
    notifications_created: int
    total: int
    pages: int
    started_at: datetime
    finished_at: datetime

    terminal = True

    def to_message(self) -> Dict[str, Any]:
        return {
            "tasksProcessed": self.tasks_processed,
            "notificationsCreated": self.notifications_created,
            "total": self.total,
        }


@dataclass(frozen=True)
class ScanFailed(ScanEvent):
    error: str

    terminal = True

    def to_message(self) -> Dict[str, Any]:
        return {"error": self.error}


EventSink = Callable[[ScanEvent], Awaitable[None]]


@dataclass
class _ScanProgressCounters:
    total: int = 0
    processed: int = 0
    notifications_created: int = 0
    pages: int = 0


# ============================================================================
# Scanner
# ============================================================================


class OverdueTaskScanner:
    """
    Runs overdue scan passes.

    Args:
        directory: Task domain queries
        notification_service: Creates and delivers each notification
        batch_size: Candidates per page
        excluded_statuses: Task statuses that are never candidates
        notify_roles: Roles notified about every overdue task
        on_event: Optional async sink for scan events
    """

    def __init__(
        self,
        directory: TaskDirectory,
        notification_service: NotificationService,
        batch_size: int = OVERDUE_CHECK_BATCH_SIZE,
        excluded_statuses: Sequence[TaskStatus] = OVERDUE_EXCLUDED_STATUSES,
        notify_roles: Sequence[UserRole] = OVERDUE_NOTIFY_ROLES,
        on_event: Optional[EventSink] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.directory = directory
        self.notification_service = notification_service
        self.batch_size = batch_size
        self.excluded_statuses = tuple(excluded_statuses)
        self.notify_roles = tuple(notify_roles)
        self.on_event = on_event
        # scan_id -> role -> recipients, refreshed per page, dropped at pass end
        self._role_cache: Dict[str, Dict[UserRole, Tuple[Recipient, ...]]] = {}

    async def run(self, now: Optional[datetime] = None) -> ScanSummary:
        """
        Execute one scan pass.

        Args:
            now: Reference time (naive UTC); defaults to the current time

        Returns:
            ScanSummary of the completed pass

        Raises:
            Exception: Whatever aborted the pass, after a ScanFailed event
        """
        now = now or datetime.utcnow()
        scan_id = uuid.uuid4().hex
        started_at = datetime.utcnow()
        counters = _ScanProgressCounters()

        logger.info(
            "Overdue scan started",
            extra={"scan_id": scan_id, "now": now.isoformat(), "batch_size": self.batch_size},
        )

        try:
            counters.total = self.directory.count_overdue_candidates(now, self.excluded_statuses)

            while counters.processed < counters.total:
                page = self.directory.find_overdue_candidates(
                    now, self.excluded_statuses, counters.processed, self.batch_size
                )
                if not page:
                    break

                self._refresh_roles(scan_id)
                for task in page:
                    counters.notifications_created += await self._notify_task(scan_id, task)
                    counters.processed += 1
                counters.pages += 1

                await self._emit(ScanProgress(
                    scan_id, counters.processed, counters.total, counters.notifications_created
                ))
                # Let the host loop breathe between pages
                await asyncio.sleep(0)

            summary = ScanSummary(
                scan_id=scan_id,
                tasks_processed=counters.processed,
                notifications_created=counters.notifications_created,
                total=counters.total,
                pages=counters.pages,
                started_at=started_at,
                finished_at=datetime.utcnow(),
            )
        except Exception as e:
            logger.error(
                f"Overdue scan failed: {e}",
                extra={
                    "scan_id": scan_id,
                    "processed": counters.processed,
                    "total": counters.total,
                },
                exc_info=True,
            )
            await self._emit(ScanFailed(scan_id, str(e) or type(e).__name__))
            raise
        finally:
            self._role_cache.pop(scan_id, None)

        logger.info(
            "Overdue scan finished",
            extra={"scan_id": scan_id, **summary.to_message(), "pages": summary.pages},
        )
        await self._emit(summary)
        return summary

    def _refresh_roles(self, scan_id: str) -> None:
        self._role_cache[scan_id] = {
            role: tuple(Recipient.user(user.id) for user in self.directory.find_users_by_role(role))
            for role in self.notify_roles
        }

    def _recipients_for(self, scan_id: str, task: Task) -> List[Tuple[Recipient, NotificationContent]]:
        targets: List[Tuple[Recipient, NotificationContent]] = []
        if task.assigned_to_id is not None:
            targets.append((
                Recipient.user(task.assigned_to_id),
                create_overdue_assignee_notification(task),
            ))

        supervisor_content = create_overdue_supervisor_notification(task)
        for recipients in self._role_cache[scan_id].values():
            targets.extend((recipient, supervisor_content) for recipient in recipients)
        return targets

    async def _notify_task(self, scan_id: str, task: Task) -> int:
        """Notify every recipient of one task concurrently; returns successes."""
        task_guid = task.guid
        targets = self._recipients_for(scan_id, task)
        if not targets:
            return 0

        outcomes = await asyncio.gather(
            *(
                self.notification_service.create_and_deliver(
                    content.type, content.message, recipient, content.data
                )
                for recipient, content in targets
            ),
            return_exceptions=True,
        )

        created = 0
        for (recipient, _), outcome in zip(targets, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(
                    f"Failed to notify about overdue task: {outcome}",
                    extra={"scan_id": scan_id, "task_guid": task_guid, "recipient": recipient.key},
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                created += 1
        return created

    async def _emit(self, event: ScanEvent) -> None:
        if self.on_event is not None:
            await self.on_event(event)
