"""
Task model (task domain).

Only the columns the overdue scan reads are mapped. Status transitions
(including marking a task OVERDUE) belong to the task service.
"""

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, Index
from sqlalchemy.orm import relationship

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin


class TaskStatus(enum.Enum):
    """Workflow status of a task."""
    NEW = "new"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    APPROVED = "approved"
    IN_REVIEW = "in_review"
    TESTING = "testing"
    BLOCKED = "blocked"
    ON_HOLD = "on_hold"


class Task(Base, GuidMixin):
    """
    Unit of work assigned to a staff user.

    Attributes:
        title: Task title used in notification messages
        due_date: Deadline; tasks past it become overdue candidates
        status: Workflow status
        priority: Optional priority label copied into notification payloads
        assigned_to_id: Assignee (nullable for unassigned tasks)
    """

    __tablename__ = "tasks"
    GUID_PREFIX = "tsk"

    id = Column(Integer, primary_key=True, autoincrement=True)

    title = Column(String(255), nullable=False)
    due_date = Column(DateTime, nullable=True)
    status = Column(
        Enum(
            TaskStatus,
            name="task_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=TaskStatus.NEW,
        nullable=False,
    )
    priority = Column(String(30), nullable=True)

    assigned_to_id = Column(
        Integer,
        ForeignKey("users.id", name="fk_tasks_assigned_to_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    client_id = Column(
        Integer,
        ForeignKey("clients.id", name="fk_tasks_client_id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    assigned_to = relationship("User", foreign_keys=[assigned_to_id], lazy="joined")

    __table_args__ = (
        Index("ix_tasks_due_date_status", "due_date", "status"),
    )

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, title='{self.title}', status={self.status})>"
