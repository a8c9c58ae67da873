"""
Read access to the task domain for the overdue scan.

The scan depends only on the TaskDirectory protocol; SqlTaskDirectory is
the implementation backed by the tasks/users tables.
"""

from datetime import datetime
from typing import List, Protocol, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from backend.src.models.task import Task, TaskStatus
from backend.src.models.user import User, UserRole


class TaskDirectory(Protocol):
    """Queries the overdue scan needs from the task domain."""

    def count_overdue_candidates(
        self, now: datetime, excluded_statuses: Sequence[TaskStatus]
    ) -> int:
        ...

    def find_overdue_candidates(
        self,
        now: datetime,
        excluded_statuses: Sequence[TaskStatus],
        offset: int,
        limit: int,
    ) -> List[Task]:
        ...

    def find_users_by_role(self, role: UserRole) -> List[User]:
        ...


class SqlTaskDirectory:
    """TaskDirectory over the SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def _candidates(self, query, now: datetime, excluded_statuses: Sequence[TaskStatus]):
        query = query.filter(Task.due_date.isnot(None), Task.due_date < now)
        if excluded_statuses:
            query = query.filter(Task.status.notin_(list(excluded_statuses)))
        return query

    def count_overdue_candidates(
        self, now: datetime, excluded_statuses: Sequence[TaskStatus]
    ) -> int:
        return self._candidates(
            self.db.query(func.count(Task.id)), now, excluded_statuses
        ).scalar()

    def find_overdue_candidates(
        self,
        now: datetime,
        excluded_statuses: Sequence[TaskStatus],
        offset: int,
        limit: int,
    ) -> List[Task]:
        """One page of candidates, ordered by id, with the assignee loaded."""
        return (
            self._candidates(self.db.query(Task), now, excluded_statuses)
            .options(joinedload(Task.assigned_to))
            .order_by(Task.id)
            .offset(offset)
            .limit(limit)
            .all()
        )

    def find_users_by_role(self, role: UserRole) -> List[User]:
        return (
            self.db.query(User)
            .filter(User.role == role)
            .order_by(User.id)
            .all()
        )
