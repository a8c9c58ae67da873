"""
Task-domain rules shared by the notification triggers.
"""

from backend.src.models.task import TaskStatus
from backend.src.models.user import UserRole


# Default page size of one overdue scan page
OVERDUE_CHECK_BATCH_SIZE = 50

# Statuses that are terminal or under review; tasks in these states are
# never overdue candidates.
OVERDUE_EXCLUDED_STATUSES = (
    TaskStatus.COMPLETED,
    TaskStatus.OVERDUE,
    TaskStatus.APPROVED,
    TaskStatus.IN_REVIEW,
    TaskStatus.TESTING,
    TaskStatus.BLOCKED,
    TaskStatus.ON_HOLD,
)

# Roles notified about every overdue task in addition to the assignee
OVERDUE_NOTIFY_ROLES = (UserRole.TASK_SUPERVISOR,)

# Web route of a task detail page
TASK_RESOURCE_PATH = "/taskOfferings"
