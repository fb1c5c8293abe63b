"""ORM models."""

from timesheet_tracker.models.base import Base, TimestampMixin
from timesheet_tracker.models.project import Project, ProjectAssignment
from timesheet_tracker.models.system import AuditLog, SystemSetting
from timesheet_tracker.models.timesheet import ApprovalLog, TimesheetEntry
from timesheet_tracker.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "Project",
    "ProjectAssignment",
    "TimesheetEntry",
    "ApprovalLog",
    "AuditLog",
    "SystemSetting",
]
