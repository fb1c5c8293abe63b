"""Timesheet tracker services."""

from timesheet_tracker.services.admin_service import ProjectAdminService, UserAdminService
from timesheet_tracker.services.audit_service import AuditRecorder
from timesheet_tracker.services.auth_service import AuthService
from timesheet_tracker.services.entry_service import EntryLifecycleService
from timesheet_tracker.services.policy import Action, Actor, AuthorizationPolicy, Role
from timesheet_tracker.services.review_service import ReviewService
from timesheet_tracker.services.settings_service import SettingsProvider
from timesheet_tracker.services.state_machine import (
    EntryStateMachine,
    EntryStatus,
    InvalidTransitionError,
)

__all__ = [
    "Action",
    "Actor",
    "AuditRecorder",
    "AuthService",
    "AuthorizationPolicy",
    "EntryLifecycleService",
    "EntryStateMachine",
    "EntryStatus",
    "InvalidTransitionError",
    "ProjectAdminService",
    "ReviewService",
    "Role",
    "SettingsProvider",
    "UserAdminService",
]
