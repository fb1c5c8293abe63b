"""API routes."""

from timesheet_tracker.api.routes.admin import router as admin_router
from timesheet_tracker.api.routes.approvals import router as approvals_router
from timesheet_tracker.api.routes.auth import router as auth_router
from timesheet_tracker.api.routes.health import router as health_router
from timesheet_tracker.api.routes.timesheets import router as timesheets_router

__all__ = [
    "admin_router",
    "approvals_router",
    "auth_router",
    "health_router",
    "timesheets_router",
]
