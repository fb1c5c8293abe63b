"""Role-based authorization policy.

All role checks in the application go through ``AuthorizationPolicy``; no
handler or service compares role strings on its own. The policy is a pure
function of the actor, the action and the resource scope, so it can be
evaluated before anything is read for update or written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from timesheet_tracker.exceptions import AuthenticationError, ForbiddenError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """User roles."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


class Action(str, Enum):
    """Actions subject to authorization."""

    LOGIN = "login"
    VIEW_PROFILE = "view_profile"
    CHANGE_PASSWORD = "change_password"
    LOGOUT = "logout"

    VIEW_ENTRY = "view_entry"
    CREATE_ENTRY = "create_entry"
    EDIT_ENTRY = "edit_entry"
    SUBMIT_ENTRY = "submit_entry"
    DELETE_ENTRY = "delete_entry"
    APPROVE_ENTRY = "approve_entry"
    REJECT_ENTRY = "reject_entry"
    VIEW_TEAM = "view_team"

    MANAGE_USERS = "manage_users"
    DEACTIVATE_USER = "deactivate_user"
    MANAGE_PROJECTS = "manage_projects"
    MANAGE_SETTINGS = "manage_settings"
    VIEW_AUDIT_LOG = "view_audit_log"


SELF_SERVICE_ACTIONS = frozenset({Action.VIEW_PROFILE, Action.CHANGE_PASSWORD, Action.LOGOUT})

OWNER_ACTIONS = frozenset(
    {Action.CREATE_ENTRY, Action.EDIT_ENTRY, Action.SUBMIT_ENTRY, Action.DELETE_ENTRY}
)

REVIEW_ACTIONS = frozenset({Action.APPROVE_ENTRY, Action.REJECT_ENTRY, Action.VIEW_ENTRY})


@dataclass(frozen=True)
class Actor:
    """A verified identity, as supplied by the session provider."""

    user_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class ResourceScope:
    """What the policy needs to know about the target of an action.

    Attributes:
        owner_id: Owner of the target entry.
        owner_manager_id: Manager reference of the entry owner.
        project_assigned: Whether the target project is in the actor's
            assignment set (entry create / edit).
        target_user_id: Target of a user-management action.
    """

    owner_id: int | None = None
    owner_manager_id: int | None = None
    project_assigned: bool | None = None
    target_user_id: int | None = None


@dataclass(frozen=True)
class Decision:
    """Outcome of a policy evaluation."""

    allowed: bool
    reason: str = ""


ALLOW = Decision(True)


class AuthorizationPolicy:
    """Maps (actor, action, scope) to allow / deny."""

    @staticmethod
    def evaluate(
        actor: Actor | None,
        action: Action,
        scope: ResourceScope | None = None,
    ) -> Decision:
        """Evaluate the policy without side effects."""
        scope = scope or ResourceScope()

        if action == Action.LOGIN:
            return ALLOW
        if actor is None:
            return Decision(False, "Authentication required")

        if actor.role == Role.ADMIN:
            if action == Action.DEACTIVATE_USER and scope.target_user_id == actor.user_id:
                return Decision(False, "Cannot deactivate your own account")
            return ALLOW

        if action in SELF_SERVICE_ACTIONS:
            return ALLOW

        is_owner = scope.owner_id is not None and scope.owner_id == actor.user_id

        if action == Action.VIEW_ENTRY and is_owner:
            return ALLOW

        if actor.role == Role.MANAGER:
            if action == Action.VIEW_TEAM:
                return ALLOW
            if action in REVIEW_ACTIONS:
                if scope.owner_manager_id is not None and scope.owner_manager_id == actor.user_id:
                    return ALLOW
                return Decision(False, "Entry owner does not report to you")
            return Decision(False, f"Managers may not {action.value.replace('_', ' ')}")

        # Employee
        if action in OWNER_ACTIONS:
            if not is_owner:
                return Decision(False, "Access denied")
            if action in (Action.CREATE_ENTRY, Action.EDIT_ENTRY) and scope.project_assigned is False:
                return Decision(False, "Project not assigned to you")
            return ALLOW
        return Decision(False, "Access denied")

    @classmethod
    def authorize(
        cls,
        actor: Actor | None,
        action: Action,
        scope: ResourceScope | None = None,
    ) -> None:
        """Raise if the policy denies the action."""
        decision = cls.evaluate(actor, action, scope)
        if decision.allowed:
            return
        if actor is None:
            raise AuthenticationError(decision.reason)
        logger.info(
            "Denied %s for user %s (%s): %s",
            action.value,
            actor.user_id,
            actor.role.value,
            decision.reason,
        )
        raise ForbiddenError(decision.reason)
