"""Admin services: user and project management."""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timesheet_tracker.database import unit_of_work
from timesheet_tracker.exceptions import (
    ConflictError,
    FieldError,
    NotFoundError,
    ValidationFailedError,
)
from timesheet_tracker.models import Project, ProjectAssignment, TimesheetEntry, User
from timesheet_tracker.security import hash_password
from timesheet_tracker.services.audit_service import AuditRecorder, snapshot
from timesheet_tracker.services.policy import (
    Action,
    Actor,
    AuthorizationPolicy,
    ResourceScope,
    Role,
)

logger = logging.getLogger(__name__)

USER_FIELDS = ("name", "email", "role", "department", "manager_id", "status")
PROJECT_FIELDS = ("code", "name", "description", "billing_rate", "status")

# Fields an update may clear by sending null
CLEARABLE_USER_FIELDS = frozenset({"department", "manager_id"})
CLEARABLE_PROJECT_FIELDS = frozenset({"description"})


def reject_nulls(changes: dict[str, Any], clearable: frozenset[str]) -> None:
    """Raise ValidationFailedError for null values on fields that cannot be cleared."""
    errors = [
        FieldError(key, "Must not be null")
        for key, value in changes.items()
        if value is None and key not in clearable
    ]
    if errors:
        raise ValidationFailedError(errors)


class UserAdminService:
    """User management (admin only)."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditRecorder(session)

    async def list_users(
        self,
        actor: Actor,
        role: str | None = None,
        status: str | None = None,
    ) -> list[User]:
        AuthorizationPolicy.authorize(actor, Action.MANAGE_USERS)

        query = select(User)
        if role:
            query = query.where(User.role == role)
        if status:
            query = query.where(User.status == status)
        result = await self.session.execute(query.order_by(User.name, User.id))
        return list(result.scalars().all())

    async def get_user(self, actor: Actor, user_id: int) -> User:
        AuthorizationPolicy.authorize(actor, Action.MANAGE_USERS)
        return await self._get(user_id)

    async def create_user(
        self,
        actor: Actor,
        name: str,
        email: str,
        password: str,
        role: str = Role.EMPLOYEE.value,
        department: str | None = None,
        manager_id: int | None = None,
    ) -> User:
        AuthorizationPolicy.authorize(actor, Action.MANAGE_USERS)
        email = email.strip().lower()

        async with unit_of_work(self.session):
            await self._ensure_email_free(email)
            if manager_id is not None:
                await self._validate_manager(manager_id)

            user = User(
                name=name.strip(),
                email=email,
                password_hash=hash_password(password),
                role=Role(role).value,
                department=department,
                manager_id=manager_id,
                status="active",
            )
            self.session.add(user)
            await self.session.flush()
            await self.audit.record(
                actor.user_id, "CREATE_USER", "user", user.id, new_values=snapshot(user)
            )

        logger.info("User %s created by admin %s", user.id, actor.user_id)
        return user

    async def bootstrap_user(
        self,
        name: str,
        email: str,
        password: str,
        role: str = Role.ADMIN.value,
    ) -> User:
        """Create a user from the operator CLI, where there is no actor yet.

        Audited with a null actor.
        """
        email = email.strip().lower()
        async with unit_of_work(self.session):
            await self._ensure_email_free(email)
            user = User(
                name=name.strip(),
                email=email,
                password_hash=hash_password(password),
                role=Role(role).value,
                department=None,
                manager_id=None,
                status="active",
            )
            self.session.add(user)
            await self.session.flush()
            await self.audit.record(None, "CREATE_USER", "user", user.id, new_values=snapshot(user))

        logger.info("User %s (%s) created from the command line", user.id, user.role)
        return user

    async def update_user(self, actor: Actor, user_id: int, changes: dict[str, Any]) -> User:
        """Partial update. Only keys in USER_FIELDS are applied."""
        AuthorizationPolicy.authorize(actor, Action.MANAGE_USERS)
        changes = {k: v for k, v in changes.items() if k in USER_FIELDS}
        if not changes:
            raise ValidationFailedError.single("body", "No fields to update")
        reject_nulls(changes, CLEARABLE_USER_FIELDS)

        async with unit_of_work(self.session):
            user = await self._get(user_id, for_update=True)

            if changes.get("status") == "inactive":
                AuthorizationPolicy.authorize(
                    actor, Action.DEACTIVATE_USER, ResourceScope(target_user_id=user.id)
                )
            if "email" in changes:
                changes["email"] = changes["email"].strip().lower()
                if changes["email"] != user.email:
                    await self._ensure_email_free(changes["email"])
            if changes.get("manager_id") is not None:
                if changes["manager_id"] == user.id:
                    raise ValidationFailedError.single(
                        "manager_id", "A user cannot be their own manager"
                    )
                await self._validate_manager(changes["manager_id"])
            if "role" in changes:
                changes["role"] = Role(changes["role"]).value

            old_values = snapshot(user)
            for key, value in changes.items():
                setattr(user, key, value)
            await self.session.flush()
            await self.audit.record(
                actor.user_id,
                "UPDATE_USER",
                "user",
                user.id,
                old_values=old_values,
                new_values=snapshot(user),
            )

        logger.info("User %s updated by admin %s", user.id, actor.user_id)
        return user

    async def deactivate_user(self, actor: Actor, user_id: int) -> User:
        AuthorizationPolicy.authorize(actor, Action.MANAGE_USERS)
        async with unit_of_work(self.session):
            user = await self._get(user_id, for_update=True)
            AuthorizationPolicy.authorize(
                actor, Action.DEACTIVATE_USER, ResourceScope(target_user_id=user.id)
            )
            old_values = snapshot(user)
            user.status = "inactive"
            await self.session.flush()
            await self.audit.record(
                actor.user_id,
                "DEACTIVATE_USER",
                "user",
                user.id,
                old_values=old_values,
                new_values=snapshot(user),
            )

        logger.info("User %s deactivated by admin %s", user.id, actor.user_id)
        return user

    async def _get(self, user_id: int, for_update: bool = False) -> User:
        user = await self.session.get(User, user_id, with_for_update=for_update)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    async def _ensure_email_free(self, email: str) -> None:
        existing = await self.session.scalar(select(User.id).where(User.email == email))
        if existing is not None:
            raise ConflictError("Email already registered")

    async def _validate_manager(self, manager_id: int) -> None:
        """A manager reference must point to an active manager or admin."""
        manager = await self.session.get(User, manager_id)
        if manager is None:
            raise ValidationFailedError.single("manager_id", "Manager does not exist")
        if not manager.is_active:
            raise ValidationFailedError.single("manager_id", "Manager is not active")
        if manager.role not in (Role.MANAGER.value, Role.ADMIN.value):
            raise ValidationFailedError.single("manager_id", "Manager must have role manager or admin")


class ProjectAdminService:
    """Project management (admin only). Assignments are managed with the project."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditRecorder(session)

    async def list_projects(
        self,
        actor: Actor,
        status: str | None = None,
    ) -> list[tuple[Project, list[int]]]:
        """Projects with their assigned user ids."""
        AuthorizationPolicy.authorize(actor, Action.MANAGE_PROJECTS)

        query = select(Project)
        if status:
            query = query.where(Project.status == status)
        projects = list((await self.session.execute(query.order_by(Project.code))).scalars())

        assigned: dict[int, list[int]] = defaultdict(list)
        if projects:
            rows = await self.session.execute(
                select(ProjectAssignment.project_id, ProjectAssignment.user_id)
                .where(ProjectAssignment.project_id.in_([p.id for p in projects]))
                .order_by(ProjectAssignment.user_id)
            )
            for project_id, user_id in rows:
                assigned[project_id].append(user_id)
        return [(p, assigned[p.id]) for p in projects]

    async def get_project(self, actor: Actor, project_id: int) -> tuple[Project, list[int]]:
        AuthorizationPolicy.authorize(actor, Action.MANAGE_PROJECTS)
        project = await self._get(project_id)
        return project, await self._assigned_user_ids(project.id)

    async def create_project(
        self,
        actor: Actor,
        code: str,
        name: str,
        billing_rate: Decimal,
        description: str | None = None,
        status: str = "active",
        assigned_to: list[int] | None = None,
    ) -> tuple[Project, list[int]]:
        AuthorizationPolicy.authorize(actor, Action.MANAGE_PROJECTS)
        code = code.strip()

        async with unit_of_work(self.session):
            await self._ensure_code_free(code)
            user_ids = await self._validate_assignees(assigned_to or [])

            project = Project(
                code=code,
                name=name.strip(),
                description=description,
                billing_rate=Decimal(billing_rate),
                status=status,
            )
            self.session.add(project)
            await self.session.flush()
            await self._replace_assignments(project.id, user_ids)

            new_values = snapshot(project)
            new_values["assigned_to"] = user_ids
            await self.audit.record(
                actor.user_id, "CREATE_PROJECT", "project", project.id, new_values=new_values
            )

        logger.info("Project %s created by admin %s", project.code, actor.user_id)
        return project, user_ids

    async def update_project(
        self,
        actor: Actor,
        project_id: int,
        changes: dict[str, Any],
    ) -> tuple[Project, list[int]]:
        """Partial update. When ``assigned_to`` is present the assignment set is replaced."""
        AuthorizationPolicy.authorize(actor, Action.MANAGE_PROJECTS)
        assigned_to = changes.get("assigned_to")
        fields = {k: v for k, v in changes.items() if k in PROJECT_FIELDS}
        if not fields and assigned_to is None:
            raise ValidationFailedError.single("body", "No fields to update")
        reject_nulls(fields, CLEARABLE_PROJECT_FIELDS)
        if "assigned_to" in changes and assigned_to is None:
            raise ValidationFailedError.single("assigned_to", "Must not be null")

        async with unit_of_work(self.session):
            project = await self._get(project_id, for_update=True)
            if "code" in fields:
                fields["code"] = fields["code"].strip()
                if fields["code"] != project.code:
                    await self._ensure_code_free(fields["code"])
            if "billing_rate" in fields:
                fields["billing_rate"] = Decimal(fields["billing_rate"])

            old_values = snapshot(project)
            old_values["assigned_to"] = await self._assigned_user_ids(project.id)

            for key, value in fields.items():
                setattr(project, key, value)
            await self.session.flush()

            if assigned_to is not None:
                user_ids = await self._validate_assignees(assigned_to)
                await self._replace_assignments(project.id, user_ids)
            else:
                user_ids = old_values["assigned_to"]

            new_values = snapshot(project)
            new_values["assigned_to"] = user_ids
            await self.audit.record(
                actor.user_id,
                "UPDATE_PROJECT",
                "project",
                project.id,
                old_values=old_values,
                new_values=new_values,
            )

        logger.info("Project %s updated by admin %s", project.code, actor.user_id)
        return project, user_ids

    async def delete_project(self, actor: Actor, project_id: int) -> None:
        """Delete a project and its assignments; refused while entries reference it."""
        AuthorizationPolicy.authorize(actor, Action.MANAGE_PROJECTS)

        async with unit_of_work(self.session):
            project = await self._get(project_id, for_update=True)
            entry_count = await self.session.scalar(
                select(func.count(TimesheetEntry.id)).where(TimesheetEntry.project_id == project.id)
            )
            if entry_count:
                raise ConflictError(
                    f"Project has {entry_count} timesheet entries; deactivate it instead"
                )

            old_values = snapshot(project)
            old_values["assigned_to"] = await self._assigned_user_ids(project.id)
            await self.session.execute(
                delete(ProjectAssignment).where(ProjectAssignment.project_id == project.id)
            )
            await self.session.delete(project)
            await self.session.flush()
            await self.audit.record(
                actor.user_id, "DELETE_PROJECT", "project", project_id, old_values=old_values
            )

        logger.info("Project %s deleted by admin %s", project_id, actor.user_id)

    async def _get(self, project_id: int, for_update: bool = False) -> Project:
        project = await self.session.get(Project, project_id, with_for_update=for_update)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    async def _ensure_code_free(self, code: str) -> None:
        existing = await self.session.scalar(select(Project.id).where(Project.code == code))
        if existing is not None:
            raise ConflictError("Project code already exists")

    async def _assigned_user_ids(self, project_id: int) -> list[int]:
        result = await self.session.execute(
            select(ProjectAssignment.user_id)
            .where(ProjectAssignment.project_id == project_id)
            .order_by(ProjectAssignment.user_id)
        )
        return list(result.scalars().all())

    async def _validate_assignees(self, user_ids: list[int]) -> list[int]:
        """De-duplicate and check every id refers to an existing user."""
        unique_ids = sorted(set(user_ids))
        if not unique_ids:
            return []
        result = await self.session.execute(select(User.id).where(User.id.in_(unique_ids)))
        found = set(result.scalars().all())
        missing = [uid for uid in unique_ids if uid not in found]
        if missing:
            raise ValidationFailedError.single(
                "assigned_to", f"Unknown user ids: {', '.join(map(str, missing))}"
            )
        return unique_ids

    async def _replace_assignments(self, project_id: int, user_ids: list[int]) -> None:
        await self.session.execute(
            delete(ProjectAssignment).where(ProjectAssignment.project_id == project_id)
        )
        for user_id in user_ids:
            self.session.add(ProjectAssignment(project_id=project_id, user_id=user_id))
        await self.session.flush()
