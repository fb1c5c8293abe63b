"""Entry lifecycle service - creates entries and drives them through review.

Every mutating operation is one unit of work:

1. Load the entry (row-locked where the store supports it) with its
   owner's manager reference
2. Evaluate the authorization policy
3. Validate the transition against the state machine
4. Apply the change with a conditional UPDATE on the expected status
5. Write the audit record (and approval-log record for reviews)

and commits or rolls back as a whole.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from timesheet_tracker.database import is_unique_violation, unit_of_work
from timesheet_tracker.exceptions import (
    ConflictError,
    FieldError,
    NotFoundError,
    ValidationFailedError,
)
from timesheet_tracker.models import Project, ProjectAssignment, TimesheetEntry, User
from timesheet_tracker.services.audit_service import AuditRecorder, snapshot
from timesheet_tracker.services.policy import Action, Actor, AuthorizationPolicy, ResourceScope
from timesheet_tracker.services.settings_service import SettingsProvider, ValidationRules
from timesheet_tracker.services.state_machine import (
    EntryAction,
    EntryStateMachine,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

MIN_HOURS = Decimal("0.25")
MAX_HOURS = Decimal("24")

DUPLICATE_ENTRY_MESSAGE = "Entry for this date and project already exists"


async def load_entry_with_manager(
    session: AsyncSession,
    entry_id: int,
    for_update: bool = False,
) -> tuple[TimesheetEntry, int | None]:
    """Load an entry and its owner's manager id, raising NotFoundError."""
    query = (
        select(TimesheetEntry, User.manager_id)
        .join(User, User.id == TimesheetEntry.user_id)
        .where(TimesheetEntry.id == entry_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update(of=TimesheetEntry)

    row = (await session.execute(query)).one_or_none()
    if row is None:
        raise NotFoundError("entry", entry_id)
    return row[0], row[1]


class EntryLifecycleService:
    """Service for the timesheet entry lifecycle.

    Operations:
    - create_entry: new draft against an assigned project
    - update_entry: edit a draft or rejected entry
    - submit_entry: draft/rejected → submitted
    - approve_entry / reject_entry: submitted → approved / rejected
    - delete_entry: remove a draft
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = SettingsProvider(session)
        self.audit = AuditRecorder(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_entry(self, actor: Actor, entry_id: int) -> TimesheetEntry:
        entry, manager_id = await load_entry_with_manager(self.session, entry_id)
        AuthorizationPolicy.authorize(
            actor,
            Action.VIEW_ENTRY,
            ResourceScope(owner_id=entry.user_id, owner_manager_id=manager_id),
        )
        return entry

    async def list_entries(
        self,
        actor: Actor,
        status: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[tuple[TimesheetEntry, str, str]]:
        """List the actor's own entries with project code and name, newest date first."""
        query = (
            select(TimesheetEntry, Project.code, Project.name)
            .join(Project, Project.id == TimesheetEntry.project_id)
            .where(TimesheetEntry.user_id == actor.user_id)
        )
        if status:
            query = query.where(TimesheetEntry.status == status)
        if from_date:
            query = query.where(TimesheetEntry.entry_date >= from_date)
        if to_date:
            query = query.where(TimesheetEntry.entry_date <= to_date)
        query = query.order_by(TimesheetEntry.entry_date.desc(), TimesheetEntry.id.desc())

        result = await self.session.execute(query)
        return [(entry, code, name) for entry, code, name in result.all()]

    async def list_assigned_projects(self, actor: Actor) -> list[Project]:
        """Active projects the actor may log time against."""
        result = await self.session.execute(
            select(Project)
            .join(ProjectAssignment, ProjectAssignment.project_id == Project.id)
            .where(
                ProjectAssignment.user_id == actor.user_id,
                Project.status == "active",
            )
            .order_by(Project.code)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    async def create_entry(
        self,
        actor: Actor,
        project_id: int,
        entry_date: date,
        hours: Decimal,
        description: str,
    ) -> TimesheetEntry:
        """Create a draft entry for the actor."""
        async with unit_of_work(self.session):
            project = await self._get_project(project_id)
            assigned = await self._is_assigned(actor.user_id, project_id)
            AuthorizationPolicy.authorize(
                actor,
                Action.CREATE_ENTRY,
                ResourceScope(owner_id=actor.user_id, project_assigned=assigned),
            )
            if project.status != "active":
                raise ValidationFailedError.single("project_id", "Project is not active")

            rules = await self.settings.get_rules()
            description = await self._validate(
                rules, actor.user_id, entry_date, Decimal(hours), description
            )
            await self._ensure_unique(actor.user_id, project_id, entry_date)

            entry = TimesheetEntry(
                user_id=actor.user_id,
                project_id=project_id,
                entry_date=entry_date,
                hours=Decimal(hours),
                description=description,
                status=EntryStateMachine.INITIAL_STATUS.value,
            )
            self.session.add(entry)
            try:
                await self.session.flush()
            except IntegrityError as exc:
                if not is_unique_violation(exc):
                    raise
                raise ConflictError(DUPLICATE_ENTRY_MESSAGE) from exc
            await self.session.refresh(entry)

            await self.audit.record(
                actor.user_id,
                "CREATE_ENTRY",
                "timesheet",
                entry.id,
                new_values=snapshot(entry),
            )

        logger.info("Entry %s created by user %s", entry.id, actor.user_id)
        return entry

    async def update_entry(
        self,
        actor: Actor,
        entry_id: int,
        project_id: int | None = None,
        hours: Decimal | None = None,
        description: str | None = None,
    ) -> TimesheetEntry:
        """Edit a draft or rejected entry. The status does not change."""
        if project_id is None and hours is None and description is None:
            raise ValidationFailedError.single("body", "No fields to update")

        async with unit_of_work(self.session):
            entry, manager_id = await load_entry_with_manager(
                self.session, entry_id, for_update=True
            )
            target_project_id = project_id if project_id is not None else entry.project_id
            assigned = await self._is_assigned(entry.user_id, target_project_id)
            AuthorizationPolicy.authorize(
                actor,
                Action.EDIT_ENTRY,
                ResourceScope(
                    owner_id=entry.user_id,
                    owner_manager_id=manager_id,
                    project_assigned=assigned,
                ),
            )
            from_status = entry.status
            EntryStateMachine.next_status(from_status, EntryAction.EDIT)

            changes: dict[str, Any] = {}
            if project_id is not None and project_id != entry.project_id:
                project = await self._get_project(project_id)
                if project.status != "active":
                    raise ValidationFailedError.single("project_id", "Project is not active")
                changes["project_id"] = project_id

            rules = await self.settings.get_rules()
            new_hours = Decimal(hours) if hours is not None else entry.hours
            new_description = description if description is not None else entry.description
            cleaned = await self._validate(
                rules,
                entry.user_id,
                entry.entry_date,
                new_hours,
                new_description,
                exclude_entry_id=entry.id,
            )
            if hours is not None:
                changes["hours"] = new_hours
            if description is not None:
                changes["description"] = cleaned

            if "project_id" in changes:
                await self._ensure_unique(
                    entry.user_id, target_project_id, entry.entry_date, exclude_entry_id=entry.id
                )

            old_values = snapshot(entry)
            await self._apply(entry, from_status, EntryAction.EDIT, changes)
            await self.audit.record(
                actor.user_id,
                "UPDATE_ENTRY",
                "timesheet",
                entry.id,
                old_values=old_values,
                new_values=snapshot(entry),
            )

        logger.info("Entry %s updated by user %s", entry.id, actor.user_id)
        return entry

    async def submit_entry(self, actor: Actor, entry_id: int) -> TimesheetEntry:
        """Submit a draft or rejected entry for review."""
        return await self._transition(
            actor,
            entry_id,
            EntryAction.SUBMIT,
            Action.SUBMIT_ENTRY,
            "SUBMIT_ENTRY",
            {"submitted_at": datetime.now(timezone.utc)},
        )

    async def delete_entry(self, actor: Actor, entry_id: int) -> None:
        """Delete a draft entry."""
        async with unit_of_work(self.session):
            entry, manager_id = await load_entry_with_manager(
                self.session, entry_id, for_update=True
            )
            AuthorizationPolicy.authorize(
                actor,
                Action.DELETE_ENTRY,
                ResourceScope(owner_id=entry.user_id, owner_manager_id=manager_id),
            )
            from_status = entry.status
            EntryStateMachine.next_status(from_status, EntryAction.DELETE)

            old_values = snapshot(entry)
            result = await self.session.execute(
                delete(TimesheetEntry)
                .where(TimesheetEntry.id == entry_id, TimesheetEntry.status == from_status)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise await self._status_changed(entry_id, from_status, EntryAction.DELETE)
            self.session.expunge(entry)

            await self.audit.record(
                actor.user_id,
                "DELETE_ENTRY",
                "timesheet",
                entry_id,
                old_values=old_values,
            )

        logger.info("Entry %s deleted by user %s", entry_id, actor.user_id)

    # ------------------------------------------------------------------
    # Reviewer operations
    # ------------------------------------------------------------------

    async def approve_entry(
        self,
        actor: Actor,
        entry_id: int,
        comments: str | None = None,
    ) -> TimesheetEntry:
        """Approve a submitted entry (owner's manager or admin)."""
        comments = (comments or "").strip() or "Approved"
        return await self._transition(
            actor,
            entry_id,
            EntryAction.APPROVE,
            Action.APPROVE_ENTRY,
            "APPROVE_ENTRY",
            self._review_values(actor, comments),
            review_comments=comments,
        )

    async def reject_entry(self, actor: Actor, entry_id: int, comments: str) -> TimesheetEntry:
        """Reject a submitted entry (owner's manager or admin). Comments are required."""
        comments = (comments or "").strip()
        if not comments:
            raise ValidationFailedError.single("comments", "Comments are required to reject")
        return await self._transition(
            actor,
            entry_id,
            EntryAction.REJECT,
            Action.REJECT_ENTRY,
            "REJECT_ENTRY",
            self._review_values(actor, comments),
            review_comments=comments,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _review_values(actor: Actor, comments: str) -> dict[str, Any]:
        return {
            "reviewed_by": actor.user_id,
            "reviewed_at": datetime.now(timezone.utc),
            "reviewer_comments": comments,
        }

    async def _transition(
        self,
        actor: Actor,
        entry_id: int,
        action: EntryAction,
        policy_action: Action,
        audit_action: str,
        values: dict[str, Any],
        review_comments: str | None = None,
    ) -> TimesheetEntry:
        """Apply a status-changing action and its audit side effects atomically."""
        async with unit_of_work(self.session):
            entry, manager_id = await load_entry_with_manager(
                self.session, entry_id, for_update=True
            )
            AuthorizationPolicy.authorize(
                actor,
                policy_action,
                ResourceScope(owner_id=entry.user_id, owner_manager_id=manager_id),
            )
            from_status = entry.status
            to_status = EntryStateMachine.next_status(from_status, action)

            old_values = snapshot(entry)
            await self._apply(entry, from_status, action, {"status": to_status, **values})

            await self.audit.record(
                actor.user_id,
                audit_action,
                "timesheet",
                entry.id,
                old_values=old_values,
                new_values=snapshot(entry),
            )
            if action in (EntryAction.APPROVE, EntryAction.REJECT):
                await self.audit.record_approval(
                    entry.id, actor.user_id, to_status, review_comments
                )

        logger.info(
            "Entry %s %s -> %s by user %s",
            entry.id,
            from_status,
            to_status,
            actor.user_id,
            extra={"entry_id": entry.id, "actor_id": actor.user_id, "status": to_status},
        )
        return entry

    async def _apply(
        self,
        entry: TimesheetEntry,
        from_status: str,
        action: EntryAction,
        values: dict[str, Any],
    ) -> None:
        """Conditional update guarded by the status the caller validated against."""
        if values:
            result = await self.session.execute(
                update(TimesheetEntry)
                .where(TimesheetEntry.id == entry.id, TimesheetEntry.status == from_status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise await self._status_changed(entry.id, from_status, action)
        await self.session.refresh(entry)

    async def _status_changed(
        self,
        entry_id: int,
        expected_status: str,
        action: EntryAction,
    ) -> InvalidTransitionError:
        """Build the error for a conditional write that matched no row."""
        current = await self.session.scalar(
            select(TimesheetEntry.status).where(TimesheetEntry.id == entry_id)
        )
        logger.warning(
            "Entry %s left %s before %s could be applied", entry_id, expected_status, action.value
        )
        return InvalidTransitionError(
            current or expected_status, action, "Entry status changed concurrently"
        )

    async def _get_project(self, project_id: int) -> Project:
        project = await self.session.get(Project, project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    async def _is_assigned(self, user_id: int, project_id: int) -> bool:
        result = await self.session.execute(
            select(ProjectAssignment.id).where(
                ProjectAssignment.user_id == user_id,
                ProjectAssignment.project_id == project_id,
            )
        )
        return result.first() is not None

    async def _ensure_unique(
        self,
        user_id: int,
        project_id: int,
        entry_date: date,
        exclude_entry_id: int | None = None,
    ) -> None:
        query = select(TimesheetEntry.id).where(
            TimesheetEntry.user_id == user_id,
            TimesheetEntry.project_id == project_id,
            TimesheetEntry.entry_date == entry_date,
        )
        if exclude_entry_id is not None:
            query = query.where(TimesheetEntry.id != exclude_entry_id)
        if (await self.session.execute(query)).first() is not None:
            raise ConflictError(DUPLICATE_ENTRY_MESSAGE)

    async def _validate(
        self,
        rules: ValidationRules,
        user_id: int,
        entry_date: date,
        hours: Decimal,
        description: str,
        exclude_entry_id: int | None = None,
    ) -> str:
        """Check hours and description against current settings.

        Returns the trimmed description.
        """
        errors: list[FieldError] = []
        description = (description or "").strip()

        if not MIN_HOURS <= hours <= MAX_HOURS:
            errors.append(FieldError("hours", f"Hours must be between {MIN_HOURS} and {MAX_HOURS}"))
        else:
            logged = await self._hours_logged(user_id, entry_date, exclude_entry_id)
            if logged + hours > rules.max_hours_per_day:
                errors.append(
                    FieldError(
                        "hours",
                        f"Total hours for {entry_date.isoformat()} would be {logged + hours}, "
                        f"above the daily limit of {rules.max_hours_per_day}",
                    )
                )

        if len(description) < rules.min_description_length:
            errors.append(
                FieldError(
                    "description",
                    f"Description must be at least {rules.min_description_length} characters",
                )
            )

        if errors:
            raise ValidationFailedError(errors)
        return description

    async def _hours_logged(
        self,
        user_id: int,
        entry_date: date,
        exclude_entry_id: int | None,
    ) -> Decimal:
        query = select(func.coalesce(func.sum(TimesheetEntry.hours), 0)).where(
            TimesheetEntry.user_id == user_id,
            TimesheetEntry.entry_date == entry_date,
        )
        if exclude_entry_id is not None:
            query = query.where(TimesheetEntry.id != exclude_entry_id)
        total = await self.session.scalar(query)
        return Decimal(str(total or 0))
