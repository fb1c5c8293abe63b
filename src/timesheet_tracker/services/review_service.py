"""Review queries for managers and admins."""

from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timesheet_tracker.models import ApprovalLog, Project, TimesheetEntry, User
from timesheet_tracker.services.entry_service import load_entry_with_manager
from timesheet_tracker.services.policy import Action, Actor, AuthorizationPolicy, ResourceScope
from timesheet_tracker.services.state_machine import EntryStatus

# (entry, project code, project name, employee name)
ReviewRow = tuple[TimesheetEntry, str, str, str]


class ReviewService:
    """Read-only views over the entries a reviewer is responsible for.

    Managers see their direct reports; admins see everyone.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _team_query(self, actor: Actor):
        query = (
            select(TimesheetEntry, Project.code, Project.name, User.name)
            .join(Project, Project.id == TimesheetEntry.project_id)
            .join(User, User.id == TimesheetEntry.user_id)
        )
        if not actor.is_admin:
            query = query.where(User.manager_id == actor.user_id)
        return query

    async def pending_entries(self, actor: Actor) -> list[ReviewRow]:
        """Submitted entries awaiting the actor's decision, newest submission first."""
        AuthorizationPolicy.authorize(actor, Action.VIEW_TEAM)

        query = (
            self._team_query(actor)
            .where(TimesheetEntry.status == EntryStatus.SUBMITTED.value)
            .order_by(TimesheetEntry.submitted_at.desc(), TimesheetEntry.id.desc())
        )
        result = await self.session.execute(query)
        return [tuple(row) for row in result.all()]

    async def team_entries(
        self,
        actor: Actor,
        status: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
        employee_id: int | None = None,
    ) -> list[ReviewRow]:
        AuthorizationPolicy.authorize(actor, Action.VIEW_TEAM)

        query = self._team_query(actor)
        if status:
            query = query.where(TimesheetEntry.status == status)
        if from_date:
            query = query.where(TimesheetEntry.entry_date >= from_date)
        if to_date:
            query = query.where(TimesheetEntry.entry_date <= to_date)
        if employee_id is not None:
            query = query.where(TimesheetEntry.user_id == employee_id)
        query = query.order_by(TimesheetEntry.entry_date.desc(), TimesheetEntry.id.desc())

        result = await self.session.execute(query)
        return [tuple(row) for row in result.all()]

    async def team_members(self, actor: Actor) -> list[User]:
        """Active direct reports (every active user for admins)."""
        AuthorizationPolicy.authorize(actor, Action.VIEW_TEAM)

        query = select(User).where(User.status == "active")
        if not actor.is_admin:
            query = query.where(User.manager_id == actor.user_id)
        result = await self.session.execute(query.order_by(User.name))
        return list(result.scalars().all())

    async def approval_history(self, actor: Actor, entry_id: int) -> list[ApprovalLog]:
        """Approval log of one entry, oldest first."""
        entry, manager_id = await load_entry_with_manager(self.session, entry_id)
        AuthorizationPolicy.authorize(
            actor,
            Action.VIEW_ENTRY,
            ResourceScope(owner_id=entry.user_id, owner_manager_id=manager_id),
        )

        result = await self.session.execute(
            select(ApprovalLog)
            .where(ApprovalLog.entry_id == entry_id)
            .order_by(ApprovalLog.action_at, ApprovalLog.id)
        )
        return list(result.scalars().all())
