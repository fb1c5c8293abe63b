"""Tests for user and project administration."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from timesheet_tracker.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationFailedError,
)
from timesheet_tracker.models import AuditLog, Project, ProjectAssignment, User
from timesheet_tracker.security import verify_password
from timesheet_tracker.services.admin_service import ProjectAdminService, UserAdminService

pytestmark = pytest.mark.asyncio


class TestUserAdmin:
    """User management."""

    async def test_create_user(self, session, admin, manager_user):
        user = await UserAdminService(session).create_user(
            admin,
            name="New Hire",
            email="New.Hire@Company.com",
            password="welcome1",
            role="employee",
            manager_id=manager_user.id,
        )

        assert user.email == "new.hire@company.com"
        assert user.status == "active"
        assert verify_password("welcome1", user.password_hash)

        log = await session.scalar(select(AuditLog).where(AuditLog.action == "CREATE_USER"))
        assert log.entity_id == user.id
        assert "password_hash" not in log.new_values

    async def test_duplicate_email(self, session, admin, employee_user):
        with pytest.raises(ConflictError):
            await UserAdminService(session).create_user(
                admin, name="Copy", email="employee@company.com", password="welcome1"
            )

    async def test_manager_must_be_manager_or_admin(self, session, admin, employee_user):
        employee_id = employee_user.id
        with pytest.raises(ValidationFailedError) as exc_info:
            await UserAdminService(session).create_user(
                admin,
                name="New Hire",
                email="hire@company.com",
                password="welcome1",
                manager_id=employee_id,
            )
        assert exc_info.value.fields[0].field == "manager_id"

    async def test_manager_must_be_active(self, session, admin, manager_user):
        manager_id = manager_user.id
        manager_user.status = "inactive"
        await session.commit()

        with pytest.raises(ValidationFailedError):
            await UserAdminService(session).create_user(
                admin,
                name="New Hire",
                email="hire@company.com",
                password="welcome1",
                manager_id=manager_id,
            )

    async def test_non_admin_forbidden(self, session, manager):
        with pytest.raises(ForbiddenError):
            await UserAdminService(session).list_users(manager)

    async def test_update_user(self, session, admin, employee_user, other_manager_user):
        user = await UserAdminService(session).update_user(
            admin,
            employee_user.id,
            {"department": "Finance", "manager_id": other_manager_user.id},
        )
        assert user.department == "Finance"
        assert user.manager_id == other_manager_user.id

        log = await session.scalar(select(AuditLog).where(AuditLog.action == "UPDATE_USER"))
        assert log.old_values["department"] == "Engineering"
        assert log.new_values["department"] == "Finance"

    async def test_cannot_be_own_manager(self, session, admin, manager_user):
        manager_id = manager_user.id
        with pytest.raises(ValidationFailedError):
            await UserAdminService(session).update_user(
                admin, manager_id, {"manager_id": manager_id}
            )

    async def test_empty_update(self, session, admin, employee_user):
        with pytest.raises(ValidationFailedError):
            await UserAdminService(session).update_user(admin, employee_user.id, {})

    async def test_unknown_user(self, session, admin):
        with pytest.raises(NotFoundError):
            await UserAdminService(session).get_user(admin, 9999)

    async def test_deactivate_user(self, session, admin, employee_user):
        user = await UserAdminService(session).deactivate_user(admin, employee_user.id)
        assert user.status == "inactive"
        assert (
            await session.scalar(
                select(func.count(AuditLog.id)).where(AuditLog.action == "DEACTIVATE_USER")
            )
            == 1
        )

    async def test_admin_cannot_deactivate_self(self, session, admin, admin_user):
        admin_id = admin_user.id
        service = UserAdminService(session)

        with pytest.raises(ForbiddenError):
            await service.deactivate_user(admin, admin_id)
        with pytest.raises(ForbiddenError):
            await service.update_user(admin, admin_id, {"status": "inactive"})

        status = await session.scalar(select(User.status).where(User.id == admin_id))
        assert status == "active"

    async def test_bootstrap_user(self, session):
        user = await UserAdminService(session).bootstrap_user(
            "Root", "root@company.com", "changeme"
        )
        assert user.role == "admin"
        log = await session.scalar(select(AuditLog).where(AuditLog.action == "CREATE_USER"))
        assert log.user_id is None


class TestProjectAdmin:
    """Project management with assignments."""

    async def test_create_with_assignments(self, session, admin, employee_user, outsider_user):
        project, assigned = await ProjectAdminService(session).create_project(
            admin,
            code="NEW-1",
            name="New Project",
            billing_rate=Decimal("150"),
            assigned_to=[outsider_user.id, employee_user.id, employee_user.id],
        )

        assert assigned == sorted([employee_user.id, outsider_user.id])
        count = await session.scalar(
            select(func.count(ProjectAssignment.id)).where(
                ProjectAssignment.project_id == project.id
            )
        )
        assert count == 2

    async def test_duplicate_code(self, session, admin, project):
        with pytest.raises(ConflictError):
            await ProjectAdminService(session).create_project(
                admin, code="PRJ-001", name="Clash", billing_rate=Decimal("1")
            )

    async def test_unknown_assignee(self, session, admin):
        with pytest.raises(ValidationFailedError):
            await ProjectAdminService(session).create_project(
                admin, code="NEW-2", name="New", billing_rate=Decimal("1"), assigned_to=[9999]
            )
        assert await session.scalar(select(func.count(Project.id))) == 0

    async def test_update_replaces_assignments(
        self, session, admin, project, employee_user, manager_user
    ):
        """The assignment set after the update is exactly the new list."""
        project_id = project.id
        _, assigned = await ProjectAdminService(session).update_project(
            admin, project_id, {"name": "Renamed", "assigned_to": [manager_user.id]}
        )

        assert assigned == [manager_user.id]
        result = await session.execute(
            select(ProjectAssignment.user_id).where(ProjectAssignment.project_id == project_id)
        )
        assert list(result.scalars()) == [manager_user.id]

        log = await session.scalar(select(AuditLog).where(AuditLog.action == "UPDATE_PROJECT"))
        assert len(log.old_values["assigned_to"]) == 2
        assert log.new_values["assigned_to"] == [manager_user.id]
        assert log.new_values["name"] == "Renamed"

    async def test_update_without_assignments_keeps_them(self, session, admin, project):
        project_id = project.id
        _, assigned = await ProjectAdminService(session).update_project(
            admin, project_id, {"status": "inactive"}
        )
        assert len(assigned) == 2

    async def test_failed_assignment_update_rolls_back(self, session, admin, project):
        project_id = project.id
        with pytest.raises(ValidationFailedError):
            await ProjectAdminService(session).update_project(
                admin, project_id, {"name": "Renamed", "assigned_to": [9999]}
            )

        name = await session.scalar(select(Project.name).where(Project.id == project_id))
        assert name == "Customer Portal"
        count = await session.scalar(
            select(func.count(ProjectAssignment.id)).where(
                ProjectAssignment.project_id == project_id
            )
        )
        assert count == 2

    async def test_delete_project(self, session, admin, project):
        project_id = project.id
        await ProjectAdminService(session).delete_project(admin, project_id)

        assert await session.scalar(select(func.count(Project.id))) == 0
        assert await session.scalar(select(func.count(ProjectAssignment.id))) == 0

    async def test_delete_with_entries_conflicts(
        self, session, admin, project, employee_user, make_entry
    ):
        await make_entry(employee_user, project, date(2024, 1, 10))
        project_id = project.id

        with pytest.raises(ConflictError):
            await ProjectAdminService(session).delete_project(admin, project_id)

        assert await session.scalar(select(func.count(Project.id))) == 1

    async def test_list_projects(self, session, admin, project, unassigned_project):
        rows = await ProjectAdminService(session).list_projects(admin)
        assert [(p.code, len(ids)) for p, ids in rows] == [("PRJ-001", 2), ("PRJ-999", 0)]

    async def test_employee_forbidden(self, session, employee):
        with pytest.raises(ForbiddenError):
            await ProjectAdminService(session).list_projects(employee)
