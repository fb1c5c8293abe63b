"""Pytest fixtures for timesheet tracker tests."""

from __future__ import annotations

import os
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Cheap hashes and a fixed signing key for tests
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")

from timesheet_tracker.config import get_settings  # noqa: E402
from timesheet_tracker.database import create_session_factory  # noqa: E402
from timesheet_tracker.models import (  # noqa: E402
    Base,
    Project,
    ProjectAssignment,
    TimesheetEntry,
    User,
)
from timesheet_tracker.security import hash_password  # noqa: E402
from timesheet_tracker.services.policy import Actor, Role  # noqa: E402
from timesheet_tracker.services.settings_service import SettingsProvider  # noqa: E402

get_settings.cache_clear()

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PASSWORD = "password123"


@pytest.fixture
def user_password() -> str:
    """Password of every seeded user."""
    return TEST_PASSWORD


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def seeded_settings(session: AsyncSession) -> None:
    """Default system settings."""
    await SettingsProvider(session).seed_defaults()
    await session.commit()


async def _add_user(
    session: AsyncSession,
    name: str,
    email: str,
    role: str,
    manager_id: int | None = None,
    status: str = "active",
) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
        department="Engineering",
        manager_id=manager_id,
        status=status,
    )
    session.add(user)
    await session.flush()
    return user


@pytest.fixture
async def admin_user(session: AsyncSession) -> User:
    user = await _add_user(session, "Alice Admin", "admin@company.com", "admin")
    await session.commit()
    return user


@pytest.fixture
async def manager_user(session: AsyncSession) -> User:
    user = await _add_user(session, "Mona Manager", "manager@company.com", "manager")
    await session.commit()
    return user


@pytest.fixture
async def other_manager_user(session: AsyncSession) -> User:
    user = await _add_user(session, "Oscar Manager", "oscar@company.com", "manager")
    await session.commit()
    return user


@pytest.fixture
async def employee_user(session: AsyncSession, manager_user: User) -> User:
    """Employee reporting to manager_user."""
    user = await _add_user(
        session, "Eve Employee", "employee@company.com", "employee", manager_id=manager_user.id
    )
    await session.commit()
    return user


@pytest.fixture
async def outsider_user(session: AsyncSession, other_manager_user: User) -> User:
    """Employee reporting to other_manager_user."""
    user = await _add_user(
        session, "Otto Outsider", "otto@company.com", "employee", manager_id=other_manager_user.id
    )
    await session.commit()
    return user


@pytest.fixture
async def project(session: AsyncSession, employee_user: User, outsider_user: User) -> Project:
    """Active project assigned to employee_user and outsider_user."""
    project = Project(
        code="PRJ-001",
        name="Customer Portal",
        description="Portal rebuild",
        billing_rate=Decimal("120.00"),
        status="active",
    )
    session.add(project)
    await session.flush()
    session.add_all(
        [
            ProjectAssignment(project_id=project.id, user_id=employee_user.id),
            ProjectAssignment(project_id=project.id, user_id=outsider_user.id),
        ]
    )
    await session.commit()
    return project


@pytest.fixture
async def second_project(session: AsyncSession, employee_user: User) -> Project:
    """Another active project assigned to employee_user."""
    project = Project(
        code="PRJ-002",
        name="Data Warehouse",
        billing_rate=Decimal("95.00"),
        status="active",
    )
    session.add(project)
    await session.flush()
    session.add(ProjectAssignment(project_id=project.id, user_id=employee_user.id))
    await session.commit()
    return project


@pytest.fixture
async def unassigned_project(session: AsyncSession) -> Project:
    """Active project with nobody assigned."""
    project = Project(
        code="PRJ-999",
        name="Secret Project",
        billing_rate=Decimal("200.00"),
        status="active",
    )
    session.add(project)
    await session.commit()
    return project


@pytest.fixture
def admin(admin_user: User) -> Actor:
    return Actor(user_id=admin_user.id, role=Role.ADMIN)


@pytest.fixture
def manager(manager_user: User) -> Actor:
    return Actor(user_id=manager_user.id, role=Role.MANAGER)


@pytest.fixture
def other_manager(other_manager_user: User) -> Actor:
    return Actor(user_id=other_manager_user.id, role=Role.MANAGER)


@pytest.fixture
def employee(employee_user: User) -> Actor:
    return Actor(user_id=employee_user.id, role=Role.EMPLOYEE)


@pytest.fixture
def outsider(outsider_user: User) -> Actor:
    return Actor(user_id=outsider_user.id, role=Role.EMPLOYEE)


@pytest.fixture
def make_entry(session: AsyncSession):
    """Insert entries directly, bypassing the lifecycle service."""

    async def _make(
        user: User,
        project: Project,
        entry_date: date = date(2024, 1, 10),
        hours: Decimal = Decimal("8"),
        status: str = "draft",
        description: str = "Worked on feature X",
    ) -> TimesheetEntry:
        entry = TimesheetEntry(
            user_id=user.id,
            project_id=project.id,
            entry_date=entry_date,
            hours=hours,
            description=description,
            status=status,
        )
        session.add(entry)
        await session.commit()
        return entry

    return _make
