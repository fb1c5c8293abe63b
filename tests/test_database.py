"""Tests for unit_of_work error translation."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from timesheet_tracker.database import unit_of_work
from timesheet_tracker.exceptions import ConflictError, StoreFailureError
from timesheet_tracker.models import Project

pytestmark = pytest.mark.asyncio


class TestUnitOfWork:
    """Store errors escaping a unit of work."""

    async def test_unique_violation_is_conflict(self, session, project):
        with pytest.raises(ConflictError):
            async with unit_of_work(session):
                session.add(Project(code="PRJ-001", name="Clash", billing_rate=Decimal("1")))
                await session.flush()

        assert await session.scalar(select(func.count(Project.id))) == 1

    async def test_not_null_violation_is_store_failure(self, session):
        """Only uniqueness maps to Conflict; other integrity errors are store failures."""
        with pytest.raises(StoreFailureError) as exc_info:
            async with unit_of_work(session):
                session.add(Project(code="NEW-1", name=None, billing_rate=Decimal("1")))
                await session.flush()

        assert exc_info.value.code == "INTERNAL_ERROR"
        assert await session.scalar(select(func.count(Project.id))) == 0

    async def test_commit_on_success(self, session):
        async with unit_of_work(session):
            session.add(Project(code="NEW-2", name="Fine", billing_rate=Decimal("1")))

        await session.rollback()
        assert await session.scalar(select(func.count(Project.id))) == 1
