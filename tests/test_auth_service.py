"""Tests for login, token verification and self-service account operations."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import select

from timesheet_tracker.config import get_settings
from timesheet_tracker.exceptions import AuthenticationError, ValidationFailedError
from timesheet_tracker.models import AuditLog, User
from timesheet_tracker.security import create_access_token, decode_access_token, verify_password
from timesheet_tracker.services.auth_service import AuthService
from timesheet_tracker.services.policy import Role

pytestmark = pytest.mark.asyncio


class TestLogin:
    """Password login."""

    async def test_login_issues_token(self, session, seeded_settings, employee_user, user_password):
        result = await AuthService(session).login("Employee@Company.com", user_password, "10.0.0.1")

        payload = decode_access_token(result.token)
        assert payload["sub"] == str(employee_user.id)
        assert payload["role"] == "employee"
        assert "jti" in payload

        # Lifetime comes from the session_timeout_ms setting (30 minutes)
        lifetime = result.expires_at - datetime.now(timezone.utc)
        assert timedelta(minutes=29) < lifetime <= timedelta(minutes=30)

        log = await session.scalar(select(AuditLog).where(AuditLog.action == "LOGIN"))
        assert log.user_id == employee_user.id
        assert log.ip_address == "10.0.0.1"

    async def test_wrong_password(self, session, seeded_settings, employee_user):
        with pytest.raises(AuthenticationError) as exc_info:
            await AuthService(session).login("employee@company.com", "not-it")
        assert exc_info.value.message == "Invalid email or password"

    async def test_unknown_email(self, session, seeded_settings, user_password):
        with pytest.raises(AuthenticationError) as exc_info:
            await AuthService(session).login("nobody@company.com", user_password)
        assert exc_info.value.message == "Invalid email or password"

    async def test_inactive_user(self, session, seeded_settings, employee_user, user_password):
        employee_user.status = "inactive"
        await session.commit()
        with pytest.raises(AuthenticationError):
            await AuthService(session).login("employee@company.com", user_password)


class TestAuthenticate:
    """Bearer token verification."""

    async def test_role_from_store(self, session, employee_user):
        """The stored role wins over the role in the token."""
        token, _ = create_access_token(employee_user.id, "admin", 60_000)
        actor = await AuthService(session).authenticate(token)
        assert actor.user_id == employee_user.id
        assert actor.role == Role.EMPLOYEE

    async def test_expired_token(self, session, employee_user):
        settings = get_settings()
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": str(employee_user.id),
                "role": "employee",
                "iat": now - timedelta(hours=2),
                "exp": now - timedelta(hours=1),
            },
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(AuthenticationError) as exc_info:
            await AuthService(session).authenticate(token)
        assert exc_info.value.message == "Session expired"

    async def test_tampered_token(self, session, employee_user):
        token, _ = create_access_token(employee_user.id, "employee", 60_000)
        with pytest.raises(AuthenticationError):
            await AuthService(session).authenticate(token[:-2] + "xx")

    async def test_deactivated_user(self, session, employee_user):
        token, _ = create_access_token(employee_user.id, "employee", 60_000)
        employee_user.status = "inactive"
        await session.commit()
        with pytest.raises(AuthenticationError):
            await AuthService(session).authenticate(token)


class TestAccount:
    """Self-service operations."""

    async def test_profile(self, session, employee, employee_user):
        user = await AuthService(session).profile(employee)
        assert user.email == employee_user.email

    async def test_change_password(self, session, employee, employee_user, user_password):
        user_id = employee_user.id
        await AuthService(session).change_password(employee, user_password, "new-secret")

        user = await session.get(User, user_id, populate_existing=True)
        assert verify_password("new-secret", user.password_hash)
        log = await session.scalar(select(AuditLog).where(AuditLog.action == "CHANGE_PASSWORD"))
        assert log.old_values is None
        assert log.new_values is None

    async def test_change_password_wrong_current(self, session, employee, employee_user):
        with pytest.raises(ValidationFailedError) as exc_info:
            await AuthService(session).change_password(employee, "wrong", "new-secret")
        assert exc_info.value.fields[0].field == "current_password"

    async def test_change_password_too_short(self, session, employee, user_password):
        with pytest.raises(ValidationFailedError):
            await AuthService(session).change_password(employee, user_password, "abc")

    async def test_logout_is_audited(self, session, employee):
        await AuthService(session).logout(employee)
        log = await session.scalar(select(AuditLog).where(AuditLog.action == "LOGOUT"))
        assert log.user_id == employee.user_id
