"""Identity and session provider."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timesheet_tracker.database import unit_of_work
from timesheet_tracker.exceptions import AuthenticationError, NotFoundError, ValidationFailedError
from timesheet_tracker.models import User
from timesheet_tracker.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from timesheet_tracker.services.audit_service import AuditRecorder
from timesheet_tracker.services.policy import Action, Actor, AuthorizationPolicy, Role
from timesheet_tracker.services.settings_service import SettingsProvider

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class LoginResult:
    """A freshly issued session."""

    token: str
    expires_at: datetime
    user: User


class AuthService:
    """Login, token verification and self-service account operations."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditRecorder(session)

    async def login(self, email: str, password: str, ip_address: str | None = None) -> LoginResult:
        AuthorizationPolicy.authorize(None, Action.LOGIN)

        result = await self.session.execute(
            select(User).where(User.email == email.strip().lower())
        )
        user = result.scalar_one_or_none()
        if user is None or not user.is_active or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email)
            raise AuthenticationError("Invalid email or password")

        rules = await SettingsProvider(self.session).get_rules()
        token, expires_at = create_access_token(user.id, user.role, rules.session_timeout_ms)

        async with unit_of_work(self.session):
            await self.audit.record(user.id, "LOGIN", "user", user.id, ip_address=ip_address)

        logger.info("User %s logged in", user.id)
        return LoginResult(token=token, expires_at=expires_at, user=user)

    async def authenticate(self, token: str) -> Actor:
        """Resolve a bearer token to an actor.

        The role is taken from the stored user, not the token, so role
        changes and deactivation take effect immediately.
        """
        payload = decode_access_token(token)
        user = await self.session.get(User, int(payload["sub"]))
        if user is None or not user.is_active:
            raise AuthenticationError("Account is not active")
        return Actor(user_id=user.id, role=Role(user.role))

    async def profile(self, actor: Actor) -> User:
        AuthorizationPolicy.authorize(actor, Action.VIEW_PROFILE)
        user = await self.session.get(User, actor.user_id)
        if user is None:
            raise NotFoundError("user", actor.user_id)
        return user

    async def change_password(
        self,
        actor: Actor,
        current_password: str,
        new_password: str,
    ) -> None:
        AuthorizationPolicy.authorize(actor, Action.CHANGE_PASSWORD)
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationFailedError.single(
                "new_password",
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            )

        async with unit_of_work(self.session):
            user = await self.session.get(User, actor.user_id, with_for_update=True)
            if user is None:
                raise NotFoundError("user", actor.user_id)
            if not verify_password(current_password, user.password_hash):
                raise ValidationFailedError.single(
                    "current_password", "Current password is incorrect"
                )
            user.password_hash = hash_password(new_password)
            await self.session.flush()
            await self.audit.record(actor.user_id, "CHANGE_PASSWORD", "user", actor.user_id)

        logger.info("User %s changed password", actor.user_id)

    async def logout(self, actor: Actor, ip_address: str | None = None) -> None:
        """Record the logout. Tokens are stateless and simply expire."""
        AuthorizationPolicy.authorize(actor, Action.LOGOUT)
        async with unit_of_work(self.session):
            await self.audit.record(
                actor.user_id, "LOGOUT", "user", actor.user_id, ip_address=ip_address
            )
