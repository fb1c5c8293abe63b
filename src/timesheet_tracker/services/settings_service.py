"""Settings provider backed by the system_settings table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timesheet_tracker.database import unit_of_work
from timesheet_tracker.exceptions import FieldError, ValidationFailedError
from timesheet_tracker.models import SystemSetting
from timesheet_tracker.services.audit_service import AuditRecorder
from timesheet_tracker.services.policy import Action, Actor, AuthorizationPolicy

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, str] = {
    "max_hours_per_day": "12",
    "min_description_length": "10",
    "session_timeout_ms": "1800000",
    "working_days": "5",
    "financial_year_start": "01-01",
}

MIN_SESSION_TIMEOUT_MS = 60_000


@dataclass(frozen=True)
class ValidationRules:
    """Current values of the settings that drive entry validation."""

    max_hours_per_day: Decimal
    min_description_length: int
    session_timeout_ms: int


class SettingsProvider:
    """Reads settings from the store on every call; nothing is cached."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all(self) -> dict[str, str]:
        """All settings, with defaults filled in for missing keys."""
        result = await self.session.execute(select(SystemSetting))
        values = dict(DEFAULT_SETTINGS)
        for row in result.scalars():
            if row.setting_value is not None:
                values[row.setting_key] = row.setting_value
        return values

    async def get_all_for(self, actor: Actor) -> dict[str, str]:
        """All settings, for the admin settings screen."""
        AuthorizationPolicy.authorize(actor, Action.MANAGE_SETTINGS)
        return await self.get_all()

    async def get_rules(self) -> ValidationRules:
        values = await self.get_all()
        return ValidationRules(
            max_hours_per_day=_as_decimal(
                values["max_hours_per_day"], DEFAULT_SETTINGS["max_hours_per_day"]
            ),
            min_description_length=_as_int(
                values["min_description_length"], DEFAULT_SETTINGS["min_description_length"]
            ),
            session_timeout_ms=_as_int(
                values["session_timeout_ms"], DEFAULT_SETTINGS["session_timeout_ms"]
            ),
        )

    async def seed_defaults(self) -> int:
        """Insert default values for keys that are missing. Returns count inserted.

        Runs inside the caller's transaction.
        """
        result = await self.session.execute(select(SystemSetting.setting_key))
        existing = set(result.scalars().all())
        missing = [key for key in DEFAULT_SETTINGS if key not in existing]
        for key in missing:
            self.session.add(SystemSetting(setting_key=key, setting_value=DEFAULT_SETTINGS[key]))
        await self.session.flush()
        return len(missing)

    async def update(self, actor: Actor, values: dict[str, str]) -> dict[str, str]:
        """Upsert settings (admin only) and return the full settings map."""
        AuthorizationPolicy.authorize(actor, Action.MANAGE_SETTINGS)
        cleaned = validate_settings(values)

        async with unit_of_work(self.session):
            result = await self.session.execute(
                select(SystemSetting)
                .where(SystemSetting.setting_key.in_(list(cleaned)))
                .with_for_update()
            )
            rows = {row.setting_key: row for row in result.scalars()}

            old_values: dict[str, str | None] = {}
            for key, value in cleaned.items():
                row = rows.get(key)
                if row is None:
                    old_values[key] = None
                    self.session.add(SystemSetting(setting_key=key, setting_value=value))
                else:
                    old_values[key] = row.setting_value
                    row.setting_value = value
            await self.session.flush()

            await AuditRecorder(self.session).record(
                actor.user_id,
                "UPDATE_SETTINGS",
                "system",
                old_values=old_values,
                new_values=cleaned,
            )

        logger.info("Settings %s updated by user %s", sorted(cleaned), actor.user_id)
        return await self.get_all()


def validate_settings(values: dict[str, str]) -> dict[str, str]:
    """Normalise setting values to strings and check the known keys."""
    if not values:
        raise ValidationFailedError.single("settings", "No settings supplied")

    errors: list[FieldError] = []
    cleaned: dict[str, str] = {}
    for key, raw in values.items():
        value = str(raw).strip() if raw is not None else ""
        if not key.strip():
            errors.append(FieldError("settings", "Setting keys must not be empty"))
            continue
        if not value:
            errors.append(FieldError(key, "Value must not be empty"))
            continue

        if key == "max_hours_per_day":
            try:
                hours = Decimal(value)
            except InvalidOperation:
                errors.append(FieldError(key, "Must be a number"))
                continue
            if not Decimal("0.25") <= hours <= Decimal("24"):
                errors.append(FieldError(key, "Must be between 0.25 and 24"))
                continue
        elif key == "min_description_length":
            if not value.isdigit() or int(value) < 1:
                errors.append(FieldError(key, "Must be a positive integer"))
                continue
        elif key == "session_timeout_ms":
            if not value.isdigit() or int(value) < MIN_SESSION_TIMEOUT_MS:
                errors.append(FieldError(key, f"Must be an integer of at least {MIN_SESSION_TIMEOUT_MS}"))
                continue
        cleaned[key] = value

    if errors:
        raise ValidationFailedError(errors)
    return cleaned


def _as_int(value: str, default: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed integer setting %r", value)
        return int(default)


def _as_decimal(value: str, default: str) -> Decimal:
    try:
        return Decimal(value)
    except (TypeError, InvalidOperation):
        logger.warning("Ignoring malformed decimal setting %r", value)
        return Decimal(default)
