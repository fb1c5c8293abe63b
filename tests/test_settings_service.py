"""Tests for the settings provider."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from timesheet_tracker.exceptions import ForbiddenError, ValidationFailedError
from timesheet_tracker.models import AuditLog, SystemSetting
from timesheet_tracker.services.settings_service import (
    DEFAULT_SETTINGS,
    SettingsProvider,
    validate_settings,
)

pytestmark = pytest.mark.asyncio


class TestSettingsProvider:
    """Reading and updating system settings."""

    async def test_defaults_without_rows(self, session):
        """Missing keys fall back to the seeded defaults."""
        rules = await SettingsProvider(session).get_rules()
        assert rules.max_hours_per_day == Decimal("12")
        assert rules.min_description_length == 10
        assert rules.session_timeout_ms == 1_800_000

    async def test_seed_defaults_is_idempotent(self, session):
        provider = SettingsProvider(session)
        assert await provider.seed_defaults() == len(DEFAULT_SETTINGS)
        await session.commit()
        assert await provider.seed_defaults() == 0

    async def test_update_is_audited(self, session, seeded_settings, admin):
        values = await SettingsProvider(session).update(admin, {"max_hours_per_day": "10"})

        assert values["max_hours_per_day"] == "10"
        log = await session.scalar(select(AuditLog).where(AuditLog.action == "UPDATE_SETTINGS"))
        assert log.entity_type == "system"
        assert log.old_values == {"max_hours_per_day": "12"}
        assert log.new_values == {"max_hours_per_day": "10"}

    async def test_update_inserts_unknown_keys(self, session, seeded_settings, admin):
        await SettingsProvider(session).update(admin, {"company_name": "Acme"})
        row = await session.scalar(
            select(SystemSetting).where(SystemSetting.setting_key == "company_name")
        )
        assert row.setting_value == "Acme"

    async def test_rules_read_on_every_call(self, session, seeded_settings, admin):
        provider = SettingsProvider(session)
        await provider.update(admin, {"min_description_length": "3"})
        assert (await provider.get_rules()).min_description_length == 3

    async def test_update_requires_admin(self, session, seeded_settings, manager):
        with pytest.raises(ForbiddenError):
            await SettingsProvider(session).update(manager, {"max_hours_per_day": "10"})

    async def test_read_for_admin_screen_requires_admin(self, session, seeded_settings, employee):
        with pytest.raises(ForbiddenError):
            await SettingsProvider(session).get_all_for(employee)


class TestValidateSettings:
    """Value checks for known keys."""

    @pytest.mark.parametrize(
        "values",
        [
            {"max_hours_per_day": "25"},
            {"max_hours_per_day": "lots"},
            {"min_description_length": "0"},
            {"min_description_length": "-4"},
            {"session_timeout_ms": "1000"},
            {"working_days": "  "},
            {},
        ],
    )
    def test_rejects_bad_values(self, values):
        with pytest.raises(ValidationFailedError):
            validate_settings(values)

    def test_normalises_to_strings(self):
        cleaned = validate_settings({"max_hours_per_day": 10, "session_timeout_ms": 900000})
        assert cleaned == {"max_hours_per_day": "10", "session_timeout_ms": "900000"}
