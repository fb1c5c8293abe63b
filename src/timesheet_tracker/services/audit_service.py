"""Audit recorder: append-only audit trail and approval log."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timesheet_tracker.models import ApprovalLog, AuditLog, Base
from timesheet_tracker.services.policy import Action, Actor, AuthorizationPolicy

# Columns never copied into audit snapshots
REDACTED_COLUMNS = frozenset({"password_hash"})


def snapshot(model: Base | None) -> dict[str, Any] | None:
    """JSON-safe dict of a model's columns, for old/new value columns."""
    if model is None:
        return None
    return {
        key: _jsonable(value)
        for key, value in model.to_dict().items()
        if key not in REDACTED_COLUMNS
    }


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class AuditRecorder:
    """Writes audit and approval-log rows into the caller's unit of work.

    The recorder never commits. Rows are flushed immediately so that a
    failing write surfaces inside the caller's transaction and takes the
    primary mutation down with it.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        actor_id: int | None,
        action: str,
        entity_type: str,
        entity_id: int | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        ip_address: str | None = None,
    ) -> AuditLog:
        """Append one audit record."""
        event = AuditLog(
            user_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=_jsonable(old_values) if old_values is not None else None,
            new_values=_jsonable(new_values) if new_values is not None else None,
            ip_address=ip_address,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def record_approval(
        self,
        entry_id: int,
        reviewer_id: int,
        action: str,
        comments: str | None,
    ) -> ApprovalLog:
        """Append one approval-log record (action is 'approved' or 'rejected')."""
        log = ApprovalLog(
            entry_id=entry_id,
            manager_id=reviewer_id,
            action=action,
            comments=comments,
        )
        self.session.add(log)
        await self.session.flush()
        return log

    async def list_audit_logs(
        self,
        actor: Actor,
        entity_type: str | None = None,
        entity_id: int | None = None,
        user_id: int | None = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        """Browse the audit trail, newest first (admin only)."""
        AuthorizationPolicy.authorize(actor, Action.VIEW_AUDIT_LOG)

        query = select(AuditLog)
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(AuditLog.entity_id == entity_id)
        if user_id is not None:
            query = query.where(AuditLog.user_id == user_id)
        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())
