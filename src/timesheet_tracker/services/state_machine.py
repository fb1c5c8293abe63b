"""Timesheet entry state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from timesheet_tracker.exceptions import TimesheetError


class EntryStatus(str, Enum):
    """Timesheet entry status values."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class EntryAction(str, Enum):
    """Lifecycle actions on an existing entry."""

    EDIT = "edit"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"


class InvalidTransitionError(TimesheetError):
    """Raised when an action is not legal from the entry's current status."""

    code = "INVALID_TRANSITION"

    def __init__(self, current_status: str, action: str, reason: str | None = None):
        self.current_status = str(getattr(current_status, "value", current_status))
        self.action = str(getattr(action, "value", action))
        self.reason = reason
        msg = f"Cannot {self.action} an entry in '{self.current_status}' status"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["current_status"] = self.current_status
        body["action"] = self.action
        return body


class EntryStateMachine:
    """State machine for timesheet entry status transitions.

    Allowed transitions:
    - (create) → draft
    - draft → draft, rejected → rejected (edit)
    - draft → submitted, rejected → submitted (submit)
    - submitted → approved (approve)
    - submitted → rejected (reject)
    - draft → removed (delete)

    approved is terminal.
    """

    INITIAL_STATUS = EntryStatus.DRAFT

    # {(from_status, action): to_status}; None means the entry is removed
    TRANSITIONS: dict[tuple[str, str], str | None] = {
        (EntryStatus.DRAFT, EntryAction.EDIT): EntryStatus.DRAFT,
        (EntryStatus.REJECTED, EntryAction.EDIT): EntryStatus.REJECTED,
        (EntryStatus.DRAFT, EntryAction.SUBMIT): EntryStatus.SUBMITTED,
        (EntryStatus.REJECTED, EntryAction.SUBMIT): EntryStatus.SUBMITTED,
        (EntryStatus.SUBMITTED, EntryAction.APPROVE): EntryStatus.APPROVED,
        (EntryStatus.SUBMITTED, EntryAction.REJECT): EntryStatus.REJECTED,
        (EntryStatus.DRAFT, EntryAction.DELETE): None,
    }

    @classmethod
    def can_apply(cls, from_status: str, action: str) -> bool:
        """Check if an action is legal from a status."""
        return (EntryStatus(from_status), EntryAction(action)) in cls.TRANSITIONS

    @classmethod
    def next_status(cls, from_status: str, action: str) -> str | None:
        """Return the status an action leads to, raising if it is not legal.

        Returns None for delete, which removes the entry.
        """
        if not cls.can_apply(from_status, action):
            raise InvalidTransitionError(from_status, action)
        to_status = cls.TRANSITIONS[(EntryStatus(from_status), EntryAction(action))]
        return None if to_status is None else to_status.value

    @classmethod
    def allowed_actions(cls, status: str) -> list[str]:
        """Get list of actions legal from a status."""
        current = EntryStatus(status)
        return [action.value for (frm, action) in cls.TRANSITIONS if frm == current]
