"""Tests for timesheet entry state machine."""

import pytest

from timesheet_tracker.services.state_machine import (
    EntryAction,
    EntryStateMachine,
    EntryStatus,
    InvalidTransitionError,
)


class TestEntryStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # draft → submitted
        assert EntryStateMachine.next_status("draft", "submit") == "submitted"

        # submitted → approved / rejected
        assert EntryStateMachine.next_status("submitted", "approve") == "approved"
        assert EntryStateMachine.next_status("submitted", "reject") == "rejected"

        # rejected → submitted (resubmit)
        assert EntryStateMachine.next_status("rejected", "submit") == "submitted"

        # edit keeps the status
        assert EntryStateMachine.next_status("draft", "edit") == "draft"
        assert EntryStateMachine.next_status("rejected", "edit") == "rejected"

    def test_delete_only_from_draft(self):
        """Delete removes the entry and is legal only for drafts."""
        assert EntryStateMachine.next_status("draft", "delete") is None
        for status in ("submitted", "approved", "rejected"):
            assert EntryStateMachine.can_apply(status, "delete") is False

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't review a draft
        assert EntryStateMachine.can_apply("draft", "approve") is False
        assert EntryStateMachine.can_apply("draft", "reject") is False

        # Can't edit or resubmit while under review
        assert EntryStateMachine.can_apply("submitted", "edit") is False
        assert EntryStateMachine.can_apply("submitted", "submit") is False

        # Rejected entries can't be reviewed again until resubmitted
        assert EntryStateMachine.can_apply("rejected", "approve") is False
        assert EntryStateMachine.can_apply("rejected", "reject") is False

    def test_approved_is_terminal(self):
        """No action leaves approved."""
        assert EntryStateMachine.allowed_actions("approved") == []
        for action in EntryAction:
            assert EntryStateMachine.can_apply("approved", action) is False

    def test_next_status_raises(self):
        """Test that next_status raises for illegal actions."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            EntryStateMachine.next_status("approved", "edit")

        assert exc_info.value.current_status == "approved"
        assert exc_info.value.action == "edit"
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_error_body_includes_current_status(self):
        exc = InvalidTransitionError(EntryStatus.SUBMITTED, EntryAction.SUBMIT)
        body = exc.to_dict()
        assert body["code"] == "INVALID_TRANSITION"
        assert body["current_status"] == "submitted"
        assert body["action"] == "submit"

    def test_allowed_actions(self):
        assert set(EntryStateMachine.allowed_actions("draft")) == {"edit", "submit", "delete"}
        assert set(EntryStateMachine.allowed_actions("rejected")) == {"edit", "submit"}
        assert set(EntryStateMachine.allowed_actions("submitted")) == {"approve", "reject"}

    def test_initial_status_is_draft(self):
        assert EntryStateMachine.INITIAL_STATUS == EntryStatus.DRAFT
