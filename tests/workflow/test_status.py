"""Tests for status enums and transition tables."""

from __future__ import annotations

import itertools

import pytest

from src.common.errors import InvalidTransition
from src.workflow.status import (
    APPROVAL_QUEUE_EFFECTS,
    APPROVAL_TRANSITIONS,
    PLATFORM_TRANSITIONS,
    QUEUE_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    TERMINAL_QUEUE_STATUSES,
    ApprovalStatus,
    PlatformStatus,
    QueueStatus,
    allowed_targets,
    can_transition,
    can_transition_approval,
    can_transition_platform,
    can_transition_queue,
    ensure_transition,
)

QUEUE_ALLOWED = {
    ("pending", "generating"),
    ("pending", "cancelled"),
    ("generating", "generated"),
    ("generating", "failed"),
    ("generating", "cancelled"),
    ("generated", "generated"),
    ("generated", "approved"),
    ("generated", "rejected"),
    ("generated", "failed"),
    ("generated", "cancelled"),
    ("approved", "published"),
    ("approved", "cancelled"),
}

APPROVAL_ALLOWED = {
    ("pending", "approved"),
    ("pending", "rejected"),
    ("pending", "changes_requested"),
    ("changes_requested", "pending"),
}

PLATFORM_ALLOWED = {
    ("pending", "publishing"),
    ("pending", "cancelled"),
    ("publishing", "published"),
    ("publishing", "failed"),
    ("published", "publishing"),
    ("published", "unpublished"),
    ("published", "pending"),
    ("unpublished", "publishing"),
    ("unpublished", "pending"),
    ("failed", "pending"),
}


class TestTablesAreTotal:
    @pytest.mark.parametrize(
        "kind,enum_cls,allowed",
        [
            ("queue", QueueStatus, QUEUE_ALLOWED),
            ("approval", ApprovalStatus, APPROVAL_ALLOWED),
            ("platform", PlatformStatus, PLATFORM_ALLOWED),
        ],
    )
    def test_every_pair_matches_table(self, kind, enum_cls, allowed):
        for current, target in itertools.product(enum_cls, enum_cls):
            expected = (current.value, target.value) in allowed
            assert can_transition(kind, current, target) is expected, (current, target)

    def test_every_status_has_a_row(self):
        assert set(QUEUE_TRANSITIONS) == set(QueueStatus)
        assert set(APPROVAL_TRANSITIONS) == set(ApprovalStatus)
        assert set(PLATFORM_TRANSITIONS) == set(PlatformStatus)


class TestTerminalStatuses:
    def test_queue_terminals(self):
        assert TERMINAL_QUEUE_STATUSES == {
            QueueStatus.REJECTED,
            QueueStatus.PUBLISHED,
            QueueStatus.FAILED,
            QueueStatus.CANCELLED,
        }

    def test_approval_terminals(self):
        assert TERMINAL_APPROVAL_STATUSES == {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}

    def test_published_queue_item_is_final(self):
        assert not can_transition_queue("published", "pending")
        assert allowed_targets("queue", "published") == []


class TestHelpers:
    def test_string_and_enum_inputs(self):
        assert can_transition_queue("pending", QueueStatus.GENERATING)
        assert can_transition_approval(ApprovalStatus.PENDING, "approved")
        assert can_transition_platform("failed", "pending")

    def test_unknown_status_is_illegal(self):
        assert not can_transition("queue", "pending", "archived")
        assert not can_transition("platform", "bogus", "pending")
        assert allowed_targets("platform", "bogus") == []

    def test_failed_cannot_publish_directly(self):
        assert not can_transition_platform("failed", "publishing")

    def test_ensure_transition_raises_with_allowed_list(self):
        with pytest.raises(InvalidTransition) as exc_info:
            ensure_transition("queue", "published", "pending")
        exc = exc_info.value
        assert exc.http_status == 400
        assert exc.details["allowed"] == []
        assert "published -> pending" in exc.message

    def test_ensure_transition_lists_valid_targets(self):
        with pytest.raises(InvalidTransition) as exc_info:
            ensure_transition("approval", "pending", "pending")
        assert exc_info.value.details["allowed"] == ["approved", "changes_requested", "rejected"]

    def test_ensure_transition_passes(self):
        ensure_transition("platform", "pending", "publishing")

    def test_approval_effects(self):
        assert APPROVAL_QUEUE_EFFECTS[ApprovalStatus.APPROVED] == QueueStatus.APPROVED
        assert APPROVAL_QUEUE_EFFECTS[ApprovalStatus.REJECTED] == QueueStatus.REJECTED
        # changes requested never re-triggers generation
        assert APPROVAL_QUEUE_EFFECTS[ApprovalStatus.CHANGES_REQUESTED] == QueueStatus.GENERATED
