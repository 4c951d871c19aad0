"""Approval stage — human sign-off on generated drafts.

A review moves an approval away from ``pending`` and, in the same unit of
work, moves the linked queue item: approved -> approved, rejected ->
rejected, changes_requested -> generated (never back to pending, so
generation is not re-triggered).
"""

from __future__ import annotations

from typing import Optional

from src.common.errors import InvalidState, NotFound, ValidationFailed
from src.common.logging import setup_logging

from .models import ApprovalRecord, GenerationQueueItem, utc_now
from .permissions import Operation, Principal, authorize
from .status import (
    APPROVAL_QUEUE_EFFECTS,
    ApprovalStatus,
    QueueStatus,
    ensure_transition,
)
from .store import WorkflowStore

logger = setup_logging(module_name="workflow.approvals")


class ApprovalService:
    """Requests and reviews approvals."""

    def __init__(self, store: WorkflowStore) -> None:
        self.store = store

    def request_approval(
        self,
        principal: Principal,
        queue_id: Optional[str] = None,
        post_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ApprovalRecord:
        """Open the next revision's approval for a post or queue item.

        Raises:
            ValidationFailed: Neither queue nor post given.
            InvalidState: The queue item is not generated, or an approval
                for the same post/item is already pending.
        """
        authorize(principal, Operation.SUBMIT)
        if not queue_id and not post_id:
            raise ValidationFailed("An approval needs a queue item or a post")

        if queue_id:
            item = self._get_queue_item(principal.org_id, queue_id)
            if item.status != QueueStatus.GENERATED:
                raise InvalidState(
                    f"Queue item {queue_id} is {item.status.value}; only generated items can be submitted"
                )
            post_id = post_id or item.post_id

        # a competing request either waits on the transaction or hits the
        # unique (content, revision) index
        with self.store.transaction():
            history = self._history(principal.org_id, queue_id, post_id)
            if any(a.status == ApprovalStatus.PENDING for a in history):
                raise InvalidState("An approval is already pending for this content")

            latest = history[0] if history else None
            approval = self.store.create_approval(
                ApprovalRecord(
                    org_id=principal.org_id,
                    queue_id=queue_id,
                    post_id=post_id,
                    requested_by=principal.user_id,
                    review_notes=notes,
                    revision_number=(latest.revision_number + 1) if latest else 1,
                    previous_approval_id=latest.approval_id if latest else None,
                )
            )
        logger.info(
            "Approval %s requested (revision %d) by %s",
            approval.approval_id,
            approval.revision_number,
            principal.user_id,
        )
        return approval

    def review(
        self,
        principal: Principal,
        approval_id: str,
        decision: ApprovalStatus | str,
        review_notes: Optional[str] = None,
        rejection_reason: Optional[str] = None,
    ) -> ApprovalRecord:
        """Approve, reject or request changes.

        Raises:
            Forbidden: The principal cannot moderate content.
            NotFound: No such approval in the principal's organization.
            InvalidTransition: The approval or its queue item cannot move.
        """
        authorize(principal, Operation.REVIEW)
        approval = self.get(principal.org_id, approval_id)
        ensure_transition("approval", approval.status, decision)
        decision = ApprovalStatus(decision)

        queue_item: GenerationQueueItem | None = None
        queue_target: QueueStatus | None = None
        if approval.queue_id:
            queue_item = self._get_queue_item(principal.org_id, approval.queue_id)
            queue_target = APPROVAL_QUEUE_EFFECTS[decision]
            ensure_transition("queue", queue_item.status, queue_target)

        updates = {
            "status": decision,
            "reviewed_by": principal.user_id,
            "reviewed_at": utc_now(),
            "review_notes": review_notes,
            "rejection_reason": rejection_reason if decision == ApprovalStatus.REJECTED else None,
        }
        updated, _ = self.store.apply_review(approval, updates, queue_item, queue_target)
        logger.info("Approval %s %s by %s", approval_id, decision.value, principal.user_id)
        return updated

    def approve(self, principal: Principal, approval_id: str, notes: Optional[str] = None) -> ApprovalRecord:
        return self.review(principal, approval_id, ApprovalStatus.APPROVED, review_notes=notes)

    def reject(self, principal: Principal, approval_id: str, reason: str, notes: Optional[str] = None) -> ApprovalRecord:
        return self.review(principal, approval_id, ApprovalStatus.REJECTED, review_notes=notes, rejection_reason=reason)

    def request_changes(self, principal: Principal, approval_id: str, notes: str) -> ApprovalRecord:
        return self.review(principal, approval_id, ApprovalStatus.CHANGES_REQUESTED, review_notes=notes)

    def resubmit(self, principal: Principal, approval_id: str) -> ApprovalRecord:
        """Send a changes_requested approval back to pending after edits."""
        authorize(principal, Operation.SUBMIT)
        approval = self.get(principal.org_id, approval_id)
        ensure_transition("approval", approval.status, ApprovalStatus.PENDING)
        with self.store.transaction():
            history = self._history(principal.org_id, approval.queue_id, approval.post_id)
            if any(a.status == ApprovalStatus.PENDING for a in history):
                raise InvalidState("An approval is already pending for this content")
            updated = self.store.compare_and_set_approval(
                approval_id,
                [approval.status],
                {"status": ApprovalStatus.PENDING, "reviewed_by": None, "reviewed_at": None},
            )
        if updated is None:
            raise InvalidState(f"Approval {approval_id} was modified concurrently")
        return updated

    def get(self, org_id: str, approval_id: str) -> ApprovalRecord:
        approval = self.store.get_approval(org_id, approval_id)
        if approval is None:
            raise NotFound(f"Approval {approval_id} not found")
        return approval

    def _get_queue_item(self, org_id: str, queue_id: str) -> GenerationQueueItem:
        item = self.store.get_queue_item(org_id, queue_id)
        if item is None:
            raise NotFound(f"Queue item {queue_id} not found")
        return item

    def _history(self, org_id: str, queue_id: Optional[str], post_id: Optional[str]) -> list[ApprovalRecord]:
        """Approvals for the same content, newest revision first."""
        if post_id:
            return self.store.find_approvals(org_id, post_id=post_id)
        return self.store.find_approvals(org_id, queue_id=queue_id)
