"""Generation queue — content requests awaiting automated drafting.

Lifecycle: pending -> generating -> generated -> approved/rejected, with
failed and cancelled as exits. The approval stage moves items to
approved/rejected (see approvals.py); the orchestrator marks approved items
published once their post is live.
"""

from __future__ import annotations

from typing import Any, Iterable

from src.common.errors import InvalidState, NotFound, ValidationFailed
from src.common.logging import setup_logging

from .models import GenerationQueueItem
from .permissions import Operation, Principal, authorize
from .status import QueueStatus, ensure_transition
from .store import WorkflowStore

logger = setup_logging(module_name="workflow.queue")


class GenerationQueue:
    """Guards every queue status change with the transition table."""

    def __init__(self, store: WorkflowStore) -> None:
        self.store = store

    def submit(
        self,
        principal: Principal,
        topic: str,
        keywords: Iterable[str] = (),
        priority: int = 5,
        metadata: dict[str, Any] | None = None,
    ) -> GenerationQueueItem:
        authorize(principal, Operation.SUBMIT)
        if not topic or not topic.strip():
            raise ValidationFailed("Topic is required")
        if not 1 <= priority <= 10:
            raise ValidationFailed("Priority must be between 1 and 10")
        item = self.store.create_queue_item(
            GenerationQueueItem(
                org_id=principal.org_id,
                created_by=principal.user_id,
                topic=topic.strip(),
                keywords=[k.strip() for k in keywords if k and k.strip()],
                priority=priority,
                metadata=metadata or {},
            )
        )
        logger.info("Queued generation %s for org %s: %s", item.queue_id, item.org_id, item.topic)
        return item

    def get(self, org_id: str, queue_id: str) -> GenerationQueueItem:
        item = self.store.get_queue_item(org_id, queue_id)
        if item is None:
            raise NotFound(f"Queue item {queue_id} not found")
        return item

    def transition(
        self,
        org_id: str,
        queue_id: str,
        target: QueueStatus,
        **fields: Any,
    ) -> GenerationQueueItem:
        """Move an item to ``target``; illegal moves fail before any write.

        Raises:
            InvalidTransition: ``current -> target`` is not in the table.
            InvalidState: The item changed status concurrently.
        """
        item = self.get(org_id, queue_id)
        ensure_transition("queue", item.status, target)
        updated = self.store.compare_and_set_queue(queue_id, [item.status], {"status": target, **fields})
        if updated is None:
            raise InvalidState(f"Queue item {queue_id} was modified concurrently")
        logger.info("Queue item %s: %s -> %s", queue_id, item.status.value, QueueStatus(target).value)
        return updated

    def start_generation(self, org_id: str, queue_id: str) -> GenerationQueueItem:
        return self.transition(org_id, queue_id, QueueStatus.GENERATING)

    def complete_generation(
        self,
        org_id: str,
        queue_id: str,
        title: str,
        content: str,
        post_id: str | None = None,
    ) -> GenerationQueueItem:
        fields: dict[str, Any] = {
            "generated_title": title,
            "generated_content": content,
            "generation_error": None,
        }
        if post_id:
            fields["post_id"] = post_id
        return self.transition(org_id, queue_id, QueueStatus.GENERATED, **fields)

    def fail_generation(self, org_id: str, queue_id: str, error: str) -> GenerationQueueItem:
        return self.transition(org_id, queue_id, QueueStatus.FAILED, generation_error=error)

    def cancel(self, principal: Principal, queue_id: str) -> GenerationQueueItem:
        authorize(principal, Operation.SUBMIT)
        return self.transition(principal.org_id, queue_id, QueueStatus.CANCELLED)

    def mark_published(self, org_id: str, queue_id: str) -> GenerationQueueItem:
        return self.transition(org_id, queue_id, QueueStatus.PUBLISHED)
