"""Durable publish tasks and the worker that executes them.

Requests to publish (or retry, unpublish, delete) are written to the
`publish_tasks` table and executed by a PublishWorker. A task is claimed
under a lease; if the worker dies, the lease expires and another worker
picks the task up again (at-least-once). Duplicate requests collapse onto
one task through the idempotency key.

A redelivered task whose record is still stuck in ``publishing`` does not
publish again: the record is marked failed (INTERRUPTED) and the task
fails, leaving the decision to retry with a user.
"""

from __future__ import annotations

import socket
import time
import uuid
from typing import Any, Callable, Optional

from src.common.config import settings
from src.common.errors import InvalidState, NotFound, WorkflowError, error_response
from src.common.logging import setup_logging

from .models import PublishTask, TaskOperation, TaskStatus
from .orchestrator import PublishingOrchestrator
from .permissions import Operation, Principal, authorize
from .status import PlatformStatus
from .store import WorkflowStore

logger = setup_logging(module_name="workflow.tasks")

_OPERATION_PERMISSIONS: dict[TaskOperation, Operation] = {
    TaskOperation.PUBLISH: Operation.PUBLISH,
    TaskOperation.REPUBLISH: Operation.REPUBLISH,
    TaskOperation.RETRY: Operation.RETRY,
    TaskOperation.UNPUBLISH: Operation.UNPUBLISH,
    TaskOperation.DELETE_FROM_PLATFORM: Operation.DELETE,
    TaskOperation.DELETE_AND_FORGET: Operation.DELETE,
}


class TaskQueue:
    """Enqueue and track publish tasks."""

    def __init__(self, store: WorkflowStore) -> None:
        self.store = store

    def enqueue(
        self,
        principal: Principal,
        publishing_id: str,
        operation: TaskOperation | str,
        payload: dict[str, Any] | None = None,
        idempotency_key: Optional[str] = None,
    ) -> PublishTask:
        """Record a task. Permissions are checked now and again when it runs.

        The default idempotency key ties the task to the record's current
        state, so re-submitting the same request before it runs is a no-op.
        """
        operation = TaskOperation(operation)
        authorize(principal, _OPERATION_PERMISSIONS[operation])
        record = self.store.get_publishing(principal.org_id, publishing_id)
        if record is None:
            raise NotFound(f"Publishing record {publishing_id} not found")

        key = idempotency_key or (
            f"{publishing_id}:{operation.value}:{record.status.value}:{record.retry_count}:{record.updated_at}"
        )
        task = self.store.create_task(
            PublishTask(
                org_id=principal.org_id,
                publishing_id=publishing_id,
                operation=operation,
                idempotency_key=key,
                principal=principal.to_dict(),
                payload=payload or {},
            )
        )
        logger.info("Task %s (%s) queued for %s", task.task_id, operation.value, publishing_id)
        return task

    def get(self, task_id: str) -> Optional[PublishTask]:
        return self.store.get_task(task_id)


class PublishWorker:
    """Claims tasks and runs them through the orchestrator.

    Usage:
        worker = PublishWorker(store, orchestrator)
        worker.run_forever()
    """

    def __init__(
        self,
        store: WorkflowStore,
        orchestrator: PublishingOrchestrator,
        worker_id: Optional[str] = None,
        lease_seconds: Optional[int] = None,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.worker_id = worker_id or f"{socket.gethostname()}:{uuid.uuid4().hex[:8]}"
        self.lease_seconds = lease_seconds or settings.workflow.task_lease_seconds

    def run_once(self) -> Optional[PublishTask]:
        """Claim and execute one task. Returns the finished task, or None if idle."""
        task = self.store.claim_task(self.worker_id, self.lease_seconds)
        if task is None:
            return None

        logger.info(
            "Worker %s running task %s (%s, attempt %d)",
            self.worker_id,
            task.task_id,
            task.operation.value,
            task.attempts,
        )
        principal = Principal.from_dict(task.principal)
        try:
            if task.attempts > 1:
                self._recover_redelivered(principal, task)
            result = self._dispatch(principal, task)
        except WorkflowError as exc:
            return self._finish(task, TaskStatus.FAILED, last_error=f"[{exc.code}] {exc.message}", result=exc.to_dict())
        except Exception as exc:
            logger.exception("Task %s crashed: %s", task.task_id, exc)
            _, body = error_response(exc)
            return self._finish(task, TaskStatus.FAILED, last_error=f"[{body['code']}] {body['message']}", result=body)
        return self._finish(task, TaskStatus.SUCCEEDED, result=result)

    def run_forever(self, poll_seconds: Optional[float] = None, max_tasks: Optional[int] = None) -> int:
        """Process tasks until ``max_tasks`` have run (forever when None)."""
        poll = poll_seconds if poll_seconds is not None else settings.workflow.worker_poll_seconds
        processed = 0
        while max_tasks is None or processed < max_tasks:
            if self.run_once() is None:
                time.sleep(poll)
                continue
            processed += 1
        return processed

    def _recover_redelivered(self, principal: Principal, task: PublishTask) -> None:
        record = self.store.get_publishing(task.org_id, task.publishing_id)
        if record is None or record.status != PlatformStatus.PUBLISHING:
            return
        recovered = self.orchestrator.recover_interrupted(
            principal,
            task.publishing_id,
            stale_after_seconds=0,
        )
        if recovered:
            raise InvalidState(
                "Previous attempt was interrupted; record marked failed, retry required",
                code="INTERRUPTED",
            )

    def _dispatch(self, principal: Principal, task: PublishTask) -> dict[str, Any]:
        o = self.orchestrator
        draft = bool(task.payload.get("is_draft", False))
        strict = task.payload.get("strict_links")
        handlers: dict[TaskOperation, Callable[[], Any]] = {
            TaskOperation.PUBLISH: lambda: o.publish(principal, task.publishing_id, draft, strict),
            TaskOperation.REPUBLISH: lambda: o.republish(principal, task.publishing_id, draft, strict),
            TaskOperation.RETRY: lambda: o.retry_publish(principal, task.publishing_id, draft, strict),
            TaskOperation.UNPUBLISH: lambda: o.unpublish(principal, task.publishing_id),
            TaskOperation.DELETE_FROM_PLATFORM: lambda: o.delete_from_platform(principal, task.publishing_id),
            TaskOperation.DELETE_AND_FORGET: lambda: o.delete_and_forget(principal, task.publishing_id),
        }
        outcome = handlers[task.operation]()
        if hasattr(outcome, "to_response"):
            return outcome.to_response()
        return {"success": True, "result": outcome.to_row()}

    def _finish(self, task: PublishTask, status: TaskStatus, **fields: Any) -> PublishTask:
        finished = self.store.compare_and_set_task(
            task.task_id,
            [TaskStatus.RUNNING],
            {"status": status, "lease_expires_at": None, **fields},
        )
        if finished is None:
            logger.warning("Task %s was reclaimed before it finished", task.task_id)
            return task
        logger.info("Task %s %s", task.task_id, status.value)
        return finished
