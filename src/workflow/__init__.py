# Workflow — status machines, approvals, publishing orchestration and durable tasks
"""
Publishing workflow for multi-tenant content operations.

Generation queue and approval services gate content before it reaches a
platform; the PublishingOrchestrator drives each platform publishing record
through enhancement, link validation, item creation and site publish.
"""

from .approvals import ApprovalService
from .models import (
    ApprovalRecord,
    GenerationQueueItem,
    Integration,
    PlatformPublishingRecord,
    Post,
    PublishTask,
    TaskOperation,
    TaskStatus,
)
from .orchestrator import DeleteOutcome, PublishingOrchestrator, respond
from .permissions import Capability, Operation, Principal, authorize
from .queue import GenerationQueue
from .status import (
    ApprovalStatus,
    PlatformStatus,
    QueueStatus,
    SyncStatus,
    can_transition,
    can_transition_approval,
    can_transition_platform,
    can_transition_queue,
)
from .store import SQLiteWorkflowStore, SupabaseWorkflowStore, WorkflowStore, get_store
from .tasks import PublishWorker, TaskQueue

__all__ = [
    "ApprovalRecord",
    "ApprovalService",
    "ApprovalStatus",
    "Capability",
    "DeleteOutcome",
    "GenerationQueue",
    "GenerationQueueItem",
    "Integration",
    "Operation",
    "PlatformPublishingRecord",
    "PlatformStatus",
    "Post",
    "Principal",
    "PublishTask",
    "PublishWorker",
    "PublishingOrchestrator",
    "QueueStatus",
    "SQLiteWorkflowStore",
    "SupabaseWorkflowStore",
    "SyncStatus",
    "TaskOperation",
    "TaskQueue",
    "TaskStatus",
    "WorkflowStore",
    "authorize",
    "can_transition",
    "can_transition_approval",
    "can_transition_platform",
    "can_transition_queue",
    "get_store",
    "respond",
]
