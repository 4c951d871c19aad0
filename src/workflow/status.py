"""Status enumerations and legal-transition tables.

Queue, approval and platform publishing records each move through their own
state machine. Tables are total: a (current, target) pair that is not listed
is illegal. Helpers here are pure and never touch storage.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from src.common.errors import InvalidTransition


class QueueStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    GENERATED = "generated"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"


class PlatformStatus(str, Enum):
    PENDING = "pending"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"
    UNPUBLISHED = "unpublished"
    CANCELLED = "cancelled"


class SyncStatus(str, Enum):
    NOT_SYNCED = "not_synced"
    SYNCED = "synced"
    SYNC_FAILED = "sync_failed"


QUEUE_TRANSITIONS: dict[QueueStatus, frozenset[QueueStatus]] = {
    QueueStatus.PENDING: frozenset({QueueStatus.GENERATING, QueueStatus.CANCELLED}),
    QueueStatus.GENERATING: frozenset({
        QueueStatus.GENERATED,
        QueueStatus.FAILED,
        QueueStatus.CANCELLED,
    }),
    # generated -> generated is the "changes requested" reset
    QueueStatus.GENERATED: frozenset({
        QueueStatus.GENERATED,
        QueueStatus.APPROVED,
        QueueStatus.REJECTED,
        QueueStatus.FAILED,
        QueueStatus.CANCELLED,
    }),
    QueueStatus.APPROVED: frozenset({QueueStatus.PUBLISHED, QueueStatus.CANCELLED}),
    QueueStatus.REJECTED: frozenset(),
    QueueStatus.PUBLISHED: frozenset(),
    QueueStatus.FAILED: frozenset(),
    QueueStatus.CANCELLED: frozenset(),
}

APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.CHANGES_REQUESTED,
    }),
    # resubmission after edits
    ApprovalStatus.CHANGES_REQUESTED: frozenset({ApprovalStatus.PENDING}),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

PLATFORM_TRANSITIONS: dict[PlatformStatus, frozenset[PlatformStatus]] = {
    PlatformStatus.PENDING: frozenset({PlatformStatus.PUBLISHING, PlatformStatus.CANCELLED}),
    PlatformStatus.PUBLISHING: frozenset({PlatformStatus.PUBLISHED, PlatformStatus.FAILED}),
    PlatformStatus.PUBLISHED: frozenset({
        PlatformStatus.PUBLISHING,   # republish
        PlatformStatus.UNPUBLISHED,
        PlatformStatus.PENDING,      # deleted from platform
    }),
    PlatformStatus.UNPUBLISHED: frozenset({PlatformStatus.PUBLISHING, PlatformStatus.PENDING}),
    PlatformStatus.FAILED: frozenset({PlatformStatus.PENDING}),
    PlatformStatus.CANCELLED: frozenset(),
}

TERMINAL_QUEUE_STATUSES = frozenset(s for s, targets in QUEUE_TRANSITIONS.items() if not targets)
TERMINAL_APPROVAL_STATUSES = frozenset(s for s, targets in APPROVAL_TRANSITIONS.items() if not targets)

# Queue status an approval decision leaves the linked queue item in
APPROVAL_QUEUE_EFFECTS: dict[ApprovalStatus, QueueStatus] = {
    ApprovalStatus.APPROVED: QueueStatus.APPROVED,
    ApprovalStatus.REJECTED: QueueStatus.REJECTED,
    ApprovalStatus.CHANGES_REQUESTED: QueueStatus.GENERATED,
}

# Platform statuses from which the publish lock may be taken
PUBLISH_FROM = frozenset({PlatformStatus.PENDING})
REPUBLISH_FROM = frozenset({PlatformStatus.PUBLISHED, PlatformStatus.UNPUBLISHED})

_TABLES: dict[str, tuple[type[Enum], Mapping]] = {
    "queue": (QueueStatus, QUEUE_TRANSITIONS),
    "approval": (ApprovalStatus, APPROVAL_TRANSITIONS),
    "platform": (PlatformStatus, PLATFORM_TRANSITIONS),
}


def _coerce(enum_cls: type[Enum], value: str | Enum) -> Enum | None:
    try:
        return enum_cls(value)
    except ValueError:
        return None


def can_transition(kind: str, current: str | Enum, target: str | Enum) -> bool:
    """Whether ``current -> target`` is legal for the given state machine.

    Unknown statuses are never legal.
    """
    enum_cls, table = _TABLES[kind]
    cur = _coerce(enum_cls, current)
    tgt = _coerce(enum_cls, target)
    if cur is None or tgt is None:
        return False
    return tgt in table.get(cur, frozenset())


def allowed_targets(kind: str, current: str | Enum) -> list[str]:
    enum_cls, table = _TABLES[kind]
    cur = _coerce(enum_cls, current)
    if cur is None:
        return []
    return sorted(t.value for t in table.get(cur, frozenset()))


def ensure_transition(kind: str, current: str | Enum, target: str | Enum) -> None:
    """Raise InvalidTransition unless ``current -> target`` is legal."""
    if not can_transition(kind, current, target):
        raise InvalidTransition(
            kind,
            _value(current),
            _value(target),
            allowed_targets(kind, current),
        )


def can_transition_queue(current: str | QueueStatus, target: str | QueueStatus) -> bool:
    return can_transition("queue", current, target)


def can_transition_approval(current: str | ApprovalStatus, target: str | ApprovalStatus) -> bool:
    return can_transition("approval", current, target)


def can_transition_platform(current: str | PlatformStatus, target: str | PlatformStatus) -> bool:
    return can_transition("platform", current, target)


def _value(status: str | Enum) -> str:
    return status.value if isinstance(status, Enum) else str(status)
