"""Capability checks for workflow operations.

Roles map to capabilities once, here. Operations declare the capabilities
they need, and callers pass an explicit Principal (user or service identity
bound to one organization) through the whole call chain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from src.common.errors import Forbidden, Unauthenticated


class Capability(str, Enum):
    CONTENT_CREATE = "content.create"
    CONTENT_MODERATE = "content.moderate"
    CONTENT_PUBLISH = "content.publish"
    CONTENT_DELETE = "content.delete"


class Operation(str, Enum):
    SUBMIT = "submit"
    REVIEW = "review"
    PUBLISH = "publish"
    REPUBLISH = "republish"
    RETRY = "retry"
    UNPUBLISH = "unpublish"
    DELETE = "delete"
    CANCEL = "cancel"
    RECOVER = "recover"


_ALL = frozenset(Capability)

ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    "system_admin": _ALL,
    "super_admin": _ALL,
    "admin": _ALL,
    "manager": _ALL,
    "editor": frozenset({
        Capability.CONTENT_CREATE,
        Capability.CONTENT_MODERATE,
        Capability.CONTENT_PUBLISH,
    }),
    "writer": frozenset({Capability.CONTENT_CREATE}),
}

OPERATION_REQUIREMENTS: dict[Operation, frozenset[Capability]] = {
    Operation.SUBMIT: frozenset({Capability.CONTENT_CREATE}),
    Operation.REVIEW: frozenset({Capability.CONTENT_MODERATE}),
    Operation.PUBLISH: frozenset({Capability.CONTENT_PUBLISH}),
    Operation.REPUBLISH: frozenset({Capability.CONTENT_PUBLISH}),
    Operation.RETRY: frozenset({Capability.CONTENT_PUBLISH}),
    Operation.CANCEL: frozenset({Capability.CONTENT_PUBLISH}),
    Operation.UNPUBLISH: frozenset({Capability.CONTENT_PUBLISH, Capability.CONTENT_DELETE}),
    Operation.DELETE: frozenset({Capability.CONTENT_DELETE}),
    Operation.RECOVER: frozenset({Capability.CONTENT_PUBLISH}),
}


@dataclass(frozen=True)
class Principal:
    """Caller identity: a user acting in one organization, or a named service."""

    user_id: str
    org_id: str
    role: str = ""
    permissions: frozenset[str] = field(default_factory=frozenset)
    is_service: bool = False

    @classmethod
    def service(
        cls,
        name: str,
        org_id: str,
        capabilities: Iterable[Capability | str] = (),
    ) -> Principal:
        """Build a service identity. The organization is always explicit."""
        if not org_id:
            raise Unauthenticated("Service principal requires an organization id")
        return cls(
            user_id=f"service:{name}",
            org_id=org_id,
            permissions=frozenset(Capability(c).value for c in capabilities),
            is_service=True,
        )

    @property
    def capabilities(self) -> frozenset[Capability]:
        granted = {Capability(p) for p in self.permissions if p in _CAPABILITY_VALUES}
        return ROLE_CAPABILITIES.get(self.role, frozenset()) | granted

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "org_id": self.org_id,
            "role": self.role,
            "permissions": sorted(self.permissions),
            "is_service": self.is_service,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Principal:
        return cls(
            user_id=data["user_id"],
            org_id=data["org_id"],
            role=data.get("role", ""),
            permissions=frozenset(data.get("permissions", [])),
            is_service=bool(data.get("is_service", False)),
        )


_CAPABILITY_VALUES = frozenset(c.value for c in Capability)


def authorize(principal: Principal | None, operation: Operation) -> Principal:
    """Check that ``principal`` may perform ``operation``.

    Raises:
        Unauthenticated: No principal, or one without user or organization.
        Forbidden: The principal lacks a required capability.
    """
    if principal is None or not principal.user_id or not principal.org_id:
        raise Unauthenticated("Authentication required")

    missing = OPERATION_REQUIREMENTS[operation] - principal.capabilities
    if missing:
        raise Forbidden(
            f"Insufficient permissions to {operation.value}: "
            f"requires {', '.join(sorted(c.value for c in missing))}",
            details={"operation": operation.value, "missing": sorted(c.value for c in missing)},
        )
    return principal
