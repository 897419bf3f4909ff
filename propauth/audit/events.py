"""
Audit record definitions for propauth.

Every denied access attempt produces one AuditRecord. Records are
append-only: once built they are handed to a store and never modified.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from propauth.types import AccessRequest, Decision


class EventType(Enum):
    """Types of audit events."""
    PERMISSION_DENIED = "permission_denied"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"


def _utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditRecord:
    """
    A denied access attempt.

    Attributes:
        identity_id: The identity that was denied.
        identity_label: Email or display name of the identity.
        role: The identity's role at the time, if any.
        action: The attempted action.
        resource_kind: The targeted kind of resource.
        resource_id: The targeted resource, if any.
        reason: Internal reason for the denial.
        resource_metadata: Scope tags of the resource, if known.
        suspicious: Whether the denial was flagged for escalation.
        allowed: Always False; kept so records are self-describing.
        record_id: Unique identifier for this record.
        timestamp: When the denial happened (UTC).
    """

    identity_id: str
    identity_label: str
    role: str | None
    action: str
    resource_kind: str
    resource_id: str | None = None
    reason: str | None = None
    resource_metadata: dict[str, Any] | None = None
    suspicious: bool = False
    allowed: bool = False
    record_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=_utc_now)

    @property
    def event_type(self) -> EventType:
        return EventType.SUSPICIOUS_ACTIVITY if self.suspicious else EventType.PERMISSION_DENIED

    @classmethod
    def from_request(
        cls,
        request: AccessRequest,
        decision: Decision,
        suspicious: bool = False,
    ) -> AuditRecord:
        """Build a record for a denied request."""
        identity = request.identity
        return cls(
            identity_id=identity.identity_id if identity else "",
            identity_label=identity.label if identity else "",
            role=identity.role.value if identity and identity.role else None,
            action=request.action_name,
            resource_kind=request.kind_name,
            resource_id=request.resource_id,
            reason=decision.reason.value,
            resource_metadata=request.metadata.to_dict() if request.metadata else None,
            suspicious=suspicious,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "record_id": self.record_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "identity_id": self.identity_id,
            "identity_label": self.identity_label,
            "role": self.role,
            "action": self.action,
            "resource_kind": self.resource_kind,
            "resource_id": self.resource_id,
            "allowed": self.allowed,
            "reason": self.reason,
            "resource_metadata": self.resource_metadata,
            "suspicious": self.suspicious,
        }

    def to_json(self) -> str:
        """Convert to a single-line JSON string with sorted keys."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditRecord:
        """Rebuild a record from its to_dict() form."""
        return cls(
            identity_id=data["identity_id"],
            identity_label=data.get("identity_label", ""),
            role=data.get("role"),
            action=data["action"],
            resource_kind=data["resource_kind"],
            resource_id=data.get("resource_id"),
            reason=data.get("reason"),
            resource_metadata=data.get("resource_metadata"),
            suspicious=data.get("suspicious", False),
            record_id=data["record_id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )
