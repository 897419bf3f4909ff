"""
Core type definitions for propauth.

This module defines the fundamental data structures used throughout the
library: the identity presented by the session layer, the metadata snapshot
describing a resource, the access request being decided, and the decision
produced for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, NamedTuple

# Wildcard scope tags. Holding one is equivalent to universal access along
# that dimension.
ALL_REGIONS = "all_regions"
ALL_TYPES = "all_types"

# Inactivity window after which the session layer drops an identity.
SESSION_INACTIVITY_WINDOW = timedelta(minutes=30)


def _utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Roles an identity can hold."""

    ADMIN = "admin"
    RESEARCHER = "researcher"
    BROKER = "broker"
    VIEWER = "viewer"


class ResourceKind(str, Enum):
    """Kinds of resources guarded by the engine."""

    BUILDING = "building"
    SUITE = "suite"
    TENANT = "tenant"
    MARKET = "market"
    ANALYTICS = "analytics"
    EXPORT = "export"
    ADMIN = "admin"  # Privileged administrative surface


class Action(str, Enum):
    """Actions that can be attempted on a resource."""

    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXPORT = "export"
    SHARE = "share"


class DecisionReason(str, Enum):
    """Why a decision came out the way it did. Never shown to end users."""

    RULE_MATCHED = "rule_matched"
    NO_MATCHING_RULE = "no_matching_rule"
    CONDITION_FAILED = "condition_failed"
    METADATA_UNAVAILABLE = "metadata_unavailable"
    NO_IDENTITY = "no_identity"


def _coerce_enum(enum_cls: type[Enum], value: Any) -> Any:
    """Return the enum member for value, or None if it is not a member."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def coerce_role(value: Any) -> Role | None:
    """Convert a role name or member to a Role, or None if unknown."""
    return _coerce_enum(Role, value)


def coerce_kind(value: Any) -> ResourceKind | None:
    """Convert a resource kind name or member to a ResourceKind."""
    return _coerce_enum(ResourceKind, value)


def coerce_action(value: Any) -> Action | None:
    """Convert an action name or member to an Action."""
    return _coerce_enum(Action, value)


@dataclass(frozen=True)
class Identity:
    """
    An already-authenticated identity whose access is being decided.

    Identities are produced by the session layer and trusted as-is. The
    scope sets are normalised to frozensets so an identity can be shared
    between threads without copying.

    Attributes:
        identity_id: Stable identifier, also the cache partition key.
        role: The identity's role, or None for an identity with no role
            (which is denied everything).
        label: Email or display name recorded in audit records.
        regions: Region tags the identity may access.
        property_types: Property-type tags the identity may access.
        assigned_resource_ids: Explicit per-resource allow-list.
        universal_access: Unrestricted along every scope dimension.
        last_activity_at: Last request time, used by the session layer.

    Example:
        >>> broker = Identity(
        ...     identity_id="u_42",
        ...     role=Role.BROKER,
        ...     regions={"south_florida"},
        ...     property_types={"office"},
        ...     assigned_resource_ids={"B123"},
        ... )
    """

    identity_id: str
    role: Role | None = None
    label: str = ""
    regions: frozenset[str] = field(default_factory=frozenset)
    property_types: frozenset[str] = field(default_factory=frozenset)
    assigned_resource_ids: frozenset[str] = field(default_factory=frozenset)
    universal_access: bool = False
    last_activity_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", coerce_role(self.role))
        object.__setattr__(self, "regions", frozenset(self.regions or ()))
        object.__setattr__(self, "property_types", frozenset(self.property_types or ()))
        object.__setattr__(
            self, "assigned_resource_ids", frozenset(self.assigned_resource_ids or ())
        )

    @property
    def is_admin(self) -> bool:
        """Check if the identity holds the Admin role."""
        return self.role is Role.ADMIN

    def has_all_regions(self) -> bool:
        """Check for unrestricted region scope."""
        return self.universal_access or ALL_REGIONS in self.regions

    def has_all_property_types(self) -> bool:
        """Check for unrestricted property-type scope."""
        return self.universal_access or ALL_TYPES in self.property_types

    def is_session_expired(
        self,
        now: datetime | None = None,
        window: timedelta = SESSION_INACTIVITY_WINDOW,
    ) -> bool:
        """
        Check whether the inactivity window has elapsed.

        Expiry is enforced by the session layer; this helper only answers
        the question for it.

        Args:
            now: Reference time (defaults to the current UTC time).
            window: Allowed inactivity.

        Returns:
            True if the identity has been idle longer than window.
        """
        now = now or _utc_now()
        return now - self.last_activity_at > window

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "identity_id": self.identity_id,
            "role": self.role.value if self.role else None,
            "label": self.label,
            "regions": sorted(self.regions),
            "property_types": sorted(self.property_types),
            "assigned_resource_ids": sorted(self.assigned_resource_ids),
            "universal_access": self.universal_access,
            "last_activity_at": self.last_activity_at.isoformat(),
        }


@dataclass(frozen=True)
class ResourceMetadata:
    """
    Scope tags of one resource, as reported by the data layer.

    Treated as an immutable snapshot for the duration of one evaluation.
    Either tag may be missing, in which case scope checks on that dimension
    fail closed.
    """

    region_tag: str | None = None
    property_type_tag: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceMetadata:
        """Build from a data-layer row, accepting camelCase column names."""
        return cls(
            region_tag=data.get("region_tag", data.get("regionId")),
            property_type_tag=data.get("property_type_tag", data.get("propertyType")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "region_tag": self.region_tag,
            "property_type_tag": self.property_type_tag,
        }


class DecisionKey(NamedTuple):
    """Cache key of one decision."""

    identity_id: str
    resource_kind: str
    action: str
    resource_id: str = ""


@dataclass(frozen=True)
class Decision:
    """
    The outcome of evaluating one access attempt.

    Attributes:
        allowed: Whether the attempt is permitted.
        computed_at: Cache clock reading taken when the computation started.
        reason: Internal explanation, for logs only.
    """

    allowed: bool
    computed_at: float
    reason: DecisionReason = DecisionReason.RULE_MATCHED


@dataclass(frozen=True)
class AccessRequest:
    """
    One access attempt: who wants to do what to which resource.

    Example:
        >>> request = AccessRequest(
        ...     identity=broker,
        ...     resource_kind=ResourceKind.BUILDING,
        ...     action=Action.READ,
        ...     resource_id="B123",
        ...     metadata=ResourceMetadata("south_florida", "office"),
        ... )
        >>> request.cache_key
        DecisionKey(identity_id='u_42', resource_kind='building', action='read', resource_id='B123')
    """

    identity: Identity | None
    resource_kind: ResourceKind | str
    action: Action | str
    resource_id: str | None = None
    metadata: ResourceMetadata | None = None

    @property
    def kind_name(self) -> str:
        kind = self.resource_kind
        return kind.value if isinstance(kind, ResourceKind) else str(kind)

    @property
    def action_name(self) -> str:
        action = self.action
        return action.value if isinstance(action, Action) else str(action)

    @property
    def cache_key(self) -> DecisionKey:
        """The key under which this request's decision is cached."""
        identity_id = self.identity.identity_id if self.identity else ""
        return DecisionKey(
            identity_id=identity_id,
            resource_kind=self.kind_name,
            action=self.action_name,
            resource_id=self.resource_id or "",
        )


@dataclass(frozen=True)
class AuthorizationResult:
    """
    Detailed result of an evaluation, for logging and explain().

    Attributes:
        allowed: Whether the action is authorized.
        reason: Why the decision was reached.
        rules_evaluated: Descriptions of the rules that were consulted.
        matched_rule: Description of the rule that granted access, if any.
    """

    allowed: bool
    reason: DecisionReason
    rules_evaluated: tuple[str, ...] = ()
    matched_rule: str | None = None

    @classmethod
    def deny(
        cls,
        reason: DecisionReason,
        rules: tuple[str, ...] = (),
    ) -> AuthorizationResult:
        """Create a denied result."""
        return cls(allowed=False, reason=reason, rules_evaluated=rules)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "allowed": self.allowed,
            "reason": self.reason.value,
            "rules_evaluated": list(self.rules_evaluated),
            "matched_rule": self.matched_rule,
        }
