"""
propauth: multi-dimensional authorization for commercial real-estate data.

propauth decides whether an authenticated identity may perform an action on
a resource. Decisions combine the identity's role with scope along three
dimensions: geographic region, property type, and an explicit per-resource
allow-list. Denials are audited, and bulk listings get a declarative filter
derived from the same rules.

Basic Usage:
    >>> from propauth import AccessController, Identity, Role, ResourceKind, Action
    >>>
    >>> controller = AccessController(provider=metadata_provider)
    >>>
    >>> broker = Identity(
    ...     identity_id="u_42",
    ...     role=Role.BROKER,
    ...     regions={"south_florida"},
    ...     property_types={"office"},
    ...     assigned_resource_ids={"B123"},
    ... )
    >>>
    >>> await controller.check_async(broker, ResourceKind.BUILDING, Action.READ, "B123")
    True
    >>>
    >>> # Guard a handler
    >>> @require_permission(controller, ResourceKind.BUILDING, Action.EXPORT,
    ...                     resource_id_param="building_id")
    ... async def export_building(building_id: str, identity=None):
    ...     ...
"""

__version__ = "0.1.0"

from propauth.audit import (
    AuditRecord,
    AuditSink,
    AuditStore,
    CallbackEscalationTransport,
    EscalationTransport,
    InMemoryAuditStore,
    JsonLinesAuditStore,
    LoggingEscalationTransport,
)
from propauth.caching import CacheStats, DecisionCache, DecisionStore
from propauth.config import AuditConfig, CacheConfig, EngineConfig
from propauth.core import AccessController
from propauth.decorators import filter_by_permission, require_permission
from propauth.engines import BasePolicyEngine, PolicyEngine, PolicyEvaluator
from propauth.exceptions import (
    INSUFFICIENT_PERMISSIONS,
    AuthenticationRequiredError,
    AuthorizationError,
    ConfigurationError,
    IdentityError,
    MetadataUnavailableError,
    PropAuthError,
    RuleSetError,
)
from propauth.filters import FilterDeriver, ScopeFilter
from propauth.policies import (
    DEFAULT_RULE_SET,
    AllowListPolicy,
    Condition,
    Rule,
    RuleSet,
)
from propauth.providers import (
    IdentityRecord,
    InMemoryMetadataProvider,
    MetadataProvider,
    load_identity,
)
from propauth.types import (
    ALL_REGIONS,
    ALL_TYPES,
    AccessRequest,
    Action,
    AuthorizationResult,
    Decision,
    DecisionKey,
    DecisionReason,
    Identity,
    ResourceKind,
    ResourceMetadata,
    Role,
)

__all__ = [
    "__version__",
    # Main entry point
    "AccessController",
    # Types
    "Identity",
    "Role",
    "ResourceKind",
    "Action",
    "ResourceMetadata",
    "AccessRequest",
    "Decision",
    "DecisionKey",
    "DecisionReason",
    "AuthorizationResult",
    "ALL_REGIONS",
    "ALL_TYPES",
    # Policies
    "Rule",
    "RuleSet",
    "Condition",
    "AllowListPolicy",
    "DEFAULT_RULE_SET",
    # Engines
    "PolicyEngine",
    "BasePolicyEngine",
    "PolicyEvaluator",
    # Caching
    "DecisionCache",
    "DecisionStore",
    "CacheStats",
    # Audit
    "AuditSink",
    "AuditRecord",
    "AuditStore",
    "InMemoryAuditStore",
    "JsonLinesAuditStore",
    "EscalationTransport",
    "LoggingEscalationTransport",
    "CallbackEscalationTransport",
    # Filters
    "ScopeFilter",
    "FilterDeriver",
    # Providers
    "MetadataProvider",
    "InMemoryMetadataProvider",
    "IdentityRecord",
    "load_identity",
    # Configuration
    "EngineConfig",
    "CacheConfig",
    "AuditConfig",
    # Decorators
    "require_permission",
    "filter_by_permission",
    # Exceptions
    "PropAuthError",
    "AuthorizationError",
    "AuthenticationRequiredError",
    "ConfigurationError",
    "RuleSetError",
    "IdentityError",
    "MetadataUnavailableError",
    "INSUFFICIENT_PERMISSIONS",
]
