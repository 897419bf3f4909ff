"""
Policies for propauth.

This package holds the static side of authorization: the scope predicates,
the conditions that reference them by name, and the rule table mapping
(role, resource kind) to allowed actions.

Example:
    >>> from propauth.policies import DEFAULT_RULE_SET, Role, ResourceKind
    >>> [r.describe() for r in DEFAULT_RULE_SET.rules_for(Role.BROKER, ResourceKind.BUILDING)]
    ['broker:building[export,read] if has_resource_access']
"""

from propauth.policies.conditions import Condition, ConditionKind
from propauth.policies.rules import (
    DEFAULT_RULE_SET,
    Rule,
    RuleModel,
    RuleSet,
    RuleSetModel,
)
from propauth.policies.scope import (
    HAS_PROPERTY_TYPE_ACCESS,
    HAS_REGION_ACCESS,
    HAS_RESOURCE_ACCESS,
    SCOPE_PREDICATES,
    AllowListPolicy,
    allow_list_permits,
    has_property_type_access,
    has_region_access,
    has_resource_access,
)
from propauth.types import Action, ResourceKind, Role

__all__ = [
    # Rules
    "Rule",
    "RuleSet",
    "RuleModel",
    "RuleSetModel",
    "DEFAULT_RULE_SET",
    # Conditions
    "Condition",
    "ConditionKind",
    # Scope predicates
    "AllowListPolicy",
    "SCOPE_PREDICATES",
    "HAS_REGION_ACCESS",
    "HAS_PROPERTY_TYPE_ACCESS",
    "HAS_RESOURCE_ACCESS",
    "has_region_access",
    "has_property_type_access",
    "has_resource_access",
    "allow_list_permits",
    # Re-exported enums
    "Role",
    "ResourceKind",
    "Action",
]
