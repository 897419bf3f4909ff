"""
Rule table for propauth.

This module holds the role-based capability table: which actions each role
may take on each kind of resource, optionally gated by a condition. There
are only allow rules. Anything not granted by some rule is denied, so roles
and resource kinds missing from the table fail closed without special
handling.

The table is an immutable value built once at startup and shared by
reference. It has no mutation API and needs no locking.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from propauth.exceptions import RuleSetError
from propauth.policies.conditions import Condition
from propauth.policies.scope import (
    HAS_PROPERTY_TYPE_ACCESS,
    HAS_REGION_ACCESS,
    HAS_RESOURCE_ACCESS,
    AllowListPolicy,
)
from propauth.types import Action, ResourceKind, Role, coerce_kind, coerce_role

if TYPE_CHECKING:
    from propauth.types import AccessRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    """
    Grants a role a set of actions on one kind of resource.

    Attributes:
        role: The role the rule applies to.
        resource_kind: The kind of resource the rule covers.
        actions: Actions the rule allows.
        condition: Guard that must pass for the rule to apply.

    Example:
        >>> Rule(
        ...     Role.BROKER,
        ...     ResourceKind.BUILDING,
        ...     frozenset({Action.READ, Action.EXPORT}),
        ...     Condition.named("has_resource_access"),
        ... )
    """

    role: Role
    resource_kind: ResourceKind
    actions: frozenset[Action]
    condition: Condition = field(default_factory=Condition.unconditional)

    def __post_init__(self) -> None:
        object.__setattr__(self, "actions", frozenset(self.actions))

    def permits(
        self,
        request: AccessRequest,
        allow_list_policy: AllowListPolicy = AllowListPolicy.UNASSIGNED_IS_BROAD,
    ) -> bool:
        """Check if this rule allows the request."""
        if request.action not in self.actions:
            return False
        return self.condition.evaluate(request, allow_list_policy)

    def describe(self) -> str:
        actions = ",".join(sorted(a.value for a in self.actions))
        return f"{self.role.value}:{self.resource_kind.value}[{actions}] if {self.condition}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "role": self.role.value,
            "resource_kind": self.resource_kind.value,
            "actions": sorted(a.value for a in self.actions),
            "condition": self.condition.to_value(),
        }


class RuleModel(BaseModel):
    """Validated wire form of a single rule."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    role: Role
    resource_kind: ResourceKind
    actions: list[Action]
    condition: list[str] | None = None

    @field_validator("condition", mode="before")
    @classmethod
    def _single_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    def to_rule(self) -> Rule:
        return Rule(
            role=self.role,
            resource_kind=self.resource_kind,
            actions=frozenset(self.actions),
            condition=Condition.from_value(self.condition),
        )


class RuleSetModel(BaseModel):
    """Validated wire form of a rule table."""

    model_config = ConfigDict(extra="forbid")

    rules: list[RuleModel]


class RuleSet:
    """
    Immutable table of allow rules, indexed by (role, resource kind).

    Example:
        >>> rule_set = RuleSet([
        ...     Rule(Role.VIEWER, ResourceKind.BUILDING, {Action.READ},
        ...          Condition.named("has_resource_access")),
        ... ])
        >>> rule_set.rules_for(Role.VIEWER, ResourceKind.BUILDING)
        (Rule(...),)
        >>> rule_set.rules_for(Role.VIEWER, ResourceKind.TENANT)
        ()

    Raises:
        RuleSetError: If a rule refers to an unknown condition.
    """

    __slots__ = ("_rules", "_index")

    def __init__(self, rules: Iterable[Rule]) -> None:
        rules = tuple(rules)
        for rule in rules:
            unknown = rule.condition.unknown_names()
            if unknown:
                raise RuleSetError("known condition names", received=unknown)

        index: dict[tuple[Role, ResourceKind], list[Rule]] = {}
        for rule in rules:
            index.setdefault((rule.role, rule.resource_kind), []).append(rule)

        self._rules = rules
        self._index: Mapping[tuple[Role, ResourceKind], tuple[Rule, ...]] = MappingProxyType(
            {key: tuple(value) for key, value in index.items()}
        )
        logger.debug(f"RuleSet built with {len(rules)} rules")

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def rules_for(self, role: Role | str | None, resource_kind: ResourceKind | str) -> tuple[Rule, ...]:
        """
        Get the rules applying to a role on a kind of resource.

        Unknown roles and kinds simply have no rules.
        """
        role = coerce_role(role)
        kind = coerce_kind(resource_kind)
        if role is None or kind is None:
            return ()
        return self._index.get((role, kind), ())

    def kinds_with_condition(self, role: Role | str | None, condition_name: str) -> frozenset[ResourceKind]:
        """Get the resource kinds whose rules for role are gated by condition_name."""
        role = coerce_role(role)
        return frozenset(
            kind
            for (rule_role, kind), rules in self._index.items()
            if rule_role is role
            and any(condition_name in rule.condition.names for rule in rules)
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"rules": [rule.to_dict() for rule in self._rules]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleSet:
        """
        Load a rule table from a dictionary (for example parsed JSON).

        Args:
            data: A mapping with a "rules" list, as produced by to_dict().

        Returns:
            A new RuleSet.

        Raises:
            RuleSetError: If the payload does not validate.
        """
        try:
            model = RuleSetModel.model_validate(data)
        except ValidationError as e:
            raise RuleSetError("a valid rule table", received=e.errors()) from e
        return cls(rule.to_rule() for rule in model.rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self._rules)

    def __repr__(self) -> str:
        return f"RuleSet(rules={len(self._rules)})"


def _build_default_rules() -> list[Rule]:
    all_actions = frozenset(Action)
    scoped = Condition.named(HAS_RESOURCE_ACCESS)
    region_and_type = Condition.named(HAS_REGION_ACCESS, HAS_PROPERTY_TYPE_ACCESS)

    # Admin rows are listed kind by kind; a kind added later stays closed
    # until rows are added for it here.
    admin_kinds = (
        ResourceKind.BUILDING,
        ResourceKind.SUITE,
        ResourceKind.TENANT,
        ResourceKind.MARKET,
        ResourceKind.ANALYTICS,
        ResourceKind.EXPORT,
        ResourceKind.ADMIN,
    )
    rules = [Rule(Role.ADMIN, kind, all_actions) for kind in admin_kinds]

    rules += [
        Rule(Role.RESEARCHER, ResourceKind.BUILDING,
             frozenset({Action.READ, Action.UPDATE, Action.EXPORT}), region_and_type),
        Rule(Role.RESEARCHER, ResourceKind.SUITE,
             frozenset({Action.READ, Action.CREATE, Action.UPDATE}), scoped),
        Rule(Role.RESEARCHER, ResourceKind.TENANT,
             frozenset({Action.READ, Action.CREATE, Action.UPDATE})),

        Rule(Role.BROKER, ResourceKind.BUILDING,
             frozenset({Action.READ, Action.EXPORT}), scoped),
        Rule(Role.BROKER, ResourceKind.SUITE, frozenset({Action.READ}), scoped),
        Rule(Role.BROKER, ResourceKind.TENANT, frozenset({Action.READ})),

        Rule(Role.VIEWER, ResourceKind.BUILDING, frozenset({Action.READ}), scoped),
        Rule(Role.VIEWER, ResourceKind.SUITE, frozenset({Action.READ}), scoped),
    ]
    return rules


DEFAULT_RULE_SET = RuleSet(_build_default_rules())
