"""
Rule-table policy evaluator for propauth.

This module provides the PolicyEvaluator, which combines a RuleSet lookup
with the scope predicates to decide one access attempt. It performs no I/O
and holds no mutable state, so it is safe to call from any number of
threads at once.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from propauth.engines.base import BasePolicyEngine
from propauth.policies.rules import DEFAULT_RULE_SET, RuleSet
from propauth.policies.scope import AllowListPolicy
from propauth.types import (
    AccessRequest,
    AuthorizationResult,
    DecisionReason,
    coerce_action,
    coerce_kind,
)

if TYPE_CHECKING:
    from propauth.types import Action, Identity, ResourceKind, ResourceMetadata

logger = logging.getLogger(__name__)


class PolicyEvaluator(BasePolicyEngine):
    """
    Evaluates access attempts against an immutable rule table.

    The decision is allow iff at least one rule for the identity's role and
    the requested resource kind lists the action and its condition passes.
    Everything else is denied: unknown roles, unknown kinds or actions,
    identities without a role, and missing metadata for scoped rules.

    Example:
        >>> evaluator = PolicyEvaluator()
        >>> evaluator.evaluate(
        ...     broker,
        ...     ResourceKind.BUILDING,
        ...     Action.READ,
        ...     "B123",
        ...     ResourceMetadata("south_florida", "office"),
        ... )
        True

    Configuration:
        - allow_list_policy: How an empty resource allow-list is treated.
            Defaults to AllowListPolicy.UNASSIGNED_IS_BROAD.
    """

    name = "rule_table"

    def __init__(
        self,
        rule_set: RuleSet | None = None,
        allow_list_policy: AllowListPolicy = AllowListPolicy.UNASSIGNED_IS_BROAD,
        config: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the evaluator.

        Args:
            rule_set: The rule table. Defaults to DEFAULT_RULE_SET.
            allow_list_policy: How an empty allow-list is treated.
            config: Engine configuration options.
        """
        super().__init__(config)
        self.rule_set = rule_set if rule_set is not None else DEFAULT_RULE_SET
        self.allow_list_policy = AllowListPolicy(
            self.get_config("allow_list_policy", allow_list_policy)
        )
        logger.debug(
            f"PolicyEvaluator initialized: {self.rule_set!r}, "
            f"allow_list_policy={self.allow_list_policy.value}"
        )

    def evaluate_result(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        metadata: ResourceMetadata | None = None,
    ) -> AuthorizationResult:
        """
        Evaluate an access attempt.

        The evaluation process:
        1. Deny if there is no identity
        2. Normalise the kind and action, denying unknown values
        3. Look up the rules for (role, kind)
        4. Allow on the first rule that lists the action and whose
           condition passes; otherwise deny

        Args:
            identity: The authenticated identity.
            resource_kind: Kind of resource targeted.
            action: Action being attempted.
            resource_id: The specific resource, if any.
            metadata: Scope tags of the resource.

        Returns:
            AuthorizationResult with the decision and its reason.
        """
        if identity is None:
            return AuthorizationResult.deny(DecisionReason.NO_IDENTITY)

        try:
            return self._evaluate(identity, resource_kind, action, resource_id, metadata)
        except Exception:
            logger.exception(
                f"Unexpected error evaluating {resource_kind}:{action} "
                f"for identity={identity.identity_id}, denying"
            )
            return AuthorizationResult.deny(DecisionReason.CONDITION_FAILED)

    def _evaluate(
        self,
        identity: Identity,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None,
        metadata: ResourceMetadata | None,
    ) -> AuthorizationResult:
        kind = coerce_kind(resource_kind)
        act = coerce_action(action)
        if kind is None or act is None:
            logger.debug(f"Unknown kind or action {resource_kind!r}:{action!r}, denying")
            return AuthorizationResult.deny(DecisionReason.NO_MATCHING_RULE)

        rules = self.rule_set.rules_for(identity.role, kind)
        request = AccessRequest(identity, kind, act, resource_id, metadata)
        evaluated: list[str] = []
        action_listed = False

        for rule in rules:
            evaluated.append(rule.describe())
            if act not in rule.actions:
                continue
            action_listed = True
            if rule.condition.evaluate(request, self.allow_list_policy):
                logger.debug(
                    f"Allowed: identity={identity.identity_id}, "
                    f"{kind.value}:{act.value}:{resource_id or ''} by {rule.describe()}"
                )
                return AuthorizationResult(
                    allowed=True,
                    reason=DecisionReason.RULE_MATCHED,
                    rules_evaluated=tuple(evaluated),
                    matched_rule=rule.describe(),
                )

        reason = (
            DecisionReason.CONDITION_FAILED if action_listed
            else DecisionReason.NO_MATCHING_RULE
        )
        logger.debug(
            f"Denied: identity={identity.identity_id}, "
            f"{kind.value}:{act.value}:{resource_id or ''} ({reason.value})"
        )
        return AuthorizationResult.deny(reason, tuple(evaluated))

    def explain(
        self,
        identity: Identity | None,
        resource_kind: ResourceKind | str,
        action: Action | str,
        resource_id: str | None = None,
        metadata: ResourceMetadata | None = None,
    ) -> dict[str, Any]:
        """
        Explain an authorization decision.

        Intended for debugging and operator tooling. The output names rules
        and conditions, so it must not be shown to end users.

        Returns:
            Dictionary containing explanation details.
        """
        result = self.evaluate_result(identity, resource_kind, action, resource_id, metadata)
        return {
            "decision": "ALLOW" if result.allowed else "DENY",
            "reason": result.reason.value,
            "matched_rule": result.matched_rule,
            "rules_evaluated": list(result.rules_evaluated),
            "identity": identity.to_dict() if identity else None,
            "request": {
                "resource_kind": str(getattr(resource_kind, "value", resource_kind)),
                "action": str(getattr(action, "value", action)),
                "resource_id": resource_id,
                "metadata": metadata.to_dict() if metadata else None,
            },
            "allow_list_policy": self.allow_list_policy.value,
        }
