"""
Tests for the rule-table policy evaluator.
"""

import itertools

import pytest

from propauth.engines import BasePolicyEngine, PolicyEngine, PolicyEvaluator
from propauth.policies import (
    HAS_RESOURCE_ACCESS,
    AllowListPolicy,
    Condition,
    Rule,
    RuleSet,
)
from propauth.types import (
    Action,
    DecisionReason,
    Identity,
    ResourceKind,
    ResourceMetadata,
    Role,
)


@pytest.fixture
def evaluator() -> PolicyEvaluator:
    return PolicyEvaluator()


@pytest.fixture
def strict_evaluator() -> PolicyEvaluator:
    return PolicyEvaluator(allow_list_policy=AllowListPolicy.UNASSIGNED_IS_EMPTY)


class TestAdmin:
    """Admins are allowed everything."""

    @pytest.mark.parametrize(
        "kind,action",
        list(itertools.product(ResourceKind, Action)),
    )
    def test_admin_allowed_everywhere(self, evaluator, admin, kind, action):
        assert evaluator.evaluate(admin, kind, action, "X1", None)

    def test_admin_allowed_with_foreign_metadata(self, evaluator, admin, north_office):
        assert evaluator.evaluate(admin, ResourceKind.BUILDING, Action.DELETE, "N001", north_office)

    def test_admin_without_resource_id(self, evaluator, admin):
        assert evaluator.evaluate(admin, ResourceKind.ADMIN, Action.UPDATE)


class TestBroker:
    """The broker scenarios from the rule table."""

    def test_assigned_building_in_scope(self, evaluator, broker, south_office):
        assert evaluator.evaluate(broker, ResourceKind.BUILDING, Action.READ, "B123", south_office)

    def test_region_mismatch(self, evaluator, broker):
        metadata = ResourceMetadata(region_tag="carolinas", property_type_tag="office")
        assert not evaluator.evaluate(broker, ResourceKind.BUILDING, Action.READ, "B999", metadata)

    def test_action_not_granted(self, evaluator, broker, south_office):
        assert not evaluator.evaluate(broker, ResourceKind.BUILDING, Action.DELETE, "B123", south_office)

    def test_unassigned_building(self, evaluator, broker, south_office):
        assert not evaluator.evaluate(broker, ResourceKind.BUILDING, Action.READ, "B789", south_office)

    def test_export_allowed(self, evaluator, broker, south_office):
        assert evaluator.evaluate(broker, ResourceKind.BUILDING, Action.EXPORT, "B456", south_office)

    def test_tenant_read_is_unconditional(self, evaluator, broker):
        assert evaluator.evaluate(broker, ResourceKind.TENANT, Action.READ, "T1", None)
        assert not evaluator.evaluate(broker, ResourceKind.TENANT, Action.UPDATE, "T1", None)

    def test_missing_metadata_denies(self, evaluator, broker):
        assert not evaluator.evaluate(broker, ResourceKind.BUILDING, Action.READ, "B123", None)

    def test_string_inputs(self, evaluator, broker, south_office):
        assert evaluator.evaluate(broker, "building", "read", "B123", south_office)


class TestResearcher:
    """Researchers are scoped by region and type on buildings, without an allow-list."""

    def test_any_building_in_scope(self, evaluator, researcher, south_office):
        assert evaluator.evaluate(researcher, ResourceKind.BUILDING, Action.UPDATE, "B789", south_office)

    def test_out_of_scope_type(self, evaluator, researcher, south_retail):
        assert not evaluator.evaluate(researcher, ResourceKind.BUILDING, Action.READ, "R001", south_retail)

    def test_tenant_create(self, evaluator, researcher):
        assert evaluator.evaluate(researcher, ResourceKind.TENANT, Action.CREATE)

    def test_no_delete_anywhere(self, evaluator, researcher, south_office):
        for kind in ResourceKind:
            assert not evaluator.evaluate(researcher, kind, Action.DELETE, "X", south_office)


class TestUniversalAccess:
    """Universal access lifts scope, not role."""

    def test_scoped_rules_pass_without_metadata(self, evaluator, universal_viewer):
        assert evaluator.evaluate(universal_viewer, ResourceKind.BUILDING, Action.READ, "ANY", None)

    def test_role_still_limits_actions(self, evaluator, universal_viewer):
        assert not evaluator.evaluate(universal_viewer, ResourceKind.BUILDING, Action.UPDATE, "ANY", None)
        assert not evaluator.evaluate(universal_viewer, ResourceKind.ADMIN, Action.READ)

    def test_wildcards_match_universal(self, evaluator, wildcard_viewer):
        metadata = ResourceMetadata("panhandle", "industrial")
        assert evaluator.evaluate(wildcard_viewer, ResourceKind.SUITE, Action.READ, "S1", metadata)


class TestDefaultDeny:
    """Anything not granted is denied."""

    def test_no_rules_for_role_and_kind(self, evaluator, viewer, south_retail):
        result = evaluator.evaluate_result(viewer, ResourceKind.TENANT, Action.READ, "T1", south_retail)
        assert not result.allowed
        assert result.reason is DecisionReason.NO_MATCHING_RULE
        assert result.rules_evaluated == ()

    def test_no_identity(self, evaluator):
        result = evaluator.evaluate_result(None, ResourceKind.BUILDING, Action.READ)
        assert not result.allowed
        assert result.reason is DecisionReason.NO_IDENTITY

    def test_roleless_identity(self, evaluator, roleless, south_office):
        for kind, action in itertools.product(ResourceKind, Action):
            assert not evaluator.evaluate(roleless, kind, action, "B1", south_office)

    def test_empty_identity(self, evaluator):
        identity = Identity(identity_id="")
        assert not evaluator.evaluate(identity, ResourceKind.BUILDING, Action.READ)

    def test_unknown_kind_and_action(self, evaluator, admin):
        assert not evaluator.evaluate(admin, "parking_lot", Action.READ)
        assert not evaluator.evaluate(admin, ResourceKind.BUILDING, "teleport")

    def test_condition_failed_reason(self, evaluator, broker, north_office):
        result = evaluator.evaluate_result(broker, ResourceKind.BUILDING, Action.READ, "B123", north_office)
        assert result.reason is DecisionReason.CONDITION_FAILED
        assert result.rules_evaluated == ("broker:building[export,read] if has_resource_access",)

    def test_new_kind_without_rules(self, broker):
        rule_set = RuleSet([Rule(Role.BROKER, ResourceKind.BUILDING, {Action.READ})])
        evaluator = PolicyEvaluator(rule_set)
        assert evaluator.evaluate(broker, ResourceKind.BUILDING, Action.READ)
        assert not evaluator.evaluate(broker, ResourceKind.MARKET, Action.READ)


class TestAllowListPolicy:
    """Empty allow-lists under both policies."""

    def test_broad_scopes_by_region_and_type(self, evaluator, unassigned_broker, south_office):
        assert evaluator.evaluate(unassigned_broker, ResourceKind.BUILDING, Action.READ, "B789", south_office)

    def test_strict_denies_specific_resources(self, strict_evaluator, unassigned_broker, south_office):
        assert not strict_evaluator.evaluate(
            unassigned_broker, ResourceKind.BUILDING, Action.READ, "B789", south_office
        )

    def test_strict_keeps_assigned_resources(self, strict_evaluator, broker, south_office):
        assert strict_evaluator.evaluate(broker, ResourceKind.BUILDING, Action.READ, "B123", south_office)

    def test_policy_from_config(self, unassigned_broker, south_office):
        evaluator = PolicyEvaluator(config={"allow_list_policy": "unassigned_is_empty"})
        assert evaluator.allow_list_policy is AllowListPolicy.UNASSIGNED_IS_EMPTY
        assert not evaluator.evaluate(
            unassigned_broker, ResourceKind.BUILDING, Action.READ, "B789", south_office
        )


class TestEvaluatorBehaviour:
    """General properties of evaluate()."""

    def test_idempotent(self, evaluator, broker, south_office, north_office):
        cases = [
            (ResourceKind.BUILDING, Action.READ, "B123", south_office),
            (ResourceKind.BUILDING, Action.READ, "B123", north_office),
            (ResourceKind.SUITE, Action.READ, "S1", south_office),
            (ResourceKind.ADMIN, Action.READ, None, None),
        ]
        for case in cases:
            first = evaluator.evaluate(broker, *case)
            assert all(evaluator.evaluate(broker, *case) == first for _ in range(5))

    def test_any_matching_rule_allows(self, viewer, south_retail, south_office):
        rule_set = RuleSet([
            Rule(Role.VIEWER, ResourceKind.MARKET, {Action.READ}, Condition.named(HAS_RESOURCE_ACCESS)),
            Rule(Role.VIEWER, ResourceKind.MARKET, {Action.READ}),
        ])
        evaluator = PolicyEvaluator(rule_set)
        assert evaluator.evaluate(viewer, ResourceKind.MARKET, Action.READ, "M1", south_office)

    def test_never_raises(self, evaluator, broker, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(evaluator.rule_set.__class__, "rules_for", explode)
        result = evaluator.evaluate_result(broker, ResourceKind.BUILDING, Action.READ)
        assert not result.allowed
        assert result.reason is DecisionReason.CONDITION_FAILED

    def test_matched_rule_reported(self, evaluator, broker, south_office):
        result = evaluator.evaluate_result(broker, ResourceKind.BUILDING, Action.READ, "B123", south_office)
        assert result.allowed
        assert result.reason is DecisionReason.RULE_MATCHED
        assert result.matched_rule == "broker:building[export,read] if has_resource_access"

    def test_explain(self, evaluator, broker, south_office):
        explanation = evaluator.explain(broker, ResourceKind.BUILDING, Action.DELETE, "B123", south_office)
        assert explanation["decision"] == "DENY"
        assert explanation["reason"] == "no_matching_rule"
        assert explanation["request"]["resource_kind"] == "building"
        assert explanation["request"]["metadata"] == south_office.to_dict()
        assert explanation["allow_list_policy"] == "unassigned_is_broad"

    def test_protocol(self, evaluator):
        assert isinstance(evaluator, PolicyEngine)
        assert isinstance(evaluator, BasePolicyEngine)
        assert evaluator.name == "rule_table"
