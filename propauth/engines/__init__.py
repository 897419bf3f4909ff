"""
Policy engines for propauth.

- PolicyEngine: protocol the access controller depends on
- BasePolicyEngine: convenience base class
- PolicyEvaluator: built-in evaluator over an immutable RuleSet

Quick Start:
    >>> from propauth.engines import PolicyEvaluator
    >>> evaluator = PolicyEvaluator()
    >>> evaluator.evaluate(identity, "building", "read", "B123", metadata)
"""

from propauth.engines.base import BasePolicyEngine, PolicyEngine
from propauth.engines.rule_engine import PolicyEvaluator

__all__ = [
    "PolicyEngine",
    "BasePolicyEngine",
    "PolicyEvaluator",
]
