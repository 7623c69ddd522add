"""Rules: rule model, built-in rule set, registry and external rule discovery."""

from nestdoctor.rules import architecture, correctness, performance, security
from nestdoctor.rules.base import Rule, RuleMeta, coerce_rule, rule
from nestdoctor.rules.registry import (
    CUSTOM_PREFIX,
    RuleRegistry,
    discover_rules,
    merge_rules,
    resolve_rules,
)

BUILTIN_RULES: tuple[Rule, ...] = (
    *architecture.RULES,
    *correctness.RULES,
    *performance.RULES,
    *security.RULES,
)


def get_rules() -> list[Rule]:
    """Built-in rules in registration (execution) order."""
    return list(BUILTIN_RULES)


__all__ = [
    "BUILTIN_RULES",
    "CUSTOM_PREFIX",
    "Rule",
    "RuleMeta",
    "RuleRegistry",
    "coerce_rule",
    "discover_rules",
    "get_rules",
    "merge_rules",
    "resolve_rules",
    "rule",
]
