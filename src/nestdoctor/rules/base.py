"""Rule model: metadata, the check callable, and the ``@rule`` declaration helper."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from nestdoctor.models import CATEGORIES, SCOPES, SEVERITIES

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from nestdoctor.models import Category, Scope, Severity

    Check = Callable[[Any], None]


@dataclass(frozen=True)
class RuleMeta:
    """Static description of a rule.

    Raises ``ValueError`` on construction when a field is out of range, so an
    invalid rule can never reach the execution engine.
    """

    id: str
    category: Category
    severity: Severity
    description: str
    help: str
    scope: Scope = "file"

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            msg = "rule id must be a non-empty string"
            raise ValueError(msg)
        if self.category not in CATEGORIES:
            msg = (
                f"rule '{self.id}': invalid category '{self.category}', "
                f"must be one of {list(CATEGORIES)}"
            )
            raise ValueError(msg)
        if self.severity not in SEVERITIES:
            msg = (
                f"rule '{self.id}': invalid severity '{self.severity}', "
                f"must be one of {list(SEVERITIES)}"
            )
            raise ValueError(msg)
        if self.scope not in SCOPES:
            msg = f"rule '{self.id}': invalid scope '{self.scope}', must be one of {list(SCOPES)}"
            raise ValueError(msg)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RuleMeta:
        """Build meta from a plain mapping (used for duck-typed external rules)."""
        for key in ("id", "category", "severity", "description", "help"):
            if not isinstance(data.get(key), str):
                msg = f"rule meta field '{key}' must be a string"
                raise ValueError(msg)
        return cls(
            id=data["id"],
            category=data["category"],
            severity=data["severity"],
            description=data["description"],
            help=data["help"],
            scope=data.get("scope", "file"),
        )


@dataclass(frozen=True)
class Rule:
    """A rule: meta plus a check bound to the meta's scope.

    File-scoped checks receive a :class:`~nestdoctor.engine.runner.FileContext`,
    project-scoped checks a :class:`~nestdoctor.engine.runner.ProjectContext`.
    """

    meta: RuleMeta
    check: Check

    @property
    def id(self) -> str:
        return self.meta.id

    @property
    def is_project(self) -> bool:
        return self.meta.scope == "project"


def rule(
    *,
    id: str,  # noqa: A002
    category: Category,
    severity: Severity,
    description: str,
    help: str,  # noqa: A002
    scope: Scope = "file",
) -> Callable[[Check], Rule]:
    """Declare a rule from a check function::

        @rule(id="security/no-eval", category="security", severity="error",
              description="...", help="...")
        def no_eval(ctx: FileContext) -> None:
            ...
    """
    meta = RuleMeta(
        id=id,
        category=category,
        severity=severity,
        description=description,
        help=help,
        scope=scope,
    )

    def decorate(check: Check) -> Rule:
        return Rule(meta=meta, check=check)

    return decorate


def coerce_rule(value: object) -> Rule | None:
    """Return *value* as a Rule if it has the rule shape, else ``None``.

    Accepts :class:`Rule` instances and any object exposing a ``meta`` (a
    :class:`RuleMeta` or a mapping of its fields) and a callable ``check``.

    Raises
    ------
    ValueError
        When *value* looks like a rule but its meta is invalid.
    """
    if isinstance(value, Rule):
        return value
    if isinstance(value, type):
        return None
    meta = getattr(value, "meta", None)
    check = getattr(value, "check", None)
    if meta is None or not callable(check):
        return None
    if isinstance(meta, RuleMeta):
        return Rule(meta=meta, check=check)
    if isinstance(meta, dict):
        return Rule(meta=RuleMeta.from_mapping(meta), check=check)
    msg = "rule meta must be a RuleMeta or a mapping"
    raise ValueError(msg)


def looks_like_rule(value: object) -> bool:
    """True for values that carry a ``meta`` or ``check`` attribute."""
    return not isinstance(value, type) and (hasattr(value, "meta") or hasattr(value, "check"))
