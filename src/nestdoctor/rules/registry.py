"""Rule registry: external rule discovery, merging, and config resolution."""

from __future__ import annotations

import dataclasses
import importlib.util
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from nestdoctor.rules.base import Rule, coerce_rule, looks_like_rule

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from nestdoctor.core.config import Config

logger = logging.getLogger(__name__)

CUSTOM_PREFIX = "custom/"


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


def merge_rules(builtin: Iterable[Rule], external: Iterable[Rule]) -> tuple[list[Rule], list[str]]:
    """Merge *external* rules after *builtin* ones.

    An external rule whose id is already taken (by a built-in or an earlier
    external rule) is dropped with a warning naming the id.  Returns
    ``(merged, warnings)``; ids in ``merged`` are unique.
    """
    merged = list(builtin)
    builtin_ids = {r.id for r in merged}
    seen = set(builtin_ids)
    warnings: list[str] = []

    for r in external:
        if r.id in builtin_ids:
            warnings.append(f'Custom rule "{r.id}" conflicts with a built-in rule and was skipped')
            continue
        if r.id in seen:
            warnings.append(f'Custom rule "{r.id}" is defined more than once; duplicate skipped')
            continue
        seen.add(r.id)
        merged.append(r)

    for w in warnings:
        logger.warning(w)
    return merged, warnings


class RuleRegistry:
    """Ordered, id-unique collection of rules.

    Registration order is execution order.  Built-ins are registered first,
    external rules after them via :meth:`register`.
    """

    def __init__(self, builtin: Iterable[Rule] = ()) -> None:
        self._builtin: list[Rule] = list(builtin)
        self._external: list[Rule] = []
        self.warnings: list[str] = []

    def register(self, rules: Iterable[Rule]) -> list[str]:
        """Append *rules*, dropping id conflicts; returns the new warnings.

        A rule clashing with a built-in and one clashing with an earlier
        registered rule are reported differently.
        """
        merged, new_warnings = merge_rules(self._builtin, [*self._external, *rules])
        self._external = merged[len(self._builtin) :]
        self.warnings.extend(new_warnings)
        return new_warnings

    @property
    def rules(self) -> tuple[Rule, ...]:
        return (*self._builtin, *self._external)

    def get(self, rule_id: str) -> Rule | None:
        for r in self.rules:
            if r.id == rule_id:
                return r
        return None

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self._builtin) + len(self._external)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def _prefixed(r: Rule) -> Rule:
    if r.id.startswith(CUSTOM_PREFIX):
        return r
    meta = dataclasses.replace(r.meta, id=CUSTOM_PREFIX + r.id)
    return dataclasses.replace(r, meta=meta)


def _load_module(path: Path) -> object:
    module_name = f"nestdoctor_custom_rules.{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        msg = f"cannot create an import spec for {path}"
        raise ImportError(msg)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    finally:
        sys.modules.pop(module_name, None)
    return module


def discover_rules(
    directory: str | Path, project_root: Path | None = None
) -> tuple[list[Rule], list[str]]:
    """Load rules from the ``.py`` files of *directory*.

    Files are visited in sorted order, skipping names that start with
    ``_``.  Every module-level value that is a :class:`Rule` (or has a
    ``meta`` plus a callable ``check``) is collected, with its id prefixed
    by ``custom/``.  Problems never raise: they are returned as warnings.

    Parameters
    ----------
    directory:
        Rules directory; relative paths are resolved against *project_root*.
    project_root:
        Base for a relative *directory*.

    Returns
    -------
    tuple[list[Rule], list[str]]
        ``(rules, warnings)``.
    """
    warnings: list[str] = []
    rules_dir = Path(directory)
    if not rules_dir.is_absolute() and project_root is not None:
        rules_dir = project_root / rules_dir

    if not rules_dir.exists():
        warnings.append(f"Custom rules directory not found: {rules_dir}")
        return [], warnings
    if not rules_dir.is_dir():
        warnings.append(f"Custom rules path is not a directory: {rules_dir}")
        return [], warnings

    files = sorted(p for p in rules_dir.glob("*.py") if not p.name.startswith("_"))
    if not files:
        warnings.append(f"No rule files (.py) found in {rules_dir}")
        return [], warnings

    rules: list[Rule] = []
    for path in files:
        try:
            module = _load_module(path)
        except Exception as exc:  # user code: any import-time failure is reported, not raised
            warnings.append(f"Failed to load custom rule file {path.name}: {exc}")
            continue

        for attr, value in vars(module).items():
            if attr.startswith("_") or not looks_like_rule(value):
                continue
            try:
                loaded = coerce_rule(value)
            except ValueError as exc:
                warnings.append(f"Invalid rule '{attr}' in {path.name}: {exc}")
                continue
            if loaded is None:
                warnings.append(
                    f"Ignoring '{attr}' in {path.name}: not a rule (needs meta and check)"
                )
                continue
            rules.append(_prefixed(loaded))
        logger.debug("Loaded custom rule file %s", path)

    for w in warnings:
        logger.warning(w)
    return rules, warnings


# ---------------------------------------------------------------------------
# Config resolution
# ---------------------------------------------------------------------------


def resolve_rules(config: Config, rules: Iterable[Rule]) -> list[Rule]:
    """Apply category toggles, per-rule enable/disable and severity overrides."""
    resolved: list[Rule] = []
    for r in rules:
        if config.categories.get(r.meta.category, True) is False:
            continue
        override = config.rules.get(r.id)
        if override is None:
            resolved.append(r)
            continue
        if not override.enabled:
            continue
        if override.severity is None or override.severity == r.meta.severity:
            resolved.append(r)
            continue
        meta = dataclasses.replace(r.meta, severity=override.severity)
        resolved.append(dataclasses.replace(r, meta=meta))
    return resolved
