"""Rule execution engine: runs file- and project-scoped rules with failure isolation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from nestdoctor.models import Diagnostic, RuleErrorInfo

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from tree_sitter import Node as TSNode

    from nestdoctor.core.config import Config
    from nestdoctor.engine.classify import FileFacts
    from nestdoctor.engine.module_graph import ModuleGraph
    from nestdoctor.engine.providers import ProviderInfo
    from nestdoctor.engine.source import SourceSet, SourceUnit
    from nestdoctor.rules.base import Rule, RuleMeta

    Reporter = Callable[..., None]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Check contexts (read-only capabilities handed to each check)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileContext:
    """What a file-scoped check may see: one file and a report sink."""

    file_path: str
    unit: SourceUnit
    config: Config
    meta: RuleMeta
    report: Reporter

    @property
    def root(self) -> TSNode:
        return self.unit.root

    @property
    def facts(self) -> FileFacts:
        return self.unit.facts


@dataclass(frozen=True)
class ProjectContext:
    """What a project-scoped check may see: the whole project and a report sink."""

    files: tuple[str, ...]
    units: Mapping[str, SourceUnit]
    module_graph: ModuleGraph
    providers: Mapping[str, ProviderInfo]
    config: Config
    meta: RuleMeta
    report: Reporter


@dataclass
class RunResult:
    """Flat diagnostics plus the rule failures encountered while producing them."""

    diagnostics: list[Diagnostic] = field(default_factory=list)
    errors: list[RuleErrorInfo] = field(default_factory=list)

    def extend(self, other: RunResult) -> None:
        self.diagnostics.extend(other.diagnostics)
        self.errors.extend(other.errors)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def separate_rules(rules: Iterable[Rule]) -> tuple[list[Rule], list[Rule]]:
    """Split *rules* into (file_rules, project_rules), preserving order."""
    file_rules: list[Rule] = []
    project_rules: list[Rule] = []
    for r in rules:
        if r.is_project:
            project_rules.append(r)
        else:
            file_rules.append(r)
    return file_rules, project_rules


def format_rule_error(error: BaseException) -> str:
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


def _make_reporter(meta: RuleMeta, sink: list[Diagnostic], default_path: str | None) -> Reporter:
    """Build the ``report`` callback for one rule invocation.

    The check supplies location, message and help only; rule id, category,
    severity and scope always come from *meta*.
    """

    def report(
        *,
        message: str,
        line: int,
        column: int = 1,
        file_path: str | None = None,
        help: str | None = None,  # noqa: A002
    ) -> None:
        path = file_path if file_path is not None else default_path
        if path is None:
            msg = f"rule '{meta.id}' reported a diagnostic without a file_path"
            raise ValueError(msg)
        sink.append(
            Diagnostic(
                file_path=path,
                line=line,
                column=column,
                message=message,
                help=help if help is not None else meta.help,
                rule=meta.id,
                category=meta.category,
                severity=meta.severity,
                scope=meta.scope,
            )
        )

    return report


def _invoke(
    rule: Rule,
    build_context: Callable[[Reporter], object],
    result: RunResult,
    file_path: str | None,
) -> None:
    """Run one (rule, input) pair; on failure record one RuleErrorInfo.

    Diagnostics reported by a check that then raises are discarded, so a
    pair either contributes all of its diagnostics or an error.
    """
    buffered: list[Diagnostic] = []
    context = build_context(_make_reporter(rule.meta, buffered, file_path))
    try:
        rule.check(context)
    except Exception as exc:  # a faulty rule must never abort the scan
        logger.warning(
            "Rule %s failed on %s: %s", rule.id, file_path or "<project>", exc, exc_info=True
        )
        result.errors.append(
            RuleErrorInfo(rule_id=rule.id, error=format_rule_error(exc), file_path=file_path)
        )
        return
    result.diagnostics.extend(buffered)


# ---------------------------------------------------------------------------
# Runners
# ---------------------------------------------------------------------------


def run_file_rules(
    sources: SourceSet,
    files: Iterable[str],
    rules: Iterable[Rule],
    config: Config,
) -> RunResult:
    """Run file-scoped *rules* over *files*: file order first, then rule order.

    Files absent from *sources* are skipped.
    """
    result = RunResult()
    file_rules = [r for r in rules if not r.is_project]

    for file_path in files:
        unit = sources.get(file_path)
        if unit is None:
            continue
        for r in file_rules:
            _invoke(
                r,
                lambda report, r=r, unit=unit: FileContext(
                    file_path=unit.file_path,
                    unit=unit,
                    config=config,
                    meta=r.meta,
                    report=report,
                ),
                result,
                unit.file_path,
            )

    return result


def run_project_rules(
    sources: SourceSet,
    rules: Iterable[Rule],
    module_graph: ModuleGraph,
    providers: Mapping[str, ProviderInfo],
    config: Config,
) -> RunResult:
    """Run each project-scoped rule exactly once against the whole project."""
    result = RunResult()
    project_rules = [r for r in rules if r.is_project]
    if not project_rules:
        return result

    files = sources.paths
    units = {unit.file_path: unit for unit in sources}

    for r in project_rules:
        _invoke(
            r,
            lambda report, r=r: ProjectContext(
                files=files,
                units=units,
                module_graph=module_graph,
                providers=providers,
                config=config,
                meta=r.meta,
                report=report,
            ),
            result,
            None,
        )

    return result


def run_rules(
    sources: SourceSet,
    rules: Iterable[Rule],
    module_graph: ModuleGraph,
    providers: Mapping[str, ProviderInfo],
    config: Config,
) -> RunResult:
    """Run all file rules over every ingested file, then all project rules."""
    file_rules, project_rules = separate_rules(rules)
    result = run_file_rules(sources, sources.paths, file_rules, config)
    result.extend(run_project_rules(sources, project_rules, module_graph, providers, config))
    return result
