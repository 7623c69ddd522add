"""Scan pipeline: ingest -> module graph -> rules -> filter -> score.

The one-shot scan (:func:`scan`) and the incremental scan worker share the
same steps through a :class:`ScanContext`, which owns the only mutable
state of a scan: its :class:`~nestdoctor.engine.source.SourceSet`.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from nestdoctor.core.config import load_config
from nestdoctor.core.files import collect_files
from nestdoctor.core.filtering import compile_globs, filter_diagnostics, matches_any
from nestdoctor.engine.module_graph import build_module_graph
from nestdoctor.engine.providers import resolve_providers
from nestdoctor.engine.runner import RunResult, run_file_rules, run_project_rules, separate_rules
from nestdoctor.engine.source import SourceSet
from nestdoctor.models import DiagnoseResult, DiagnoseSummary, ProjectInfo
from nestdoctor.rules import RuleRegistry, discover_rules, get_rules, resolve_rules
from nestdoctor.scoring import calculate_score

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from nestdoctor.core.config import Config
    from nestdoctor.engine.module_graph import ModuleGraph
    from nestdoctor.engine.providers import ProviderInfo
    from nestdoctor.models import Diagnostic
    from nestdoctor.rules.base import Rule

logger = logging.getLogger(__name__)


@dataclass
class ScanContext:
    """Everything needed to (re-)run rules against one project."""

    target: Path
    config: Config
    sources: SourceSet
    file_rules: list[Rule]
    project_rules: list[Rule]
    module_graph: ModuleGraph
    providers: Mapping[str, ProviderInfo]
    warnings: list[str] = field(default_factory=list)

    @property
    def files(self) -> tuple[str, ...]:
        return self.sources.paths

    def refresh(self) -> None:
        """Rebuild the module graph and provider index from the current sources."""
        self.module_graph = build_module_graph(self.sources)
        self.providers = resolve_providers(self.sources)


# ---------------------------------------------------------------------------
# Preparation
# ---------------------------------------------------------------------------


def load_rules(target: Path, config: Config) -> tuple[list[Rule], list[str]]:
    """Built-in plus external rules, merged and resolved against *config*."""
    registry = RuleRegistry(get_rules())
    warnings: list[str] = []
    if config.custom_rules_dir:
        external, discovery_warnings = discover_rules(config.custom_rules_dir, target)
        warnings.extend(discovery_warnings)
        warnings.extend(registry.register(external))
    return resolve_rules(config, registry.rules), warnings


def prepare_scan(
    target: Path,
    config: Config | None = None,
    config_path: Path | None = None,
) -> ScanContext:
    """Load config and rules, collect and ingest files, build the module graph.

    Raises
    ------
    ConfigurationError
        If the configuration is invalid.
    ScanError
        If the project files cannot be collected or read.
    """
    target = target.resolve()
    if config is None:
        config = load_config(target, config_path)

    rules, warnings = load_rules(target, config)
    file_rules, project_rules = separate_rules(rules)

    files = collect_files(target, config.include, config.exclude)
    sources = SourceSet.from_paths(files)
    logger.debug("Ingested %d files, %d rules active", len(sources), len(rules))

    return ScanContext(
        target=target,
        config=config,
        sources=sources,
        file_rules=file_rules,
        project_rules=project_rules,
        module_graph=build_module_graph(sources),
        providers=resolve_providers(sources),
        warnings=warnings,
    )


# ---------------------------------------------------------------------------
# Incremental updates
# ---------------------------------------------------------------------------


def source_key(file_path: str) -> str:
    """Key of *file_path* in a SourceSet: its resolved directory plus its own name.

    Matches the paths :func:`~nestdoctor.core.files.collect_files` yields under
    a resolved target, whichever symlinked directory a change is reported through.
    """
    path = Path(file_path)
    return str(path.parent.resolve() / path.name)


def is_scannable(context: ScanContext, file_path: str) -> bool:
    """True if *file_path* lies under the target and passes the include/exclude globs."""
    try:
        rel = Path(source_key(file_path)).relative_to(context.target).as_posix()
    except ValueError:
        return False
    include = compile_globs(context.config.include)
    exclude = compile_globs(context.config.exclude)
    return matches_any(rel, include) and not matches_any(rel, exclude)


def update_file(context: ScanContext, file_path: str) -> None:
    """Re-ingest *file_path* (adding it if new) and rebuild derived state."""
    context.sources.update(source_key(file_path))
    context.refresh()


def remove_file(context: ScanContext, file_path: str) -> bool:
    """Drop *file_path* from the context; returns True if it was present."""
    removed = context.sources.remove(source_key(file_path))
    if removed:
        context.refresh()
    return removed


# ---------------------------------------------------------------------------
# Rule passes (each returns filtered diagnostics)
# ---------------------------------------------------------------------------


def _filtered(context: ScanContext, result: RunResult) -> RunResult:
    kept = filter_diagnostics(result.diagnostics, context.config.ignore, str(context.target))
    return RunResult(diagnostics=kept, errors=result.errors)


def scan_file(context: ScanContext, file_path: str) -> RunResult:
    """Run the file rules for one file."""
    result = run_file_rules(context.sources, [file_path], context.file_rules, context.config)
    return _filtered(context, result)


def scan_all_files(context: ScanContext) -> RunResult:
    """Run the file rules for every ingested file, in file order."""
    result = run_file_rules(context.sources, context.files, context.file_rules, context.config)
    return _filtered(context, result)


def scan_project(context: ScanContext) -> RunResult:
    """Run every project rule once."""
    result = run_project_rules(
        context.sources,
        context.project_rules,
        context.module_graph,
        context.providers,
        context.config,
    )
    return _filtered(context, result)


# ---------------------------------------------------------------------------
# Result assembly
# ---------------------------------------------------------------------------


def build_summary(diagnostics: Iterable[Diagnostic]) -> DiagnoseSummary:
    return DiagnoseSummary.from_diagnostics(tuple(diagnostics))


def detect_project_name(target: Path) -> str:
    """``name`` from ``package.json``, else the directory name."""
    package_json = target / "package.json"
    if package_json.is_file():
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("Failed to read %s, using directory name", package_json)
        else:
            if isinstance(data, dict) and isinstance(data.get("name"), str) and data["name"]:
                return str(data["name"])
    return target.name


def build_result(context: ScanContext, run: RunResult, elapsed_ms: float) -> DiagnoseResult:
    diagnostics = tuple(run.diagnostics)
    return DiagnoseResult(
        score=calculate_score(diagnostics, len(context.files), context.config.scoring),
        diagnostics=diagnostics,
        project=ProjectInfo(
            name=detect_project_name(context.target),
            file_count=len(context.files),
            module_count=len(context.module_graph.modules),
        ),
        summary=build_summary(diagnostics),
        rule_errors=tuple(run.errors),
        elapsed_ms=elapsed_ms,
        warnings=tuple(context.warnings),
    )


def run_full(context: ScanContext) -> RunResult:
    """All file rules then all project rules, filtered."""
    result = scan_all_files(context)
    result.extend(scan_project(context))
    return result


def scan(
    target: Path,
    config: Config | None = None,
    config_path: Path | None = None,
) -> DiagnoseResult:
    """Run a complete one-shot scan of the project at *target*."""
    t0 = time.monotonic()
    context = prepare_scan(target, config=config, config_path=config_path)
    run = run_full(context)
    elapsed_ms = (time.monotonic() - t0) * 1000
    logger.info(
        "Scanned %d files in %.0f ms: %d diagnostics, %d rule errors",
        len(context.files),
        elapsed_ms,
        len(run.diagnostics),
        len(run.errors),
    )
    return build_result(context, run, elapsed_ms)
