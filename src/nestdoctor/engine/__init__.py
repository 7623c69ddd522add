"""Analysis engine: source ingestion, classification, module graph, rule runner."""

from nestdoctor.engine.classify import (
    ClassFacts,
    DecoratorFacts,
    FileFacts,
    MethodFacts,
    ParamFacts,
    classify_file,
)
from nestdoctor.engine.module_graph import (
    ModuleGraph,
    ModuleNode,
    build_module_graph,
    find_cycles,
)
from nestdoctor.engine.providers import ProviderInfo, resolve_providers
from nestdoctor.engine.runner import (
    FileContext,
    ProjectContext,
    RunResult,
    run_file_rules,
    run_project_rules,
    run_rules,
    separate_rules,
)
from nestdoctor.engine.source import SourceSet, SourceUnit, parse_source

__all__ = [
    "ClassFacts",
    "DecoratorFacts",
    "FileContext",
    "FileFacts",
    "MethodFacts",
    "ModuleGraph",
    "ModuleNode",
    "ParamFacts",
    "ProjectContext",
    "ProviderInfo",
    "RunResult",
    "SourceSet",
    "SourceUnit",
    "build_module_graph",
    "classify_file",
    "find_cycles",
    "parse_source",
    "resolve_providers",
    "run_file_rules",
    "run_project_rules",
    "run_rules",
    "separate_rules",
]
