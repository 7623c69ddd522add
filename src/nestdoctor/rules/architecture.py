"""Architecture rules: module graph shape, DI discipline, layering."""

from __future__ import annotations

from typing import TYPE_CHECKING

from nestdoctor.engine.module_graph import find_cycles
from nestdoctor.engine.syntax import (
    descendants_of_type,
    has_ancestor_of_type,
    node_text,
    start_line,
    string_value,
)
from nestdoctor.rules.base import rule

if TYPE_CHECKING:
    from collections.abc import Mapping

    from nestdoctor.engine.module_graph import ModuleGraph, ModuleNode
    from nestdoctor.engine.providers import ProviderInfo
    from nestdoctor.engine.runner import FileContext, ProjectContext

CYCLE_HELP = (
    "Break the cycle by extracting shared logic into a separate module or using forwardRef()."
)

# `new X()` is always wrong for these: they only make sense as DI-managed providers.
DI_ONLY_SUFFIXES: tuple[str, ...] = ("Service", "Repository", "Gateway", "Resolver")
# These are legitimately instantiated inside decorators (@UseGuards(new AuthGuard())).
CONTEXT_AWARE_SUFFIXES: tuple[str, ...] = ("Guard", "Interceptor", "Pipe", "Filter")

ORM_TYPES: frozenset[str] = frozenset(
    {
        "PrismaService",
        "PrismaClient",
        "EntityManager",
        "DataSource",
        "Repository",
        "Connection",
        "MongooseModel",
        "InjectModel",
        "InjectRepository",
        "MikroORM",
        "DrizzleService",
    }
)
ORM_PARAM_DECORATORS: frozenset[str] = frozenset({"InjectRepository", "InjectModel"})

# Folders that belong to a feature module's implementation, not its public surface.
INTERNAL_FOLDERS: tuple[str, ...] = (
    "/repositories/",
    "/entities/",
    "/dto/",
    "/guards/",
    "/interceptors/",
    "/pipes/",
    "/strategies/",
)

LOCATOR_METHODS: frozenset[str] = frozenset({"get", "resolve"})
MODULE_REF_NAMES: frozenset[str] = frozenset({"moduleRef", "this.moduleRef"})


# ---------------------------------------------------------------------------
# Circular module dependencies
# ---------------------------------------------------------------------------


def trace_provider_edges(
    source: ModuleNode,
    target: ModuleNode,
    providers: Mapping[str, ProviderInfo],
    graph: ModuleGraph,
) -> list[tuple[str, str]]:
    """``(consumer, dependency)`` pairs that make *source* depend on *target*.

    A consumer is a provider of *source* that injects a provider owned by
    *target*.
    """
    edges: list[tuple[str, str]] = []
    for consumer in source.providers:
        info = providers.get(consumer)
        if info is None:
            continue
        for dependency in info.dependencies:
            owner = graph.module_for_provider(dependency)
            if owner is not None and owner.name == target.name:
                edges.append((consumer, dependency))
    return edges


def cycle_help(cycle: list[str], graph: ModuleGraph, providers: Mapping[str, ProviderInfo]) -> str:
    """Describe the injections behind each edge of *cycle* and the cheapest edge to cut."""
    descriptions: list[str] = []
    weakest: tuple[str, str, list[tuple[str, str]]] | None = None

    for i, from_name in enumerate(cycle):
        to_name = cycle[(i + 1) % len(cycle)]
        source = graph.modules.get(from_name)
        target = graph.modules.get(to_name)
        if source is None or target is None:
            continue
        edges = trace_provider_edges(source, target, providers, graph)
        if not edges:
            continue

        grouped: dict[str, list[str]] = {}
        for consumer, dependency in edges:
            grouped.setdefault(consumer, []).append(dependency)
        parts = [
            f"{consumer} (in {from_name}) injects "
            + ", ".join(f"{dep} (from {to_name})" for dep in deps)
            for consumer, deps in grouped.items()
        ]
        descriptions.append(f"{from_name} -> {to_name}: {'; '.join(parts)}")

        if weakest is None or len(edges) < len(weakest[2]):
            weakest = (from_name, to_name, edges)

    if not descriptions or weakest is None:
        return CYCLE_HELP

    from_name, to_name, edges = weakest
    unique_deps = list(dict.fromkeys(dep for _, dep in edges))
    noun = "dependency" if len(edges) == 1 else "dependencies"
    return (
        "\n".join(descriptions)
        + f"\nConsider extracting {', '.join(unique_deps)} into a shared module; it would"
        f" break the {from_name} -> {to_name} edge ({len(edges)} {noun})."
    )


@rule(
    id="architecture/no-circular-module-deps",
    category="architecture",
    severity="error",
    description="Circular dependencies in @Module() import graph",
    help=CYCLE_HELP,
    scope="project",
)
def no_circular_module_deps(ctx: ProjectContext) -> None:
    graph = ctx.module_graph
    for cycle in find_cycles(graph):
        first = graph.modules[cycle[0]]
        ctx.report(
            file_path=first.file_path,
            line=first.line,
            message=f"Circular module dependency detected: {' -> '.join(cycle)}",
            help=cycle_help(cycle, graph, ctx.providers),
        )


# ---------------------------------------------------------------------------
# God modules / services
# ---------------------------------------------------------------------------


@rule(
    id="architecture/no-god-module",
    category="architecture",
    severity="warning",
    description=(
        "Modules with too many providers or imports should be split into smaller feature modules"
    ),
    help="Split this module into smaller, focused feature modules.",
    scope="project",
)
def no_god_module(ctx: ProjectContext) -> None:
    max_providers = ctx.config.thresholds.god_module_providers
    max_imports = ctx.config.thresholds.god_module_imports

    for mod in ctx.module_graph.modules.values():
        if len(mod.providers) > max_providers:
            ctx.report(
                file_path=mod.file_path,
                line=mod.line,
                message=(
                    f"Module '{mod.name}' has {len(mod.providers)} providers "
                    f"(max: {max_providers}). Consider splitting into smaller modules."
                ),
            )
        if len(mod.imports) > max_imports:
            ctx.report(
                file_path=mod.file_path,
                line=mod.line,
                message=(
                    f"Module '{mod.name}' has {len(mod.imports)} imports "
                    f"(max: {max_imports}). Consider grouping into feature modules."
                ),
            )


@rule(
    id="architecture/no-god-service",
    category="architecture",
    severity="warning",
    description="Services with too many public methods or dependencies should be split",
    help="Split this service into smaller, focused services with single responsibilities.",
    scope="project",
)
def no_god_service(ctx: ProjectContext) -> None:
    max_methods = ctx.config.thresholds.god_service_methods
    max_deps = ctx.config.thresholds.god_service_deps

    for provider in ctx.providers.values():
        if provider.public_method_count > max_methods:
            ctx.report(
                file_path=provider.file_path,
                line=provider.line,
                message=(
                    f"Service '{provider.name}' has {provider.public_method_count} public "
                    f"methods (max: {max_methods}). Consider splitting."
                ),
            )
        if len(provider.dependencies) > max_deps:
            ctx.report(
                file_path=provider.file_path,
                line=provider.line,
                message=(
                    f"Service '{provider.name}' has {len(provider.dependencies)} dependencies "
                    f"(max: {max_deps}). Consider splitting."
                ),
            )


# ---------------------------------------------------------------------------
# File rules
# ---------------------------------------------------------------------------


@rule(
    id="architecture/no-manual-instantiation",
    category="architecture",
    severity="error",
    description="Do not manually instantiate @Injectable classes; use NestJS dependency injection",
    help="Register the class as a provider in a module and inject it via the constructor.",
)
def no_manual_instantiation(ctx: FileContext) -> None:
    for expr in descendants_of_type(ctx.root, "new_expression"):
        name = node_text(expr.child_by_field_name("constructor"))
        if name.endswith(CONTEXT_AWARE_SUFFIXES):
            if has_ancestor_of_type(expr, "decorator"):
                continue
            if not has_ancestor_of_type(expr, "method_definition"):
                continue
        elif not name.endswith(DI_ONLY_SUFFIXES):
            continue
        ctx.report(
            line=start_line(expr),
            message=(
                f"Manual instantiation of '{name}' detected. Use dependency injection instead."
            ),
        )


@rule(
    id="architecture/no-orm-in-controllers",
    category="architecture",
    severity="error",
    description="Controllers must not inject ORM services directly; use a service layer",
    help="Inject a service that wraps the ORM instead of using the ORM directly in controllers.",
)
def no_orm_in_controllers(ctx: FileContext) -> None:
    for cls in ctx.facts.classes:
        if not cls.has_decorator("Controller"):
            continue
        for param in cls.constructor_params:
            if param.type_name in ORM_TYPES:
                ctx.report(
                    line=param.line,
                    column=param.column,
                    message=(
                        f"Controller injects ORM type '{param.type_name}' directly. "
                        "Use a service layer."
                    ),
                )
        for param in cls.constructor_params:
            for decorator in param.decorators:
                if decorator.name in ORM_PARAM_DECORATORS:
                    ctx.report(
                        line=decorator.line,
                        message=(
                            f"Controller uses @{decorator.name}() decorator. "
                            "Move data access to a service."
                        ),
                    )




@rule(
    id="architecture/require-module-boundaries",
    category="architecture",
    severity="info",
    description="Relative imports should not reach into another module's internal folders",
    help=(
        "Import from the other module's public surface (its module or barrel file) "
        "instead of its internal files."
    ),
)
def require_module_boundaries(ctx: FileContext) -> None:
    for statement in descendants_of_type(ctx.root, "import_statement"):
        source = statement.child_by_field_name("source")
        specifier = string_value(source) if source is not None else None
        if not specifier or not specifier.startswith(".") or "../" not in specifier:
            continue
        if any(folder in specifier for folder in INTERNAL_FOLDERS):
            ctx.report(
                line=start_line(statement),
                message=f"Import '{specifier}' reaches into another module's internals.",
            )


@rule(
    id="architecture/no-service-locator",
    category="architecture",
    severity="warning",
    description="Resolving providers through ModuleRef hides a class's real dependencies",
    help="Inject the dependency through the constructor instead of ModuleRef.get()/resolve().",
)
def no_service_locator(ctx: FileContext) -> None:
    for call in descendants_of_type(ctx.root, "call_expression"):
        function = call.child_by_field_name("function")
        if function is None or function.type != "member_expression":
            continue
        method = node_text(function.child_by_field_name("property"))
        target = node_text(function.child_by_field_name("object"))
        if method in LOCATOR_METHODS and target in MODULE_REF_NAMES:
            ctx.report(
                line=start_line(call),
                message=(
                    f"Service locator pattern: '{target}.{method}()' hides dependencies. "
                    "Use constructor injection instead."
                ),
            )


RULES = (
    no_circular_module_deps,
    no_god_module,
    no_god_service,
    no_manual_instantiation,
    no_orm_in_controllers,
    require_module_boundaries,
    no_service_locator,
)
