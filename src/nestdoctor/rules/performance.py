"""Performance rules: blocking I/O and dead providers, exports and modules."""

from __future__ import annotations

from typing import TYPE_CHECKING

from nestdoctor.engine.syntax import descendants_of_type, node_text, start_line
from nestdoctor.rules.base import rule

if TYPE_CHECKING:
    from nestdoctor.engine.runner import FileContext, ProjectContext

SYNC_IO_METHODS: frozenset[str] = frozenset(
    {
        "readFileSync",
        "writeFileSync",
        "existsSync",
        "mkdirSync",
        "readdirSync",
        "statSync",
        "accessSync",
        "appendFileSync",
        "copyFileSync",
        "renameSync",
        "unlinkSync",
    }
)

ROOT_MODULE = "AppModule"

# Resolved by the framework from decorators, never through constructor injection.
FRAMEWORK_PROVIDER_SUFFIXES: tuple[str, ...] = (
    "Guard",
    "Interceptor",
    "Filter",
    "Middleware",
    "Strategy",
)

@rule(
    id="performance/no-sync-io",
    category="performance",
    severity="warning",
    description=(
        "Synchronous I/O calls block the event loop and should be avoided in NestJS applications"
    ),
    help="Use the async variant (e.g., readFile instead of readFileSync) with await.",
)
def no_sync_io(ctx: FileContext) -> None:
    for call in descendants_of_type(ctx.root, "call_expression"):
        method = node_text(call.child_by_field_name("function")).rsplit(".", 1)[-1]
        if method in SYNC_IO_METHODS:
            ctx.report(
                line=start_line(call),
                message=f"Synchronous I/O call '{method}()' blocks the event loop.",
            )

@rule(
    id="performance/no-orphan-modules",
    category="performance",
    severity="info",
    description="Module is never imported by any other module and may be dead code",
    help="Import this module in another module or remove it if it is unused.",
    scope="project",
)
def no_orphan_modules(ctx: ProjectContext) -> None:
    modules = ctx.module_graph.modules
    imported = {name for mod in modules.values() for name in mod.imports}
    for mod in modules.values():
        if mod.name == ROOT_MODULE or mod.name in imported:
            continue
        ctx.report(
            file_path=mod.file_path,
            line=mod.line,
            message=f"Module '{mod.name}' is never imported by any other module.",
        )

# ---------------------------------------------------------------------------
# Unused providers and exports
# ---------------------------------------------------------------------------

def controller_dependencies(ctx: ProjectContext) -> dict[str, tuple[str, ...]]:
    """Constructor parameter types of every ``@Controller()`` class, by class name."""
    controllers: dict[str, tuple[str, ...]] = {}
    for file_path in ctx.files:
        unit = ctx.units.get(file_path)
        if unit is None:
            continue
        for cls in unit.facts.classes:
            if cls.has_decorator("Controller") and cls.name not in controllers:
                controllers[cls.name] = tuple(
                    p.type_name or p.name for p in cls.constructor_params
                )
    return controllers

@rule(
    id="performance/no-unused-providers",
    category="performance",
    severity="warning",
    description="Provider is never injected by any other provider or controller",
    help="Remove the provider if it is unused, or inject it where it is needed.",
    scope="project",
)
def no_unused_providers(ctx: ProjectContext) -> None:
    injected = {dep for info in ctx.providers.values() for dep in info.dependencies}
    for deps in controller_dependencies(ctx).values():
        injected.update(deps)
    exported = {name for mod in ctx.module_graph.modules.values() for name in mod.exports}

    for provider in ctx.providers.values():
        if provider.name.endswith(FRAMEWORK_PROVIDER_SUFFIXES):
            continue
        if provider.name in injected or provider.name in exported:
            continue
        ctx.report(
            file_path=provider.file_path,
            line=provider.line,
            message=(
                f"Provider '{provider.name}' is never injected by any other provider "
                "or controller."
            ),
        )

@rule(
    id="performance/no-unused-module-exports",
    category="performance",
    severity="info",
    description="Module exports a provider that no importing module uses",
    help="Remove the export or use the provider in a module that imports this one.",
    scope="project",
)
def no_unused_module_exports(ctx: ProjectContext) -> None:
    modules = ctx.module_graph.modules
    controllers = controller_dependencies(ctx)

    for mod in modules.values():
        if not mod.exports:
            continue
        importers = [m for m in modules.values() if mod.name in m.imports]
        if not importers:
            continue

        used: set[str] = set()
        for importer in importers:
            for provider in importer.providers:
                info = ctx.providers.get(provider)
                if info is not None:
                    used.update(info.dependencies)
            # Re-exporting the module passes every export through.
            if mod.name in importer.exports:
                used.update(mod.exports)
            for controller in importer.controllers:
                used.update(controllers.get(controller, ()))

        for exported in mod.exports:
            if exported in modules or exported in used:
                continue
            ctx.report(
                file_path=mod.file_path,
                line=mod.line,
                message=(
                    f"Module '{mod.name}' exports '{exported}' but no importing module "
                    "uses it."
                ),
            )

RULES = (no_sync_io, no_orphan_modules, no_unused_providers, no_unused_module_exports)
