"""Correctness rules: framework contracts that fail at runtime when broken."""

from __future__ import annotations

from typing import TYPE_CHECKING

from nestdoctor.engine.classify import HTTP_DECORATORS
from nestdoctor.engine.syntax import descendants_of_type, node_text, start_line
from nestdoctor.rules.base import rule

if TYPE_CHECKING:
    from tree_sitter import Node as TSNode

    from nestdoctor.engine.classify import ClassFacts
    from nestdoctor.engine.runner import FileContext, ProjectContext
    from nestdoctor.rules.base import Rule

LIFECYCLE_INTERFACES: dict[str, str] = {
    "onModuleInit": "OnModuleInit",
    "onModuleDestroy": "OnModuleDestroy",
    "onApplicationBootstrap": "OnApplicationBootstrap",
    "onApplicationShutdown": "OnApplicationShutdown",
    "beforeApplicationShutdown": "BeforeApplicationShutdown",
}

_NESTED_FUNCTIONS: frozenset[str] = frozenset(
    {"arrow_function", "function_expression", "function_declaration", "function"}
)


# ---------------------------------------------------------------------------
# Missing contract methods
# ---------------------------------------------------------------------------


def _missing_method_rule(
    *,
    kind: str,
    suffix: str,
    method: str,
    label: str,
    help: str,  # noqa: A002
) -> Rule:
    """Build the rule for an ``@Injectable()`` *suffix* class lacking *method*.

    Classes with an ``extends`` clause are skipped: the method may be inherited.
    """

    @rule(
        id=f"correctness/no-missing-{kind}-method",
        category="correctness",
        severity="error",
        description=f"{label} classes must implement the {method}() method",
        help=help,
    )
    def check(ctx: FileContext) -> None:
        for cls in ctx.facts.classes:
            if not cls.name.endswith(suffix) or not cls.has_decorator("Injectable"):
                continue
            if cls.has_extends or cls.method(method) is not None:
                continue
            ctx.report(
                line=cls.line,
                message=f"{label} '{cls.name}' is missing the '{method}()' method.",
            )

    return check


no_missing_guard_method = _missing_method_rule(
    kind="guard",
    suffix="Guard",
    method="canActivate",
    label="Guard",
    help="Add a canActivate(context: ExecutionContext) method to the guard class.",
)

no_missing_pipe_method = _missing_method_rule(
    kind="pipe",
    suffix="Pipe",
    method="transform",
    label="Pipe",
    help="Add a transform(value: any, metadata: ArgumentMetadata) method to the pipe class.",
)

no_missing_interceptor_method = _missing_method_rule(
    kind="interceptor",
    suffix="Interceptor",
    method="intercept",
    label="Interceptor",
    help=(
        "Add an intercept(context: ExecutionContext, next: CallHandler) method "
        "to the interceptor class."
    ),
)


@rule(
    id="correctness/no-missing-filter-catch",
    category="correctness",
    severity="error",
    description=(
        "Exception filter classes decorated with @Catch() must implement the catch() method"
    ),
    help="Add a catch(exception, host: ArgumentsHost) method to the filter class.",
)
def no_missing_filter_catch(ctx: FileContext) -> None:
    for cls in ctx.facts.classes:
        if not cls.has_decorator("Catch") or cls.has_extends:
            continue
        if cls.method("catch") is None:
            ctx.report(
                line=cls.line,
                message=(
                    f"Exception filter '{cls.name}' has @Catch() but is missing "
                    "the 'catch()' method."
                ),
            )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


@rule(
    id="correctness/no-empty-handlers",
    category="correctness",
    severity="warning",
    description="Controller HTTP handlers should not have empty bodies",
    help="Add implementation to the handler method or remove it if unnecessary.",
)
def no_empty_handlers(ctx: FileContext) -> None:
    for cls in ctx.facts.classes:
        if not cls.has_decorator("Controller"):
            continue
        for method in cls.methods:
            if not any(d.name in HTTP_DECORATORS for d in method.decorators):
                continue
            if method.body is None:
                continue
            statements = [c for c in method.body.named_children if c.type != "comment"]
            if not statements:
                ctx.report(
                    line=method.line,
                    message=f"Handler '{method.name}()' has an empty body.",
                )


# ---------------------------------------------------------------------------
# Project rules
# ---------------------------------------------------------------------------


@rule(
    id="correctness/no-missing-injectable",
    category="correctness",
    severity="error",
    description="Class listed in a module's providers must have the @Injectable() decorator",
    help="Add @Injectable() decorator to the class.",
    scope="project",
)
def no_missing_injectable(ctx: ProjectContext) -> None:
    class_index: dict[str, list[tuple[str, ClassFacts]]] = {}
    for file_path in ctx.files:
        unit = ctx.units.get(file_path)
        if unit is None:
            continue
        for cls in unit.facts.classes:
            class_index.setdefault(cls.name, []).append((file_path, cls))

    for mod in ctx.module_graph.modules.values():
        for provider in mod.providers:
            if provider in ctx.providers:
                continue
            for file_path, cls in class_index.get(provider, ()):
                if cls.has_decorator("Injectable"):
                    continue
                ctx.report(
                    file_path=file_path,
                    line=cls.line,
                    message=(
                        f"Class '{provider}' is listed in '{mod.name}' providers but is "
                        "missing @Injectable() decorator."
                    ),
                )


@rule(
    id="correctness/no-duplicate-module-name",
    category="correctness",
    severity="error",
    description="Two @Module() classes must not share a class name",
    help=(
        "Rename one of the modules. Only the first declaration is used when resolving "
        "module imports, so the other one is invisible to the module graph."
    ),
    scope="project",
)
def no_duplicate_module_name(ctx: ProjectContext) -> None:
    graph = ctx.module_graph
    for duplicate in graph.collisions:
        first = graph.modules.get(duplicate.name)
        where = first.file_path if first is not None else "another file"
        ctx.report(
            file_path=duplicate.file_path,
            line=duplicate.line,
            message=f"Module name '{duplicate.name}' is already declared in {where}.",
        )




# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _first_argument(args: tuple[TSNode, ...]) -> str:
    return node_text(args[0]) if args else ""


@rule(
    id="correctness/no-duplicate-routes",
    category="correctness",
    severity="error",
    description="Two handlers of one controller must not bind the same method, path and version",
    help="Change the path of one handler or merge the two handlers.",
)
def no_duplicate_routes(ctx: FileContext) -> None:
    for cls in ctx.facts.classes:
        if not cls.has_decorator("Controller"):
            continue
        seen: dict[str, str] = {}
        for method in cls.methods:
            version = "".join(
                _first_argument(d.arguments) for d in method.decorators if d.name == "Version"
            )
            for decorator in method.decorators:
                if decorator.name not in HTTP_DECORATORS:
                    continue
                path = _first_argument(decorator.arguments)
                key = f"{decorator.name}:{path}:{version}"
                existing = seen.get(key)
                if existing is None:
                    seen[key] = method.name
                    continue
                ctx.report(
                    line=decorator.line,
                    message=(
                        f"Duplicate route: @{decorator.name}({path}) is already defined "
                        f"in '{existing}()'."
                    ),
                )


# ---------------------------------------------------------------------------
# Async and lifecycle
# ---------------------------------------------------------------------------


def has_own_await(body: TSNode) -> bool:
    """True if *body* awaits something outside of nested functions."""
    stack = list(body.children)
    while stack:
        node = stack.pop()
        if node.type == "await_expression":
            return True
        if node.type in _NESTED_FUNCTIONS:
            continue
        stack.extend(node.children)
    return False


@rule(
    id="correctness/no-async-without-await",
    category="correctness",
    severity="warning",
    description="Async functions and methods should contain at least one await",
    help="Remove the async keyword or await the asynchronous work inside the body.",
)
def no_async_without_await(ctx: FileContext) -> None:
    for cls in ctx.facts.classes:
        for method in cls.methods:
            if method.is_async and method.body is not None and not has_own_await(method.body):
                ctx.report(
                    line=method.line,
                    message=f"Async method '{method.name}()' has no await expression.",
                )

    for function in descendants_of_type(ctx.root, "function_declaration"):
        if not any(child.type == "async" for child in function.children):
            continue
        body = function.child_by_field_name("body")
        if body is None or has_own_await(body):
            continue
        name = node_text(function.child_by_field_name("name"))
        ctx.report(
            line=start_line(function),
            message=f"Async function '{name}()' has no await expression.",
        )


@rule(
    id="correctness/require-lifecycle-interface",
    category="correctness",
    severity="warning",
    description="Classes with lifecycle hook methods should implement the matching interface",
    help="Add the lifecycle interface to the class's implements clause.",
)
def require_lifecycle_interface(ctx: FileContext) -> None:
    for cls in ctx.facts.classes:
        for method_name, interface in LIFECYCLE_INTERFACES.items():
            method = cls.method(method_name)
            if method is None:
                continue
            if any(interface in implemented for implemented in cls.implements):
                continue
            ctx.report(
                line=method.line,
                message=(
                    f"Class '{cls.name}' has '{method_name}()' but does not implement "
                    f"'{interface}'."
                ),
            )


RULES = (
    no_missing_guard_method,
    no_missing_pipe_method,
    no_missing_interceptor_method,
    no_missing_filter_catch,
    no_empty_handlers,
    no_missing_injectable,
    no_duplicate_module_name,
    no_duplicate_routes,
    no_async_without_await,
    require_lifecycle_interface,
)
