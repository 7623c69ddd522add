"""Module graph: @Module() declarations, their import edges, and cycle detection."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from nestdoctor.engine.syntax import node_text, property_name, string_value

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from tree_sitter import Node as TSNode

    from nestdoctor.engine.classify import ClassFacts
    from nestdoctor.engine.source import SourceUnit

logger = logging.getLogger(__name__)

_FORWARD_REF_RE = re.compile(r"=>\s*\(?\s*(\w+)")
_LEADING_IDENT_RE = re.compile(r"^(\w+)")

_METADATA_KEYS: tuple[str, ...] = ("imports", "providers", "exports", "controllers")


@dataclass(frozen=True)
class ModuleNode:
    """A single ``@Module()`` class declaration."""

    name: str
    file_path: str
    line: int
    imports: tuple[str, ...] = ()
    providers: tuple[str, ...] = ()
    exports: tuple[str, ...] = ()
    controllers: tuple[str, ...] = ()


@dataclass(frozen=True)
class ModuleGraph:
    """Read-only module graph built once per scan.

    ``edges`` only contains targets that are themselves modules of the graph;
    references to unknown names are kept in ``dangling``.  Declarations whose
    name was already taken by an earlier file are kept in ``collisions``.
    """

    modules: Mapping[str, ModuleNode]
    edges: Mapping[str, frozenset[str]]
    dangling: tuple[tuple[str, str], ...] = ()
    collisions: tuple[ModuleNode, ...] = ()
    provider_to_module: Mapping[str, ModuleNode] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def module_for_provider(self, provider: str) -> ModuleNode | None:
        return self.provider_to_module.get(provider)


# ---------------------------------------------------------------------------
# Metadata extraction
# ---------------------------------------------------------------------------


def _element_name(element: TSNode) -> str | None:
    """Identifier referenced by one element of a module metadata array.

    ``Foo`` -> Foo, ``forwardRef(() => Foo)`` -> Foo, ``...Foo`` -> Foo,
    ``Foo.forRoot({...})`` -> Foo, ``{ provide: TOKEN, ... }`` -> TOKEN.
    """
    if element.type == "identifier":
        return node_text(element)
    if element.type == "spread_element":
        inner = element.named_children[0] if element.named_children else None
        return _element_name(inner) if inner is not None else None
    if element.type == "call_expression":
        func = element.child_by_field_name("function")
        func_text = node_text(func)
        if func_text == "forwardRef":
            match = _FORWARD_REF_RE.search(node_text(element))
            return match.group(1) if match else func_text
        match = _LEADING_IDENT_RE.match(func_text)
        return match.group(1) if match else func_text
    if element.type == "object":
        for pair in element.named_children:
            if pair.type != "pair" or property_name(pair.child_by_field_name("key")) != "provide":
                continue
            value = pair.child_by_field_name("value")
            if value is None:
                return None
            literal = string_value(value)
            return literal if literal is not None else node_text(value)
        return None
    if element.type == "comment":
        return None
    return node_text(element) or None


def _array_property(obj: TSNode, key: str) -> tuple[str, ...]:
    for pair in obj.named_children:
        if pair.type != "pair":
            continue
        if property_name(pair.child_by_field_name("key")) != key:
            continue
        value = pair.child_by_field_name("value")
        if value is None or value.type != "array":
            return ()
        names = (_element_name(el) for el in value.named_children)
        return tuple(name for name in names if name)
    return ()


def module_node_from_class(cls: ClassFacts, file_path: str) -> ModuleNode | None:
    """Build a ModuleNode from a classified class, or ``None`` if it is not a module."""
    decorator = cls.decorator("Module")
    if decorator is None:
        return None
    metadata: dict[str, tuple[str, ...]] = dict.fromkeys(_METADATA_KEYS, ())
    if decorator.arguments and decorator.arguments[0].type == "object":
        obj = decorator.arguments[0]
        for key in _METADATA_KEYS:
            metadata[key] = _array_property(obj, key)
    return ModuleNode(name=cls.name, file_path=file_path, line=cls.line, **metadata)


# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------


def build_module_graph(units: Iterable[SourceUnit]) -> ModuleGraph:
    """Build the module graph from ingested sources (in iteration order)."""
    modules: dict[str, ModuleNode] = {}
    collisions: list[ModuleNode] = []

    # First pass: collect all @Module() classes.
    for unit in units:
        for cls in unit.facts.classes:
            node = module_node_from_class(cls, unit.file_path)
            if node is None:
                continue
            if node.name in modules:
                logger.debug(
                    "Module name %s in %s collides with %s",
                    node.name,
                    node.file_path,
                    modules[node.name].file_path,
                )
                collisions.append(node)
                continue
            modules[node.name] = node

    # Second pass: build edges from import relationships.
    edges: dict[str, frozenset[str]] = {}
    dangling: list[tuple[str, str]] = []
    for name, node in modules.items():
        targets: list[str] = []
        for imported in node.imports:
            if imported in modules:
                targets.append(imported)
            else:
                dangling.append((name, imported))
        edges[name] = frozenset(targets)

    # Inverse index: provider name -> module.
    provider_to_module: dict[str, ModuleNode] = {}
    for node in modules.values():
        for provider in node.providers:
            provider_to_module.setdefault(provider, node)

    return ModuleGraph(
        modules=MappingProxyType(modules),
        edges=MappingProxyType(edges),
        dangling=tuple(dangling),
        collisions=tuple(collisions),
        provider_to_module=MappingProxyType(provider_to_module),
    )


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------


def _ordered_neighbors(graph: ModuleGraph, name: str) -> list[str]:
    """Neighbors of *name* in declaration order of its ``imports``."""
    node = graph.modules.get(name)
    targets = graph.edges.get(name, frozenset())
    if node is None:
        return sorted(targets)
    seen: set[str] = set()
    ordered: list[str] = []
    for imported in node.imports:
        if imported in targets and imported not in seen:
            seen.add(imported)
            ordered.append(imported)
    return ordered


def find_cycles(graph: ModuleGraph) -> list[list[str]]:
    """Return the import cycles of *graph*.

    Iterative DFS over modules in graph order, tracking the active path.  An
    edge back to a node on the active path yields the sub-path from that
    node to the current one; the walk does not continue through it.  Cycles
    are deduplicated by their sorted node set, so a cycle reached from
    several entry points is reported once.  A self-import ``A -> A`` is the
    one-element cycle ``[A]``.
    """
    cycles: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()
    visited: set[str] = set()

    for start in graph.modules:
        if start in visited:
            continue

        path: list[str] = [start]
        on_path: set[str] = {start}
        visited.add(start)
        # Stack entries: (node, remaining neighbors to explore)
        stack: list[tuple[str, list[str]]] = [(start, _ordered_neighbors(graph, start))]

        while stack:
            current, pending = stack[-1]
            if not pending:
                stack.pop()
                on_path.discard(path.pop())
                continue

            neighbor = pending.pop(0)
            if neighbor in on_path:
                cycle = path[path.index(neighbor) :]
                key = tuple(sorted(cycle))
                if key not in seen:
                    seen.add(key)
                    cycles.append(cycle)
            elif neighbor not in visited:
                visited.add(neighbor)
                path.append(neighbor)
                on_path.add(neighbor)
                stack.append((neighbor, _ordered_neighbors(graph, neighbor)))

    return cycles
