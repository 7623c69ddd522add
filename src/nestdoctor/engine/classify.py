"""Capability classification: structural facts about NestJS class declarations.

Rules consume these facts instead of re-deriving them from raw syntax: what
kind of framework class a declaration is (controller, service, guard, ...),
which decorators it carries, its methods and its constructor parameters.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nestdoctor.engine.syntax import node_text, start_line

if TYPE_CHECKING:
    from tree_sitter import Node as TSNode

_GENERIC_TYPE_RE = re.compile(r"^([\w.]+)<")

CLASS_KINDS: frozenset[str] = frozenset(
    {
        "module",
        "controller",
        "service",
        "guard",
        "pipe",
        "interceptor",
        "filter",
        "resolver",
        "gateway",
        "unknown",
    }
)

# Decorators that fix the kind on their own, checked in this order.
_KIND_DECORATORS: tuple[tuple[str, str], ...] = (
    ("Module", "module"),
    ("Controller", "controller"),
    ("Resolver", "resolver"),
    ("WebSocketGateway", "gateway"),
    ("Catch", "filter"),
)

# @Injectable() classes are refined by their name suffix.
_INJECTABLE_SUFFIXES: tuple[tuple[str, str], ...] = (
    ("Guard", "guard"),
    ("Pipe", "pipe"),
    ("Interceptor", "interceptor"),
)

HTTP_DECORATORS: frozenset[str] = frozenset(
    {"Get", "Post", "Put", "Delete", "Patch", "Options", "Head", "All"}
)

_CLASS_TYPES = frozenset({"class_declaration", "abstract_class_declaration", "class"})


@dataclass(frozen=True)
class DecoratorFacts:
    """A decorator application: ``@Name(args)``."""

    name: str
    line: int
    arguments: tuple[TSNode, ...]
    node: TSNode


@dataclass(frozen=True)
class ParamFacts:
    """A constructor (or method) parameter."""

    name: str
    type_name: str | None  # simple type name, generics and namespaces stripped
    type_text: str | None  # raw annotation text
    accessibility: str | None  # "public" | "private" | "protected" | None
    is_readonly: bool
    decorators: tuple[DecoratorFacts, ...]
    line: int
    column: int


@dataclass(frozen=True)
class MethodFacts:
    """A method declared in a class body."""

    name: str
    line: int
    accessibility: str | None
    is_async: bool
    is_static: bool
    decorators: tuple[DecoratorFacts, ...]
    params: tuple[ParamFacts, ...]
    body: TSNode | None
    node: TSNode

    @property
    def is_public(self) -> bool:
        return self.accessibility in (None, "public")

    def has_decorator(self, name: str) -> bool:
        return any(d.name == name for d in self.decorators)


@dataclass(frozen=True)
class ClassFacts:
    """A top-level class declaration and its framework classification."""

    name: str
    kind: str
    line: int
    decorators: tuple[DecoratorFacts, ...]
    has_extends: bool
    implements: tuple[str, ...]
    methods: tuple[MethodFacts, ...]
    constructor_params: tuple[ParamFacts, ...]
    node: TSNode

    def decorator(self, name: str) -> DecoratorFacts | None:
        for dec in self.decorators:
            if dec.name == name:
                return dec
        return None

    def has_decorator(self, name: str) -> bool:
        return self.decorator(name) is not None

    def method(self, name: str) -> MethodFacts | None:
        for m in self.methods:
            if m.name == name:
                return m
        return None


@dataclass(frozen=True)
class FileFacts:
    """All classified declarations of one source file."""

    file_path: str
    classes: tuple[ClassFacts, ...]

    def classes_of_kind(self, *kinds: str) -> list[ClassFacts]:
        return [c for c in self.classes if c.kind in kinds]


# ---------------------------------------------------------------------------
# Extraction helpers
# ---------------------------------------------------------------------------


def _decorator_name(expr: TSNode) -> str:
    """Name of the decorator expression: ``Foo``, ``Foo()`` or ``ns.Foo()`` -> ``Foo``."""
    if expr.type == "call_expression":
        expr = expr.child_by_field_name("function") or expr
    if expr.type == "member_expression":
        prop = expr.child_by_field_name("property")
        return node_text(prop)
    return node_text(expr)


def parse_decorator(node: TSNode) -> DecoratorFacts:
    """Build DecoratorFacts from a ``decorator`` node."""
    expr = next((c for c in node.named_children), None)
    arguments: tuple[TSNode, ...] = ()
    if expr is not None and expr.type == "call_expression":
        args_node = expr.child_by_field_name("arguments")
        if args_node is not None:
            arguments = tuple(c for c in args_node.named_children if c.type != "comment")
    return DecoratorFacts(
        name=_decorator_name(expr) if expr is not None else "",
        line=start_line(node),
        arguments=arguments,
        node=node,
    )


def simple_type_name(type_text: str) -> str:
    """Reduce ``Repository<User>`` / ``orm.EntityManager`` to the bare type name."""
    text = type_text.strip()
    match = _GENERIC_TYPE_RE.match(text)
    if match:
        text = match.group(1)
    return text.rsplit(".", 1)[-1]


def _modifiers(node: TSNode) -> tuple[str | None, set[str]]:
    accessibility: str | None = None
    keywords: set[str] = set()
    for child in node.children:
        if child.type == "accessibility_modifier":
            accessibility = node_text(child)
        elif child.type in ("async", "static", "readonly", "override_modifier"):
            keywords.add(child.type)
    return accessibility, keywords


def _parse_params(params_node: TSNode | None) -> tuple[ParamFacts, ...]:
    if params_node is None:
        return ()
    params: list[ParamFacts] = []
    for param in params_node.named_children:
        if param.type not in ("required_parameter", "optional_parameter"):
            continue
        pattern = param.child_by_field_name("pattern")
        annotation = param.child_by_field_name("type")
        type_node = None
        if annotation is not None and annotation.named_children:
            type_node = annotation.named_children[0]
        type_text = node_text(type_node) if type_node is not None else None
        accessibility, keywords = _modifiers(param)
        decorators = tuple(parse_decorator(c) for c in param.children if c.type == "decorator")
        anchor = pattern if pattern is not None else param
        params.append(
            ParamFacts(
                name=node_text(pattern),
                type_name=simple_type_name(type_text) if type_text else None,
                type_text=type_text,
                accessibility=accessibility,
                is_readonly="readonly" in keywords,
                decorators=decorators,
                line=start_line(anchor),
                column=anchor.start_point.column + 1,
            )
        )
    return tuple(params)


def _parse_method(node: TSNode, leading: list[DecoratorFacts]) -> MethodFacts:
    accessibility, keywords = _modifiers(node)
    own = [parse_decorator(c) for c in node.children if c.type == "decorator"]
    decorators = tuple(leading + own)
    return MethodFacts(
        name=node_text(node.child_by_field_name("name")),
        line=decorators[0].line if decorators else start_line(node),
        accessibility=accessibility,
        is_async="async" in keywords,
        is_static="static" in keywords,
        decorators=decorators,
        params=_parse_params(node.child_by_field_name("parameters")),
        body=node.child_by_field_name("body"),
        node=node,
    )


def _parse_heritage(cls: TSNode) -> tuple[bool, tuple[str, ...]]:
    has_extends = False
    implements: list[str] = []
    for child in cls.children:
        if child.type != "class_heritage":
            continue
        for clause in child.children:
            if clause.type == "extends_clause":
                has_extends = True
            elif clause.type == "implements_clause":
                implements.extend(simple_type_name(node_text(t)) for t in clause.named_children)
    return has_extends, tuple(implements)


def classify_kind(name: str, decorator_names: set[str]) -> str:
    """Classify a class by its decorators and, for injectables, its name."""
    for decorator, kind in _KIND_DECORATORS:
        if decorator in decorator_names:
            return kind
    if "Injectable" in decorator_names:
        for suffix, kind in _INJECTABLE_SUFFIXES:
            if name.endswith(suffix):
                return kind
        return "service"
    return "unknown"


def _parse_class(cls: TSNode, outer: TSNode, outer_decorators: list[DecoratorFacts]) -> ClassFacts:
    decorators = outer_decorators + [
        parse_decorator(c) for c in cls.children if c.type == "decorator"
    ]
    name = node_text(cls.child_by_field_name("name")) or "AnonymousClass"
    has_extends, implements = _parse_heritage(cls)

    methods: list[MethodFacts] = []
    constructor_params: tuple[ParamFacts, ...] = ()
    pending: list[DecoratorFacts] = []
    body = cls.child_by_field_name("body")
    for member in body.children if body is not None else ():
        if member.type == "decorator":
            pending.append(parse_decorator(member))
            continue
        if member.type == "method_definition":
            method = _parse_method(member, pending)
            if method.name == "constructor":
                constructor_params = method.params
            else:
                methods.append(method)
        pending = []

    return ClassFacts(
        name=name,
        kind=classify_kind(name, {d.name for d in decorators}),
        line=start_line(outer),
        decorators=tuple(decorators),
        has_extends=has_extends,
        implements=implements,
        methods=tuple(methods),
        constructor_params=constructor_params,
        node=cls,
    )


def classify_file(file_path: str, root: TSNode) -> FileFacts:
    """Classify every top-level class declaration of a parsed file.

    Handles bare declarations, ``export class`` and ``export default class``,
    with decorators placed either before or after the ``export`` keyword.
    """
    classes: list[ClassFacts] = []
    for child in root.children:
        if child.type in _CLASS_TYPES:
            classes.append(_parse_class(child, child, []))
        elif child.type == "export_statement":
            outer_decorators = [
                parse_decorator(c) for c in child.children if c.type == "decorator"
            ]
            declaration = child.child_by_field_name("declaration")
            if declaration is None:
                declaration = next(
                    (c for c in child.named_children if c.type in _CLASS_TYPES), None
                )
            if declaration is not None and declaration.type in _CLASS_TYPES:
                classes.append(_parse_class(declaration, child, outer_decorators))
    return FileFacts(file_path=file_path, classes=tuple(classes))
