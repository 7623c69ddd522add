"""Small read-only helpers over tree-sitter nodes."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from tree_sitter import Node as TSNode


def node_text(node: TSNode | None) -> str:
    """Return the UTF-8 source text of *node* (empty string for ``None``)."""
    if node is None or not node.text:
        return ""
    return node.text.decode("utf-8")


def start_line(node: TSNode) -> int:
    """1-based line of the first character of *node*."""
    # tree-sitter uses 0-based rows; we want 1-based lines.
    return node.start_point.row + 1


def walk(node: TSNode) -> Iterator[TSNode]:
    """Yield *node* and all of its descendants in document order."""
    stack: list[TSNode] = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def descendants_of_type(node: TSNode, *types: str) -> Iterator[TSNode]:
    """Yield every descendant of *node* whose type is one of *types*."""
    wanted = frozenset(types)
    for child in walk(node):
        if child.type in wanted:
            yield child


def has_ancestor_of_type(node: TSNode, *types: str) -> bool:
    """Return True if any ancestor of *node* has one of *types*."""
    parent = node.parent
    while parent is not None:
        if parent.type in types:
            return True
        parent = parent.parent
    return False


def string_value(node: TSNode) -> str | None:
    """Return the unquoted value of a ``string`` literal node, else ``None``."""
    if node.type != "string":
        return None
    parts = [node_text(child) for child in node.children if child.type not in ('"', "'")]
    return "".join(parts)


def property_name(key: TSNode | None) -> str:
    """Name of an object-literal key: ``origin``, ``'origin'`` and ``"origin"`` -> origin."""
    if key is None:
        return ""
    if key.type == "string":
        return string_value(key) or ""
    return node_text(key)
