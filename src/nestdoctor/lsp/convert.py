"""Conversion of diagnostics to editor (LSP-shaped) diagnostics."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from nestdoctor.models import Diagnostic

SOURCE = "nestdoctor"

# LSP DiagnosticSeverity
SEVERITY_CODES: dict[str, int] = {"error": 1, "warning": 2, "info": 3}


def to_range(line: int, column: int) -> dict[str, Any]:
    """Zero-width 0-based range at the 1-based *line*/*column*."""
    position = {"line": max(line - 1, 0), "character": max(column - 1, 0)}
    return {"start": dict(position), "end": dict(position)}


def to_lsp_diagnostic(d: Diagnostic) -> dict[str, Any]:
    return {
        "range": to_range(d.line, d.column),
        "severity": SEVERITY_CODES[d.severity],
        "code": d.rule,
        "source": SOURCE,
        "message": d.message,
        "data": {"help": d.help, "category": d.category},
    }


def file_uri(file_path: str, root: Path) -> str:
    path = Path(file_path)
    if not path.is_absolute():
        path = root / path
    return path.as_uri()


def group_by_file(
    diagnostics: Iterable[Diagnostic], root: Path
) -> dict[str, list[dict[str, Any]]]:
    """Group diagnostics by file URI, preserving order within each file."""
    grouped: dict[str, list[dict[str, Any]]] = {}
    for d in diagnostics:
        grouped.setdefault(file_uri(d.file_path, root), []).append(to_lsp_diagnostic(d))
    return grouped


def _same(a: list[dict[str, Any]], b: list[dict[str, Any]]) -> bool:
    if len(a) != len(b):
        return False
    for da, db in zip(a, b):
        if (
            da["code"] != db["code"]
            or da["message"] != db["message"]
            or da["severity"] != db["severity"]
            or da["range"]["start"] != db["range"]["start"]
        ):
            return False
    return True


def diff_publications(
    previous: dict[str, list[dict[str, Any]]],
    current: dict[str, list[dict[str, Any]]],
) -> list[tuple[str, list[dict[str, Any]]]]:
    """``(uri, diagnostics)`` pairs to publish to move from *previous* to *current*.

    Files that no longer have diagnostics are cleared with an empty list;
    files whose diagnostics did not change are skipped.
    """
    updates: list[tuple[str, list[dict[str, Any]]]] = [
        (uri, []) for uri in previous if uri not in current
    ]
    for uri, diagnostics in current.items():
        cached = previous.get(uri)
        if cached is not None and _same(cached, diagnostics):
            continue
        updates.append((uri, diagnostics))
    return updates
