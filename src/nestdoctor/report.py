"""Scan result formatting: rich console report and JSON."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nestdoctor.core.filtering import relative_posix
from nestdoctor.models import CATEGORIES

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from rich.console import Console

    from nestdoctor.models import Diagnostic, DiagnoseResult
    from nestdoctor.rules.base import Rule

_SEVERITY_STYLES: dict[str, str] = {"error": "red", "warning": "yellow", "info": "blue"}
_LABEL_STYLES: dict[str, str] = {
    "Excellent": "bold green",
    "Good": "green",
    "Fair": "yellow",
    "Poor": "red",
    "Critical": "bold red",
}


def format_json(result: DiagnoseResult) -> str:
    """Format a DiagnoseResult as indented JSON."""
    return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)


def _location(d: Diagnostic, root: Path) -> str:
    return f"{relative_posix(d.file_path, str(root))}:{d.line}:{d.column}"


def diagnostics_table(diagnostics: Iterable[Diagnostic], root: Path) -> Table:
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("Severity")
    table.add_column("Location", overflow="fold")
    table.add_column("Rule")
    table.add_column("Message", overflow="fold")
    for d in diagnostics:
        table.add_row(
            Text(d.severity, style=_SEVERITY_STYLES[d.severity]),
            _location(d, root),
            Text(d.rule, style="dim"),
            d.message,
        )
    return table


def score_text(result: DiagnoseResult) -> Text:
    style = _LABEL_STYLES.get(result.score.label, "bold")
    return Text(f"{result.score.value}/100 {result.score.label}", style=style)


def render_report(console: Console, result: DiagnoseResult, root: Path) -> None:
    """Print the human-readable scan report to *console*."""
    project = result.project
    console.print(
        f"[bold]{project.name}[/bold]  "
        f"[dim]{project.file_count} files, {project.module_count} modules, "
        f"{result.elapsed_ms / 1000:.1f}s[/dim]"
    )
    for warning in result.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")
    console.print()

    if result.diagnostics:
        console.print(diagnostics_table(result.diagnostics, root))
        console.print()

    if result.rule_errors:
        console.print(f"[red]{len(result.rule_errors)} rule error(s):[/red]")
        for error in result.rule_errors:
            where = f" ({error.file_path})" if error.file_path else ""
            console.print(f"  {error.rule_id}{where}: {error.error}")
        console.print()

    summary = result.summary
    counts = Table(show_header=False, box=None, padding=(0, 1))
    counts.add_column()
    counts.add_column(justify="right")
    counts.add_row(Text("errors", style="red"), str(summary.errors))
    counts.add_row(Text("warnings", style="yellow"), str(summary.warnings))
    counts.add_row(Text("info", style="blue"), str(summary.info))
    for category in CATEGORIES:
        counts.add_row(Text(category, style="dim"), str(summary.by_category.get(category, 0)))

    console.print(Panel(counts, title=score_text(result), expand=False))


def rules_table(rules: Iterable[Rule]) -> Table:
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("Rule")
    table.add_column("Category")
    table.add_column("Severity")
    table.add_column("Scope")
    table.add_column("Description", overflow="fold")
    for r in rules:
        table.add_row(
            r.id,
            r.meta.category,
            Text(r.meta.severity, style=_SEVERITY_STYLES[r.meta.severity]),
            r.meta.scope,
            r.meta.description,
        )
    return table


def rules_json(rules: Iterable[Rule]) -> str:
    return json.dumps(
        [
            {
                "id": r.id,
                "category": r.meta.category,
                "severity": r.meta.severity,
                "scope": r.meta.scope,
                "description": r.meta.description,
                "help": r.meta.help,
            }
            for r in rules
        ],
        indent=2,
    )
