"""Result types: diagnostics, rule errors, scores and scan summaries.

All types are frozen.  ``to_dict`` produces the camelCase wire/JSON shape
shared by the CLI ``--json`` output and the scan worker protocol.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Severity = Literal["error", "warning", "info"]
Category = Literal["security", "performance", "correctness", "architecture"]
Scope = Literal["file", "project"]

SEVERITIES: tuple[str, ...] = ("error", "warning", "info")
CATEGORIES: tuple[str, ...] = ("security", "performance", "correctness", "architecture")
SCOPES: tuple[str, ...] = ("file", "project")


@dataclass(frozen=True)
class Diagnostic:
    """A single finding produced by a rule.

    ``rule``, ``category``, ``severity`` and ``scope`` are always copied from
    the originating rule's meta by the execution engine.
    """

    file_path: str
    line: int
    column: int
    message: str
    help: str
    rule: str
    category: Category
    severity: Severity
    scope: Scope = "file"

    def to_dict(self) -> dict[str, Any]:
        return {
            "filePath": self.file_path,
            "line": self.line,
            "column": self.column,
            "message": self.message,
            "help": self.help,
            "rule": self.rule,
            "category": self.category,
            "severity": self.severity,
            "scope": self.scope,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Diagnostic:
        return cls(
            file_path=str(data["filePath"]),
            line=int(data["line"]),
            column=int(data["column"]),
            message=str(data["message"]),
            help=str(data.get("help", "")),
            rule=str(data["rule"]),
            category=data["category"],
            severity=data["severity"],
            scope=data.get("scope", "file"),
        )


@dataclass(frozen=True)
class RuleErrorInfo:
    """A rule that raised while checking one input; never becomes a Diagnostic."""

    rule_id: str
    error: str
    file_path: str | None = None  # None for project-scoped rules

    def to_dict(self) -> dict[str, Any]:
        return {"ruleId": self.rule_id, "error": self.error, "filePath": self.file_path}


@dataclass(frozen=True)
class Score:
    """Health score in ``[0, 100]`` with its qualitative label."""

    value: int
    label: str


@dataclass(frozen=True)
class DiagnoseSummary:
    """Per-severity and per-category counts of a diagnostic list."""

    total: int
    errors: int
    warnings: int
    info: int
    by_category: dict[str, int]

    @classmethod
    def from_diagnostics(
        cls, diagnostics: list[Diagnostic] | tuple[Diagnostic, ...]
    ) -> DiagnoseSummary:
        by_severity = dict.fromkeys(SEVERITIES, 0)
        by_category = dict.fromkeys(CATEGORIES, 0)
        for d in diagnostics:
            by_severity[d.severity] += 1
            by_category[d.category] += 1
        return cls(
            total=len(diagnostics),
            errors=by_severity["error"],
            warnings=by_severity["warning"],
            info=by_severity["info"],
            by_category=by_category,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "errors": self.errors,
            "warnings": self.warnings,
            "info": self.info,
            "byCategory": dict(self.by_category),
        }


@dataclass(frozen=True)
class ProjectInfo:
    """Descriptive facts about the scanned project."""

    name: str
    file_count: int
    module_count: int


@dataclass(frozen=True)
class DiagnoseResult:
    """Everything a one-shot scan returns to its caller."""

    score: Score
    diagnostics: tuple[Diagnostic, ...]
    project: ProjectInfo
    summary: DiagnoseSummary
    rule_errors: tuple[RuleErrorInfo, ...] = ()
    elapsed_ms: float = 0.0
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": {"value": self.score.value, "label": self.score.label},
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "project": {
                "name": self.project.name,
                "fileCount": self.project.file_count,
                "moduleCount": self.project.module_count,
            },
            "summary": self.summary.to_dict(),
            "ruleErrors": [e.to_dict() for e in self.rule_errors],
            "elapsedMs": self.elapsed_ms,
            "warnings": list(self.warnings),
        }
