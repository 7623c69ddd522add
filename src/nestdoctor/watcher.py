"""File watcher: incremental re-scans through the scan worker on file changes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from nestdoctor.lsp.protocol import ErrorMessage, Missing, ScanResultMessage
from nestdoctor.lsp.supervisor import WorkerCrashedError, WorkspaceWorker

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from rich.console import Console

    from nestdoctor.lsp.protocol import WorkerMessage

DEFAULT_DEBOUNCE_MS = 200

_WATCH_EXTENSIONS = frozenset({".ts", ".mts", ".cts"})


def _filter_relevant(
    changes: Iterable[tuple[object, str]],
    project_root: Path,
) -> list[str]:
    """Changed TypeScript paths, ignoring temp files and hidden directories.

    Each path is reported once, in first-seen order.
    """
    result: list[str] = []
    seen: set[str] = set()

    for _change_type, path_str in changes:
        p = Path(path_str)

        # Ignore temp files (name starts with ~ or ends with .tmp).
        if p.name.startswith("~") or p.name.endswith(".tmp"):
            continue

        if p.suffix not in _WATCH_EXTENSIONS or p.name.endswith(".d.ts"):
            continue

        try:
            rel = p.relative_to(project_root)
        except ValueError:
            continue

        if any(part.startswith(".") for part in rel.parts[:-1]):
            continue

        if path_str not in seen:
            seen.add(path_str)
            result.append(path_str)

    return result


def _format_time() -> str:
    """Return current time as ``HH:MM:SS`` string."""
    return datetime.now(tz=timezone.utc).strftime("%H:%M:%S")


@dataclass(frozen=True)
class WatchEvent:
    """Outcome of one debounced batch of changes."""

    files_changed: int
    files_missing: int
    scan_type: str  # "full" | "incremental"
    diagnostics: int
    errors: int


def _summarize(
    replies: Iterable[WorkerMessage | BaseException],
) -> tuple[ScanResultMessage | None, int, list[str]]:
    """Latest result, number of ``missing`` replies, and failure messages."""
    latest: ScanResultMessage | None = None
    missing = 0
    failures: list[str] = []
    for reply in replies:
        if isinstance(reply, ScanResultMessage):
            latest = reply
        elif isinstance(reply, Missing):
            missing += 1
        elif isinstance(reply, ErrorMessage):
            failures.append(reply.message)
        elif isinstance(reply, BaseException):
            failures.append(str(reply))
    return latest, missing, failures


def _print_result(console: Console, result: ScanResultMessage) -> None:
    errors = sum(1 for d in result.diagnostics if d.severity == "error")
    warnings = sum(1 for d in result.diagnostics if d.severity == "warning")
    console.print(
        f"[dim]{_format_time()}[/dim] "
        f"[green]{result.scan_type} scan[/green] "
        f"{len(result.diagnostics)} diagnostics "
        f"([red]{errors} errors[/red], [yellow]{warnings} warnings[/yellow]) "
        f"[dim]{result.elapsed_ms:.0f}ms[/dim]"
    )


async def _watch(
    project_root: Path,
    debounce_ms: int,
    config_path: Path | None,
    console: Console,
    callback: Callable[[WatchEvent], None] | None,
) -> None:
    from watchfiles import awatch

    async with WorkspaceWorker(project_root, config_path) as worker:
        try:
            first = await worker.full_scan()
        except WorkerCrashedError as exc:
            console.print(f"[red]Scan worker failed:[/red] {exc}")
            return
        if isinstance(first, ScanResultMessage):
            _print_result(console, first)
        elif isinstance(first, ErrorMessage):
            console.print(f"[red]Scan failed:[/red] {first.message}")

        async for batch in awatch(project_root, debounce=debounce_ms):
            relevant = _filter_relevant(batch, project_root)
            if not relevant:
                continue

            replies = await asyncio.gather(
                *(worker.file_changed(path) for path in relevant),
                return_exceptions=True,
            )
            latest, missing, failures = _summarize(replies)
            for failure in failures:
                console.print(f"[red]Scan failed:[/red] {failure}")
            if latest is not None:
                _print_result(console, latest)
            elif missing:
                console.print(f"[dim]{_format_time()}[/dim] {missing} file(s) removed")

            if callback is not None:
                callback(
                    WatchEvent(
                        files_changed=len(relevant),
                        files_missing=missing,
                        scan_type=latest.scan_type if latest is not None else "incremental",
                        diagnostics=len(latest.diagnostics) if latest is not None else 0,
                        errors=len(failures),
                    )
                )


def watch(
    project_root: Path,
    debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    config_path: Path | None = None,
    callback: Callable[[WatchEvent], None] | None = None,
) -> None:
    """Watch the project's TypeScript files and re-scan them incrementally.

    The initial full scan and every re-scan run in a separate worker
    process; each debounced batch of changes becomes one ``fileChanged``
    request per file.
    """
    from rich.console import Console

    console = Console()
    console.print(f"[bold blue]Watching:[/bold blue] {project_root}")
    console.print(f"[dim]Debounce: {debounce_ms}ms  |  Press Ctrl+C to stop[/dim]")
    console.print()

    try:
        asyncio.run(_watch(project_root, debounce_ms, config_path, console, callback))
    except KeyboardInterrupt:
        console.print("\n[yellow]Watch stopped.[/yellow]")
