"""Out-of-process scan worker.

The worker owns the scan state of one workspace (its ``ScanContext``) and
serves requests one at a time:

- ``fullScan``: run every rule, reply ``result`` (``scanType="full"``);
- ``fileChanged``: re-ingest one file, re-run its file rules and all project
  rules, reply ``result`` (``scanType="incremental"``) with the complete
  current diagnostic set, or ``missing`` if the file no longer exists.  The
  first ``fileChanged`` served before any ``fullScan`` runs the file rules
  for every file, so a respawned worker still replies with the full set;
- ``shutdown``: stop.

A failure inside a request replies ``error`` and the worker stays ready.  A
failure while ingesting the workspace at startup replies ``error`` and the
worker terminates.
"""

from __future__ import annotations

import enum
import logging
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from nestdoctor.core.scanner import (
    is_scannable,
    prepare_scan,
    remove_file,
    scan_all_files,
    scan_file,
    scan_project,
    source_key,
    update_file,
)
from nestdoctor.lsp.protocol import (
    ErrorMessage,
    FileChanged,
    FullScan,
    Missing,
    Ready,
    ScanResultMessage,
    Shutdown,
    request_from_dict,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from multiprocessing.connection import Connection

    from nestdoctor.core.scanner import ScanContext
    from nestdoctor.engine.runner import RunResult
    from nestdoctor.lsp.protocol import ScanRequest, WorkerMessage
    from nestdoctor.models import Diagnostic

logger = logging.getLogger(__name__)


class WorkerState(enum.Enum):
    STARTING = "starting"
    READY = "ready"
    SCANNING = "scanning"
    CRASHED = "crashed"
    STOPPED = "stopped"


def _error_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ScanWorker:
    """Request handler of the scan worker, independent of the transport.

    Parameters
    ----------
    root:
        Workspace root directory.
    send:
        Called with every outgoing :data:`WorkerMessage`.
    config_path:
        Explicit config file; ``None`` to discover it in *root*.
    """

    def __init__(
        self,
        root: Path,
        send: Callable[[WorkerMessage], None],
        config_path: Path | None = None,
    ) -> None:
        self.root = root
        self.config_path = config_path
        self.state = WorkerState.STARTING
        self._send = send
        self._context: ScanContext | None = None
        # file path -> filtered diagnostics of that file's last scan; None until
        # every ingested file has been scanned once
        self._file_diagnostics: dict[str, list[Diagnostic]] | None = None

    # -- lifecycle ------------------------------------------------------------

    def start(self) -> bool:
        """Ingest the workspace; reply ``ready``, or ``error`` and crash."""
        self.state = WorkerState.STARTING
        try:
            self._context = prepare_scan(self.root, config_path=self.config_path)
        except Exception as exc:  # any startup failure is fatal for this worker
            logger.exception("Scan worker failed to start for %s", self.root)
            self.state = WorkerState.CRASHED
            self._send(ErrorMessage(message=_error_text(exc)))
            return False

        for warning in self._context.warnings:
            logger.warning(warning)
        self.state = WorkerState.READY
        logger.info("Scan worker ready: %d files", len(self._context.files))
        self._send(Ready())
        return True

    def handle(self, request: ScanRequest) -> bool:
        """Serve one request; returns False once the worker should exit."""
        if isinstance(request, Shutdown):
            self.state = WorkerState.STOPPED
            logger.info("Scan worker stopped")
            return False

        if self.state is not WorkerState.READY or self._context is None:
            self._send(ErrorMessage(message=f"worker is not ready (state: {self.state.value})"))
            return self.state is not WorkerState.CRASHED

        self.state = WorkerState.SCANNING
        try:
            if isinstance(request, FullScan):
                self._send(self._full_scan(self._context))
            elif isinstance(request, FileChanged):
                self._send(self._file_changed(self._context, request.file_path))
            else:
                msg = f"unsupported request: {request!r}"
                raise ValueError(msg)
        except Exception as exc:  # reported to the server, the worker stays up
            logger.exception("Scan request %s failed", request)
            self._send(ErrorMessage(message=_error_text(exc)))
        finally:
            self.state = WorkerState.READY
        return True

    # -- requests ---------------------------------------------------------------

    def _collect(self, project: RunResult) -> tuple[Diagnostic, ...]:
        """Per-file diagnostics in file path order, then the project diagnostics."""
        merged: list[Diagnostic] = []
        cached = self._file_diagnostics or {}
        for path in sorted(cached):
            merged.extend(cached[path])
        merged.extend(project.diagnostics)
        return tuple(merged)

    def _log_rule_errors(self, *results: RunResult) -> None:
        for result in results:
            for error in result.errors:
                logger.warning(
                    "Rule %s failed on %s: %s",
                    error.rule_id,
                    error.file_path or "<project>",
                    error.error,
                )

    def _scan_files(self, context: ScanContext) -> RunResult:
        """Run the file rules for every ingested file and reset the per-file cache."""
        files = scan_all_files(context)
        self._file_diagnostics = {path: [] for path in context.files}
        for d in files.diagnostics:
            self._file_diagnostics.setdefault(d.file_path, []).append(d)
        return files

    def _full_scan(self, context: ScanContext) -> ScanResultMessage:
        t0 = time.monotonic()
        files = self._scan_files(context)
        project = scan_project(context)
        self._log_rule_errors(files, project)
        return ScanResultMessage(
            diagnostics=self._collect(project),
            elapsed_ms=(time.monotonic() - t0) * 1000,
            scan_type="full",
        )

    def _file_changed(self, context: ScanContext, file_path: str) -> WorkerMessage:
        t0 = time.monotonic()
        path = source_key(file_path)

        if not os.path.isfile(path):
            remove_file(context, path)
            if self._file_diagnostics is not None:
                self._file_diagnostics.pop(path, None)
            logger.debug("File %s is gone, dropped from scan state", path)
            return Missing(file_path=file_path)

        results: list[RunResult] = []
        if path in context.sources or is_scannable(context, path):
            update_file(context, path)
            if self._file_diagnostics is None:
                logger.debug("No full scan yet, scanning every file")
                results.append(self._scan_files(context))
            else:
                result = scan_file(context, path)
                self._file_diagnostics[path] = list(result.diagnostics)
                results.append(result)
        else:
            logger.debug("Ignoring change to %s: excluded from the scan", path)
            if self._file_diagnostics is None:
                results.append(self._scan_files(context))

        project = scan_project(context)
        self._log_rule_errors(*results, project)
        return ScanResultMessage(
            diagnostics=self._collect(project),
            elapsed_ms=(time.monotonic() - t0) * 1000,
            scan_type="incremental",
        )


# ---------------------------------------------------------------------------
# Process entry point
# ---------------------------------------------------------------------------


def run_worker(conn: Connection, root: str, config_path: str | None = None) -> None:
    """Worker process main loop: serve requests from *conn* until shutdown or EOF."""

    def send(message: WorkerMessage) -> None:
        conn.send(message.to_dict())

    worker = ScanWorker(Path(root), send, Path(config_path) if config_path else None)
    try:
        if not worker.start():
            return
        while True:
            try:
                raw: Any = conn.recv()
            except EOFError:
                worker.state = WorkerState.STOPPED
                break
            try:
                request = request_from_dict(raw)
            except (ValueError, AttributeError) as exc:
                send(ErrorMessage(message=f"invalid request: {exc}"))
                continue
            if not worker.handle(request):
                break
    finally:
        conn.close()
