"""Editor integration: scan worker protocol, worker process, asyncio supervisor."""

from nestdoctor.lsp.convert import group_by_file
from nestdoctor.lsp.protocol import (
    ErrorMessage,
    FileChanged,
    FullScan,
    Missing,
    Ready,
    RequestQueue,
    ScanResultMessage,
    Shutdown,
    message_from_dict,
    request_from_dict,
)
from nestdoctor.lsp.supervisor import DiagnosticsPublisher, WorkerCrashedError, WorkspaceWorker
from nestdoctor.lsp.worker import ScanWorker, WorkerState, run_worker

__all__ = [
    "DiagnosticsPublisher",
    "ErrorMessage",
    "FileChanged",
    "FullScan",
    "Missing",
    "Ready",
    "RequestQueue",
    "ScanResultMessage",
    "ScanWorker",
    "Shutdown",
    "WorkerCrashedError",
    "WorkerState",
    "WorkspaceWorker",
    "group_by_file",
    "message_from_dict",
    "request_from_dict",
    "run_worker",
]
