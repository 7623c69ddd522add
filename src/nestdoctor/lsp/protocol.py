"""Scan worker wire protocol and the coalescing request queue.

Messages travel as plain dicts (``{"kind": ...}``) over a
``multiprocessing`` pipe; in code they are frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from nestdoctor.models import Diagnostic

if TYPE_CHECKING:
    from collections.abc import Iterator

W = TypeVar("W")


# ---------------------------------------------------------------------------
# Server -> worker
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FullScan:
    kind: ClassVar[str] = "fullScan"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind}


@dataclass(frozen=True)
class FileChanged:
    kind: ClassVar[str] = "fileChanged"
    file_path: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "filePath": self.file_path}


@dataclass(frozen=True)
class Shutdown:
    kind: ClassVar[str] = "shutdown"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind}


ScanRequest = FullScan | FileChanged | Shutdown


def request_from_dict(data: dict[str, Any]) -> ScanRequest:
    """Decode a server -> worker message.

    Raises
    ------
    ValueError
        On an unknown kind or a missing field.
    """
    kind = data.get("kind")
    if kind == FullScan.kind:
        return FullScan()
    if kind == FileChanged.kind:
        file_path = data.get("filePath")
        if not isinstance(file_path, str):
            msg = "fileChanged message requires a string 'filePath'"
            raise ValueError(msg)
        return FileChanged(file_path=file_path)
    if kind == Shutdown.kind:
        return Shutdown()
    msg = f"unknown request kind: {kind!r}"
    raise ValueError(msg)


# ---------------------------------------------------------------------------
# Worker -> server
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Ready:
    kind: ClassVar[str] = "ready"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind}


@dataclass(frozen=True)
class ScanResultMessage:
    """Complete current diagnostic set after a scan."""

    kind: ClassVar[str] = "result"
    diagnostics: tuple[Diagnostic, ...]
    elapsed_ms: float
    scan_type: str  # "full" | "incremental"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "elapsedMs": self.elapsed_ms,
            "scanType": self.scan_type,
        }


@dataclass(frozen=True)
class ErrorMessage:
    kind: ClassVar[str] = "error"
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


@dataclass(frozen=True)
class Missing:
    """The requested file no longer exists; it was dropped from the scan state."""

    kind: ClassVar[str] = "missing"
    file_path: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "filePath": self.file_path}


WorkerMessage = Ready | ScanResultMessage | ErrorMessage | Missing


def message_from_dict(data: dict[str, Any]) -> WorkerMessage:
    """Decode a worker -> server message.

    Raises
    ------
    ValueError
        On an unknown kind.
    """
    kind = data.get("kind")
    if kind == Ready.kind:
        return Ready()
    if kind == ScanResultMessage.kind:
        return ScanResultMessage(
            diagnostics=tuple(Diagnostic.from_dict(d) for d in data.get("diagnostics", [])),
            elapsed_ms=float(data.get("elapsedMs", 0.0)),
            scan_type=str(data.get("scanType", "full")),
        )
    if kind == ErrorMessage.kind:
        return ErrorMessage(message=str(data.get("message", "")))
    if kind == Missing.kind:
        return Missing(file_path=str(data.get("filePath", "")))
    msg = f"unknown worker message kind: {kind!r}"
    raise ValueError(msg)


# ---------------------------------------------------------------------------
# Request queue
# ---------------------------------------------------------------------------


@dataclass
class PendingRequest(Generic[W]):
    """A queued request and everyone waiting for its reply."""

    request: ScanRequest
    waiters: list[W] = field(default_factory=list)


class RequestQueue(Generic[W]):
    """FIFO of pending scan requests with coalescing.

    - a ``fileChanged`` for a path that is already queued replaces the
      queued entry in place;
    - a ``fullScan`` replaces an already queued ``fullScan`` in place;
    - ``shutdown`` is never coalesced.

    Waiters of a replaced entry are carried over, so every caller still gets
    exactly one reply.  Requests already taken with :meth:`pop` are never
    touched.
    """

    def __init__(self) -> None:
        self._entries: list[PendingRequest[W]] = []

    def _find(self, request: ScanRequest) -> int | None:
        for i, entry in enumerate(self._entries):
            queued = entry.request
            if isinstance(request, FileChanged) and isinstance(queued, FileChanged):
                if queued.file_path == request.file_path:
                    return i
            elif isinstance(request, FullScan) and isinstance(queued, FullScan):
                return i
        return None

    def push(self, request: ScanRequest, waiter: W | None = None) -> bool:
        """Queue *request*; returns True if it was coalesced into a queued entry."""
        index = self._find(request)
        if index is None:
            entry: PendingRequest[W] = PendingRequest(request=request)
            if waiter is not None:
                entry.waiters.append(waiter)
            self._entries.append(entry)
            return False

        old = self._entries[index]
        merged = PendingRequest(request=request, waiters=list(old.waiters))
        if waiter is not None:
            merged.waiters.append(waiter)
        self._entries[index] = merged
        return True

    def pop(self) -> PendingRequest[W] | None:
        """Take the oldest entry, or ``None`` if the queue is empty."""
        if not self._entries:
            return None
        return self._entries.pop(0)

    def drain(self) -> list[PendingRequest[W]]:
        """Remove and return every queued entry."""
        entries, self._entries = self._entries, []
        return entries

    def requests(self) -> list[ScanRequest]:
        return [e.request for e in self._entries]

    def __iter__(self) -> Iterator[PendingRequest[W]]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)
