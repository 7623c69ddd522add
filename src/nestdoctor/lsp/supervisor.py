"""Asyncio-side supervisor of the scan worker process.

One :class:`WorkspaceWorker` per workspace.  Callers ``await`` requests;
the supervisor queues them (with coalescing), keeps exactly one request in
flight, and waits on the worker in a thread so the event loop never blocks.
"""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
from typing import TYPE_CHECKING, Any

from nestdoctor.errors import NestDoctorError
from nestdoctor.lsp.convert import diff_publications, group_by_file
from nestdoctor.lsp.protocol import (
    ErrorMessage,
    FileChanged,
    FullScan,
    Ready,
    RequestQueue,
    Shutdown,
    message_from_dict,
)
from nestdoctor.lsp.worker import run_worker

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from multiprocessing.connection import Connection
    from multiprocessing.process import BaseProcess
    from pathlib import Path

    from nestdoctor.lsp.protocol import ScanRequest, WorkerMessage
    from nestdoctor.models import Diagnostic

logger = logging.getLogger(__name__)

DEFAULT_REPLY_TIMEOUT = 120.0
DEFAULT_START_TIMEOUT = 300.0
_JOIN_TIMEOUT = 5.0


class WorkerCrashedError(NestDoctorError):
    """The worker died, failed to start, or did not reply in time."""


def _poll_recv(conn: Connection, timeout: float | None) -> Any:
    """Blocking receive with timeout; ``None`` when nothing arrived in time."""
    if conn.poll(timeout):
        return conn.recv()
    return None


class WorkspaceWorker:
    """Owns one scan worker process and serializes requests to it.

    Parameters
    ----------
    root:
        Workspace root.
    config_path:
        Explicit config file forwarded to the worker.
    reply_timeout:
        Seconds to wait for the reply to one request.
    start_timeout:
        Seconds to wait for ``ready`` after spawning (initial ingestion).
    on_message:
        Called with every reply, after the waiters have been resolved.
    """

    def __init__(
        self,
        root: Path,
        config_path: Path | None = None,
        *,
        reply_timeout: float = DEFAULT_REPLY_TIMEOUT,
        start_timeout: float = DEFAULT_START_TIMEOUT,
        on_message: Callable[[WorkerMessage], None] | None = None,
    ) -> None:
        self.root = root
        self.config_path = config_path
        self.reply_timeout = reply_timeout
        self.start_timeout = start_timeout
        self.on_message = on_message
        self._queue: RequestQueue[asyncio.Future[WorkerMessage]] = RequestQueue()
        self._process: BaseProcess | None = None
        self._conn: Connection | None = None
        self._pump: asyncio.Task[None] | None = None
        self.spawn_count = 0

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.is_alive()

    # -- public API ------------------------------------------------------------

    async def request(self, request: ScanRequest) -> WorkerMessage:
        """Queue *request* and wait for its reply.

        Raises
        ------
        WorkerCrashedError
            If the worker crashed, failed to start or timed out while this
            request was queued or in flight.
        """
        if isinstance(request, Shutdown):
            msg = "use stop() to shut the worker down"
            raise ValueError(msg)
        future: asyncio.Future[WorkerMessage] = asyncio.get_running_loop().create_future()
        if self._queue.push(request, future):
            logger.debug("Coalesced %s into a queued request", request)
        if self._pump is None or self._pump.done():
            self._pump = asyncio.create_task(self._run())
        return await future

    async def full_scan(self) -> WorkerMessage:
        return await self.request(FullScan())

    async def file_changed(self, file_path: str) -> WorkerMessage:
        return await self.request(FileChanged(file_path=file_path))

    async def stop(self) -> None:
        """Finish queued work, then shut the worker down gracefully."""
        if self._pump is not None:
            await asyncio.gather(self._pump, return_exceptions=True)
            self._pump = None
        if self._process is None:
            return
        process, conn = self._process, self._conn
        try:
            if conn is not None:
                conn.send(Shutdown().to_dict())
            await asyncio.to_thread(process.join, _JOIN_TIMEOUT)
        except (OSError, EOFError):
            logger.debug("Worker pipe already closed during shutdown")
        self._terminate()

    async def __aenter__(self) -> WorkspaceWorker:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # -- internals -------------------------------------------------------------

    async def _run(self) -> None:
        while self._queue:
            entry = self._queue.pop()
            if entry is None:
                break
            try:
                reply = await self._dispatch(entry.request)
            except WorkerCrashedError as exc:
                logger.warning("Scan worker crashed: %s", exc)
                self._fail(entry.waiters, exc)
                for pending in self._queue.drain():
                    self._fail(pending.waiters, exc)
                continue
            for waiter in entry.waiters:
                if not waiter.done():
                    waiter.set_result(reply)
            if self.on_message is not None:
                self.on_message(reply)

    @staticmethod
    def _fail(waiters: Iterable[asyncio.Future[WorkerMessage]], exc: Exception) -> None:
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(exc)

    async def _dispatch(self, request: ScanRequest) -> WorkerMessage:
        await self._ensure_started()
        assert self._conn is not None
        try:
            self._conn.send(request.to_dict())
        except (OSError, EOFError) as exc:
            self._terminate()
            msg = f"cannot send to worker: {exc}"
            raise WorkerCrashedError(msg) from exc
        return await self._receive(self.reply_timeout)

    async def _ensure_started(self) -> None:
        if self.is_running:
            return
        self._terminate()

        ctx = multiprocessing.get_context("spawn")
        parent_conn, child_conn = ctx.Pipe()
        process = ctx.Process(
            target=run_worker,
            args=(
                child_conn,
                str(self.root),
                str(self.config_path) if self.config_path else None,
            ),
            name="nestdoctor-scan-worker",
            daemon=True,
        )
        process.start()
        child_conn.close()
        self._process, self._conn = process, parent_conn
        self.spawn_count += 1
        logger.info("Spawned scan worker (pid %s) for %s", process.pid, self.root)

        message = await self._receive(self.start_timeout)
        if isinstance(message, Ready):
            return
        self._terminate()
        if isinstance(message, ErrorMessage):
            msg = f"worker failed to start: {message.message}"
        else:
            msg = f"unexpected first message from worker: {message.kind}"
        raise WorkerCrashedError(msg)

    async def _receive(self, timeout: float) -> WorkerMessage:
        conn = self._conn
        if conn is None:
            msg = "worker is not running"
            raise WorkerCrashedError(msg)
        try:
            raw = await asyncio.to_thread(_poll_recv, conn, timeout)
        except (EOFError, OSError) as exc:
            self._terminate()
            msg = "worker exited unexpectedly"
            raise WorkerCrashedError(msg) from exc
        if raw is None:
            self._terminate()
            msg = f"worker did not reply within {timeout:g}s"
            raise WorkerCrashedError(msg)
        try:
            return message_from_dict(raw)
        except (ValueError, AttributeError, KeyError) as exc:
            self._terminate()
            msg = f"malformed message from worker: {exc}"
            raise WorkerCrashedError(msg) from exc

    def _terminate(self) -> None:
        process, conn = self._process, self._conn
        self._process, self._conn = None, None
        if conn is not None:
            conn.close()
        if process is None:
            return
        if process.is_alive():
            process.terminate()
            process.join(_JOIN_TIMEOUT)
            if process.is_alive():
                process.kill()
                process.join()
        logger.debug("Scan worker (pid %s) terminated", process.pid)


class DiagnosticsPublisher:
    """Publishes per-file editor diagnostics, sending only what changed.

    *publish* is called with ``(uri, diagnostics)``; files that lost all of
    their diagnostics are cleared with an empty list.
    """

    def __init__(self, root: Path, publish: Callable[[str, list[dict[str, Any]]], None]) -> None:
        self.root = root
        self._publish = publish
        self._published: dict[str, list[dict[str, Any]]] = {}

    def update(self, diagnostics: Iterable[Diagnostic]) -> int:
        """Publish the delta to *diagnostics*; returns the number of files published."""
        grouped = group_by_file(diagnostics, self.root)
        updates = diff_publications(self._published, grouped)
        for uri, file_diagnostics in updates:
            self._publish(uri, file_diagnostics)
        self._published = grouped
        return len(updates)
