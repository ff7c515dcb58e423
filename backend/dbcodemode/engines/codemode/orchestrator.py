"""
Orchestrator: runs one script per isolated worker process.

Each execute() gets its own duplex Pipe and its own process. Requests from
the worker are served concurrently against the real CapabilityBinding; one
wall-clock deadline covers waiting for a slot, spawning, and running. On
every exit path the pipe is closed and the worker is killed/joined.
"""

import asyncio
import logging
import multiprocessing as mp
import pickle
from multiprocessing.connection import Connection
from typing import Any

from pydantic import ValidationError

from dbcodemode.core.config import settings

from .binding import CapabilityBinding
from .errors import SandboxSpawnError, TransportError
from .protocol import (
    ERROR_RUNTIME,
    ERROR_SPAWN,
    ERROR_TIMEOUT,
    ERROR_TRANSPORT,
    ExecutionMetrics,
    ExecutionResult,
    RpcRequest,
    RpcResponse,
)
from .worker import poll_recv, run_worker

_log = logging.getLogger(__name__)

POLL_INTERVAL_SEC = 0.05
REAP_TIMEOUT_SEC = 0.2


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _reap(process: mp.process.BaseProcess) -> None:
    if process.is_alive():
        process.kill()
    process.join(REAP_TIMEOUT_SEC)
    if process.exitcode is None:
        _log.warning("codemode: worker pid=%s did not exit after kill", process.pid)
        return
    process.close()


class Orchestrator:
    """
    execute(code, timeout_ms) -> ExecutionResult.

    Concurrency is bounded by a semaphore of ``max_concurrent`` slots.
    Waiting for a slot counts against the caller's deadline.
    """

    def __init__(
        self,
        binding: CapabilityBinding,
        *,
        max_concurrent: int | None = None,
        default_timeout_ms: int | None = None,
        max_timeout_ms: int | None = None,
        start_method: str | None = None,
        root_name: str | None = None,
    ) -> None:
        self._binding = binding
        self._max_concurrent = max(1, max_concurrent or settings.CODEMODE_MAX_CONCURRENT)
        self._default_timeout_ms = default_timeout_ms or settings.CODEMODE_TIMEOUT_MS
        self._max_timeout_ms = max_timeout_ms or settings.CODEMODE_MAX_TIMEOUT_MS
        self._ctx = mp.get_context(start_method or settings.CODEMODE_START_METHOD)
        self._root_name = root_name or settings.CODEMODE_ROOT_NAME
        self._semaphore: asyncio.Semaphore | None = None
        self._semaphore_loop: asyncio.AbstractEventLoop | None = None

    @property
    def binding(self) -> CapabilityBinding:
        return self._binding

    def resolve_timeout(self, timeout_ms: int | None) -> int:
        if timeout_ms is None or timeout_ms <= 0:
            timeout_ms = self._default_timeout_ms
        return min(timeout_ms, self._max_timeout_ms)

    def _slots(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self._max_concurrent)
            self._semaphore_loop = loop
        return self._semaphore

    async def execute(self, code: str, timeout_ms: int | None = None) -> ExecutionResult:
        timeout_ms = self.resolve_timeout(timeout_ms)
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout_ms / 1000

        slots = self._slots()
        try:
            await asyncio.wait_for(slots.acquire(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            _log.warning("codemode: no worker slot within %sms", timeout_ms)
            result = self._timeout_result(timeout_ms)
        else:
            try:
                result = await self._run_session(code, timeout_ms, deadline)
            finally:
                slots.release()

        if result.metrics is None:
            result.metrics = ExecutionMetrics(
                wall_time_ms=round((loop.time() - started) * 1000, 2)
            )
        return result

    @staticmethod
    def _timeout_result(timeout_ms: int) -> ExecutionResult:
        return ExecutionResult.failure(
            f"Execution timed out after {timeout_ms}ms", error_type=ERROR_TIMEOUT
        )

    async def _run_session(self, code: str, timeout_ms: int, deadline: float) -> ExecutionResult:
        parent_conn, child_conn = self._ctx.Pipe(duplex=True)
        process = self._ctx.Process(
            target=run_worker,
            args=(
                code,
                self._binding.manifest().model_dump(),
                timeout_ms,
                child_conn,
                self._root_name,
            ),
            name="codemode-worker",
            daemon=True,
        )
        try:
            self._start(process)
        except SandboxSpawnError as exc:
            parent_conn.close()
            child_conn.close()
            return ExecutionResult.failure(str(exc), error_type=ERROR_SPAWN)
        # the child owns its end now; closing ours lets recv() see EOF when it exits
        child_conn.close()
        _log.debug("codemode: worker pid=%s started", process.pid)

        tasks: set[asyncio.Task] = set()
        try:
            return await self._serve(parent_conn, process, tasks, timeout_ms, deadline)
        except TransportError as exc:
            _log.warning("codemode: transport failure with worker pid=%s: %s", process.pid, exc)
            return ExecutionResult.failure(str(exc), error_type=ERROR_TRANSPORT)
        finally:
            for task in list(tasks):
                task.cancel()
            parent_conn.close()
            await asyncio.to_thread(_reap, process)

    @staticmethod
    def _start(process: mp.process.BaseProcess) -> None:
        try:
            process.start()
        except Exception as exc:
            _log.exception("codemode: failed to start worker")
            raise SandboxSpawnError(f"Failed to start worker: {_error_message(exc)}") from exc

    async def _serve(
        self,
        conn: Connection,
        process: mp.process.BaseProcess,
        tasks: set[asyncio.Task],
        timeout_ms: int,
        deadline: float,
    ) -> ExecutionResult:
        """Relay requests until the result arrives; raises TransportError on bad messages."""
        loop = asyncio.get_running_loop()
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                _log.warning(
                    "codemode: worker pid=%s timed out after %sms, %d calls abandoned",
                    process.pid,
                    timeout_ms,
                    len(tasks),
                )
                return self._timeout_result(timeout_ms)
            try:
                message = await asyncio.to_thread(
                    poll_recv, conn, min(POLL_INTERVAL_SEC, remaining)
                )
            except (EOFError, OSError):
                return self._worker_exit_result(process)

            if message is None:
                if not process.is_alive() and not conn.poll():
                    return self._worker_exit_result(process)
                continue

            kind = message.get("type") if isinstance(message, dict) else None
            if kind == "request":
                try:
                    request = RpcRequest.model_validate(message)
                except ValidationError as exc:
                    raise TransportError("Malformed RPC request from worker") from exc
                task = loop.create_task(self._handle_request(conn, request))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
            elif kind == "result":
                try:
                    return ExecutionResult.model_validate(message)
                except ValidationError as exc:
                    raise TransportError("Malformed result from worker") from exc
            else:
                raise TransportError(f"Unexpected message from worker: {message!r:.200}")

    @staticmethod
    def _worker_exit_result(process: mp.process.BaseProcess) -> ExecutionResult:
        process.join(REAP_TIMEOUT_SEC)
        _log.warning(
            "codemode: worker pid=%s exited without a result (exitcode=%s)",
            process.pid,
            process.exitcode,
        )
        return ExecutionResult.failure(
            f"Worker exited unexpectedly (exit code {process.exitcode})",
            error_type=ERROR_RUNTIME,
        )

    async def _handle_request(self, conn: Connection, request: RpcRequest) -> None:
        try:
            value: Any = await self._binding.invoke(request.group, request.method, request.args)
            response = RpcResponse(id=request.id, result=value)
        except Exception as exc:
            _log.info("codemode: %s.%s failed: %s", request.group, request.method, exc)
            response = RpcResponse(id=request.id, error=_error_message(exc))
        try:
            try:
                conn.send(response.model_dump())
            except (pickle.PicklingError, TypeError, AttributeError) as exc:
                fallback = RpcResponse(
                    id=request.id,
                    error=f"Result of {request.group}.{request.method} could not be sent: {exc}",
                )
                conn.send(fallback.model_dump())
        except (OSError, ValueError):
            _log.debug("codemode: channel closed before response %s was sent", request.id)
