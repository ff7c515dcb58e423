"""
Worker process entry point.

Runs in a freshly spawned process: rebuilds the capability root from the
manifest's names only, wires every method to the RPC bridge, executes the
script under RestrictedPython, and posts exactly one result message.
"""

import asyncio
import logging
import pickle
import signal
import sys
import time
import traceback
from multiprocessing.connection import Connection
from types import SimpleNamespace
from typing import Any

from pydantic import ValidationError

from .errors import CapabilityError, ScriptTimeoutError
from .naming import is_useful_alias
from .protocol import (
    ERROR_RUNTIME,
    ERROR_TIMEOUT,
    ExecutionMetrics,
    ExecutionResult,
    Manifest,
    RpcRequest,
    RpcResponse,
)
from .sandbox import ENTRYPOINT, build_restricted_globals, compile_script

_log = logging.getLogger(__name__)

POLL_INTERVAL_SEC = 0.05


def poll_recv(conn: Connection, timeout: float) -> Any:
    """Blocking poll+recv for asyncio.to_thread; None when nothing arrived."""
    if conn.poll(timeout):
        return conn.recv()
    return None


class RpcBridge:
    """
    Sandbox side of the RPC channel.

    Pending calls live in one flat id -> future map; entries are removed when
    settled and every leftover is failed on close. Responses whose id is not
    pending are ignored.
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn
        self._pending: dict[int, asyncio.Future] = {}
        self._next_id = 0
        self._reader: asyncio.Task | None = None
        self._closed = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def start(self) -> None:
        self._reader = asyncio.get_running_loop().create_task(self._read_loop())

    async def call(self, group: str, method: str, args: tuple[Any, ...] | list[Any]) -> Any:
        if self._closed:
            raise CapabilityError("RPC channel is closed")
        request_id = self._next_id
        self._next_id += 1
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            request = RpcRequest(id=request_id, group=group, method=method, args=list(args))
            try:
                self._conn.send(request.model_dump())
            except (pickle.PicklingError, TypeError, AttributeError) as exc:
                raise CapabilityError(f"Arguments for {group}.{method} could not be sent: {exc}") from exc
            except (OSError, ValueError) as exc:
                raise CapabilityError(f"RPC channel is closed: {exc}") from exc
            return await future
        finally:
            self._pending.pop(request_id, None)

    def dispatch(self, message: Any) -> None:
        try:
            response = RpcResponse.model_validate(message)
        except ValidationError:
            _log.warning("codemode worker: ignoring malformed message %r", message)
            return
        future = self._pending.get(response.id)
        if future is None or future.done():
            _log.debug("codemode worker: ignoring response for unknown id %s", response.id)
            return
        if response.error is not None:
            future.set_exception(CapabilityError(response.error))
        else:
            future.set_result(response.result)

    async def _read_loop(self) -> None:
        while not self._closed:
            try:
                message = await asyncio.to_thread(poll_recv, self._conn, POLL_INTERVAL_SEC)
            except (EOFError, OSError):
                self._fail_pending("RPC channel closed")
                return
            if message is not None:
                self.dispatch(message)

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(CapabilityError(reason))
        self._pending.clear()

    async def close(self) -> None:
        self._closed = True
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        self._fail_pending("RPC channel closed")


def _make_stub(bridge: RpcBridge, group: str, method: str):
    async def call(*args: Any, **kwargs: Any) -> Any:
        # keyword arguments travel as a trailing options object
        if kwargs:
            args = (*args, dict(kwargs))
        return await bridge.call(group, method, args)

    call.__name__ = method
    return call


def _make_group_help(group: str, methods: tuple[str, ...], aliases: list[str]):
    def help() -> dict[str, Any]:
        return {"group": group, "methods": list(methods), "methodAliases": list(aliases)}

    return help


def build_proxy(manifest: Manifest, bridge: RpcBridge) -> SimpleNamespace:
    """Capability root built purely from manifest names."""
    groups: dict[str, SimpleNamespace] = {}
    stubs: dict[str, dict[str, Any]] = {}
    for gm in manifest.groups:
        namespace = {m: _make_stub(bridge, gm.group, m) for m in gm.methods}
        for alias, canonical in gm.aliases.items():
            if canonical in namespace and alias not in namespace:
                namespace[alias] = namespace[canonical]
        useful = [a for a in gm.aliases if is_useful_alias(gm.group, a)]
        stubs[gm.group] = namespace
        groups[gm.group] = SimpleNamespace(
            **namespace, help=_make_group_help(gm.group, gm.methods, useful)
        )

    root: dict[str, Any] = dict(groups)
    for name, (group, method) in manifest.top_level.items():
        stub = stubs.get(group, {}).get(method)
        if stub is not None and name not in root and name != "help":
            root[name] = stub

    group_names = manifest.group_names()

    def help() -> dict[str, Any]:
        return {"groups": list(group_names)}

    root["help"] = help
    return SimpleNamespace(**root)


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


async def _run_script(
    code: str,
    manifest: Manifest,
    conn: Connection,
    root_name: str,
) -> ExecutionResult:
    try:
        compiled = compile_script(code)
    except SyntaxError as exc:
        return ExecutionResult.failure(_error_message(exc), error_type=ERROR_RUNTIME)

    bridge = RpcBridge(conn)
    bridge.start()
    try:
        g = build_restricted_globals(build_proxy(manifest, bridge), root_name)
        exec(compiled, g)
        value = await g[ENTRYPOINT]()
        return ExecutionResult(success=True, result=value)
    except ScriptTimeoutError as exc:
        return ExecutionResult.failure(str(exc), error_type=ERROR_TIMEOUT)
    except Exception as exc:
        return ExecutionResult.failure(
            _error_message(exc), error_type=ERROR_RUNTIME, stack=traceback.format_exc()
        )
    finally:
        await bridge.close()


def _memory_used_mb() -> float:
    if sys.platform == "win32":
        return 0.0
    import resource

    maxrss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # bytes on macOS, kilobytes elsewhere
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return round(maxrss / divisor, 2)


def _arm_timer(timeout_ms: int) -> Any:
    """SIGALRM-based local deadline; returns the previous handler (or None if unsupported)."""
    if timeout_ms <= 0 or not hasattr(signal, "setitimer"):
        return None

    def _handler(signum: int, frame: Any) -> None:
        raise ScriptTimeoutError(f"Execution timed out after {timeout_ms}ms")

    old = signal.signal(signal.SIGALRM, _handler)
    signal.setitimer(signal.ITIMER_REAL, timeout_ms / 1000)
    return old


def _disarm_timer(old: Any) -> None:
    if old is None:
        return
    signal.setitimer(signal.ITIMER_REAL, 0)
    signal.signal(signal.SIGALRM, old)


def _send_result(conn: Connection, result: ExecutionResult) -> None:
    try:
        conn.send(result.to_wire())
        return
    except (pickle.PicklingError, TypeError, AttributeError) as exc:
        fallback = ExecutionResult.failure(
            f"Result could not be transferred: {exc}", error_type=ERROR_RUNTIME
        )
        fallback.metrics = result.metrics
    except (OSError, ValueError):
        _log.warning("codemode worker: channel closed before result was sent")
        return
    try:
        conn.send(fallback.to_wire())
    except (OSError, ValueError):
        _log.warning("codemode worker: channel closed before result was sent")


def run_worker(
    code: str,
    manifest_data: dict[str, Any],
    timeout_ms: int,
    conn: Connection,
    root_name: str = "mysql",
) -> None:
    """Process target. Posts exactly one ExecutionResult, then closes its channel end."""
    wall_start = time.perf_counter()
    cpu_start = time.process_time()
    try:
        manifest = Manifest.model_validate(manifest_data)
        old_handler = _arm_timer(timeout_ms)
        try:
            result = asyncio.run(_run_script(code, manifest, conn, root_name))
        finally:
            _disarm_timer(old_handler)
    except ScriptTimeoutError as exc:
        # timer fired while the loop itself was running, outside script frames
        result = ExecutionResult.failure(str(exc), error_type=ERROR_TIMEOUT)
    except Exception as exc:
        result = ExecutionResult.failure(
            _error_message(exc), error_type=ERROR_RUNTIME, stack=traceback.format_exc()
        )
    result.metrics = ExecutionMetrics(
        wall_time_ms=round((time.perf_counter() - wall_start) * 1000, 2),
        cpu_time_ms=round((time.process_time() - cpu_start) * 1000, 2),
        memory_used_mb=_memory_used_mb(),
    )
    try:
        _send_result(conn, result)
    finally:
        conn.close()
